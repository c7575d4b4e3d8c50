"""
Compliance / metrics aggregator tests.

Pure functions run over SimpleNamespace rows; the dashboard test goes
through the store.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from plm.services.approval_service import ApprovalService
from plm.services.metrics import (
    MetricsService,
    average_gate_time,
    category_distribution,
    compliance_score,
    gate_bottlenecks,
    gate_efficiency,
    on_time_rate,
    project_metrics,
    user_performance,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _gate(project_id=1, gate_number=1, status="approved", started=10, completed=8, deadline=None):
    """Gate row; ``started`` / ``completed`` / ``deadline`` are days before NOW."""
    return SimpleNamespace(
        project_id=project_id,
        gate_number=gate_number,
        status=status,
        started_at=NOW - timedelta(days=started) if started is not None else None,
        completed_at=NOW - timedelta(days=completed) if completed is not None else None,
        deadline=NOW - timedelta(days=deadline) if deadline is not None else None,
    )


def _project(pid, category="category_1a", revenue=100_000, risk=2, status="opportunity"):
    return SimpleNamespace(id=pid, category=category, revenue=revenue, risk_factor=risk, status=status)


class TestGateTimes:
    def test_average_rounds_each_gate_up(self):
        gates = [
            _gate(started=10, completed=7.5),   # 2.5 days -> 3
            _gate(started=5, completed=4),      # 1 day
        ]
        assert average_gate_time(gates) == 2.0

    def test_average_rounds_half_up(self):
        gates = [_gate(completed=8), _gate(completed=7), _gate(completed=8), _gate(completed=8)]
        # 2, 3, 2, 2 days -> 2.25
        assert average_gate_time(gates) == 2.3

    def test_average_ignores_open_gates(self):
        assert average_gate_time([_gate(status="in_progress", completed=None)]) == 0.0

    def test_on_time_rate_defaults_to_100(self):
        assert on_time_rate([]) == 100.0

    def test_on_time_rate(self):
        gates = [
            _gate(completed=8, deadline=5),     # finished before deadline
            _gate(completed=2, deadline=5),     # finished after deadline
        ]
        assert on_time_rate(gates) == 50.0


class TestBottlenecks:
    def test_overdue_weighs_five_days(self):
        gates = [
            _gate(project_id=1, gate_number=1, started=10, completed=8),
            _gate(project_id=2, gate_number=1, started=10, completed=8),
            _gate(project_id=1, gate_number=2, status="in_progress", started=8, completed=None, deadline=1),
        ]
        ranked = gate_bottlenecks(gates, now=NOW)
        assert [b["gate"] for b in ranked] == [2, 1]
        assert ranked[0]["bottleneck_score"] == 5.0
        assert ranked[0]["overdue_count"] == 1
        assert ranked[1]["average_delay"] == 2.0
        assert ranked[1]["affected_projects"] == 2

    def test_top_limit(self):
        gates = [_gate(gate_number=n) for n in range(1, 6)]
        assert len(gate_bottlenecks(gates, now=NOW, top=3)) == 3
        assert len(gate_bottlenecks(gates, now=NOW, top=None)) == 5

    def test_empty(self):
        assert gate_bottlenecks([], now=NOW) == []


class TestCompliance:
    def test_scores(self):
        gates = [_gate(), _gate(gate_number=2, status="in_progress", completed=None, deadline=-5)]
        approvals = [
            SimpleNamespace(status="approved", required_role="bid_manager"),
            SimpleNamespace(status="pending", required_role="branch_manager"),
        ]
        result = compliance_score(gates, approvals, {"BAR", "CAR", "Site Photos"}, now=NOW)

        assert result["document_compliance"] == 50
        assert result["approval_compliance"] == 50
        assert result["timeline_compliance"] == 100
        assert result["overall"] == 67
        doc_issues = result["details"][0]["issues"]
        assert "Missing Risk Register" in doc_issues
        assert "Pending approval for branch_manager" in result["details"][1]["issues"]

    def test_extra_documents_do_not_exceed_100(self):
        types = {"BAR", "CAR", "Risk Register", "Technical Proposal", "Site Photos", "Minutes"}
        assert compliance_score([], [], types, now=NOW)["document_compliance"] == 100

    def test_empty_input_is_fully_compliant_except_documents(self):
        result = compliance_score([], [], set(), now=NOW)
        assert result["approval_compliance"] == 100
        assert result["timeline_compliance"] == 100
        assert result["document_compliance"] == 0


class TestPortfolio:
    def test_distribution_includes_every_category(self):
        dist = category_distribution([_project(1), _project(2, category="category_3")])
        assert dist == {
            "category_1a": 1, "category_1b": 0, "category_1c": 0, "category_2": 0, "category_3": 1,
        }

    def test_efficiency(self):
        eff = gate_efficiency([_gate(), _gate(status="in_progress", completed=None)])
        assert eff["gate_1"] == 50.0
        assert eff["gate_7"] == 0.0

    def test_project_metrics(self):
        projects = [
            _project(1, revenue=150_000, risk=2, status="completed"),
            _project(2, revenue=50_000, risk=5),
        ]
        gates = [
            _gate(project_id=1, completed=8, deadline=5),
            _gate(project_id=2, completed=2, deadline=5),
        ]
        result = project_metrics(projects, gates, now=NOW)
        assert result["total_value"] == 2000.0
        assert result["average_risk_factor"] == 3.5
        assert result["completion_rate"] == 50
        assert result["on_time_delivery"] == 50

    def test_percentages_round_half_up(self):
        projects = [_project(1, status="completed")] + [_project(n) for n in range(2, 9)]
        assert project_metrics(projects, [], now=NOW)["completion_rate"] == 13

    def test_project_metrics_empty(self):
        result = project_metrics([], [], now=NOW)
        assert result["project_count"] == 0
        assert result["total_value"] == 0
        assert result["on_time_delivery"] == 100

    def test_user_performance(self):
        approvals = [
            SimpleNamespace(approved_by=7, status="approved"),
            SimpleNamespace(approved_by=7, status="rejected"),
            SimpleNamespace(approved_by=8, status="approved"),
        ]
        result = user_performance(7, [_project(1)], [_gate()], approvals)
        assert result["approvals_decided"] == 2
        assert result["approval_rate"] == 50
        assert result["projects_managed"] == 1
        assert result["average_gate_time"] == 2.0


class TestDashboard:
    def test_counts(self, make_user, make_project):
        bidder = make_user("bid_manager")
        ready = make_project(name="Ready", creator=bidder)
        make_project(name="Waiting", revenue=40_000_000, risk_factor=6)   # category_3
        approval = ApprovalService().list_for_project(ready.id, 1)[0]
        ApprovalService().resolve(approval.id, "approved", bidder.id)

        dash = MetricsService().dashboard()

        assert dash["total_projects"] == 2
        assert dash["category_distribution"]["category_1b"] == 1
        assert dash["category_distribution"]["category_3"] == 1
        assert dash["gate_distribution"]["gate_1"] == 2
        assert dash["pending_approvals"] == 1
        assert dash["overdue_approvals"] == 0
        assert dash["ready_project_ids"] == [ready.id]

    def test_compliance_for_project(self, make_project):
        project = make_project()
        result = MetricsService().compliance(project.id)
        assert result["project_id"] == project.id
        assert result["approval_compliance"] == 0
        assert result["document_compliance"] == 0
