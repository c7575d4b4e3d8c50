"""
Approval record service tests.

Tests cover:
  - Seeding on project creation (due date, idempotency)
  - Resolution permissions and decision comments
  - ready_to_advance flag
  - Resubmission of rejected approvals with comment history
  - Record value guards on the approval, gate and notification models
"""

from datetime import timedelta

import pytest

from plm.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from plm.models.approval import ApprovalComment, ProjectApproval
from plm.models.notification import Notification
from plm.models.project import GateRecord
from plm.services.approval_service import ApprovalService
from plm.utils.helpers import as_utc, utcnow


def _gate_approvals(project, gate=None):
    return ApprovalService().list_for_project(project.id, gate or project.current_gate)


class TestSeeding:
    def test_creation_seeds_gate_one(self, make_project):
        before = utcnow()
        project = make_project(revenue=1_000_000, risk_factor=2)
        after = utcnow()

        approvals = _gate_approvals(project)
        assert [a.required_role for a in approvals] == ["bid_manager"]
        a = approvals[0]
        assert a.status == "pending"
        assert before + timedelta(days=7) - timedelta(seconds=1) <= as_utc(a.due_date)
        assert as_utc(a.due_date) <= after + timedelta(days=7) + timedelta(seconds=1)

    def test_category_3_seeds_canonical_roles(self, make_project):
        before = utcnow()
        project = make_project(revenue=40_000_000, risk_factor=2)
        after = utcnow()

        assert project.category == "category_3"
        approvals = _gate_approvals(project, 1)
        assert [a.required_role for a in approvals] == ["bu_director"]
        assert {a.status for a in approvals} == {"pending"}
        due = as_utc(approvals[0].due_date)
        assert before + timedelta(days=7) - timedelta(seconds=1) <= due <= after + timedelta(days=7) + timedelta(seconds=1)

    def test_seed_is_idempotent(self, make_project, session):
        project = make_project(revenue=1_000_000, risk_factor=2)
        again = ApprovalService().seed_approvals(project, 1)
        session.commit()
        assert again == []
        assert len(_gate_approvals(project)) == 1

    def test_seed_one_row_per_role(self, make_project, session):
        project = make_project(revenue=100_000, risk_factor=1)  # category_1a
        created = ApprovalService().seed_approvals(project, 3)
        session.commit()
        assert sorted(a.required_role for a in created) == ["branch_manager", "finance_manager"]

    def test_seed_config_gap_creates_nothing(self, make_project):
        project = make_project()
        assert ApprovalService().seed_approvals(project, 8) == []


class TestResolve:
    def test_approve(self, make_user, make_project):
        bidder = make_user("bid_manager")
        project = make_project(creator=bidder)
        approval = _gate_approvals(project)[0]

        result = ApprovalService().resolve(approval.id, "approved", bidder.id, comments="Looks good")

        assert result["approval"]["status"] == "approved"
        assert result["approval"]["approved_by"] == bidder.id
        assert result["ready_to_advance"] is True
        assert [c["text"] for c in result["approval"]["comments"]] == ["Looks good"]

    def test_senior_role_cannot_override(self, make_user, make_project, session):
        ceo = make_user("ceo")
        project = make_project()
        approval = _gate_approvals(project)[0]

        with pytest.raises(PermissionDeniedError):
            ApprovalService().resolve(approval.id, "approved", ceo.id)
        assert session.get(ProjectApproval, approval.id).status == "pending"

    def test_invalid_decision(self, make_user, make_project):
        bidder = make_user("bid_manager")
        approval = _gate_approvals(make_project())[0]
        with pytest.raises(ValidationError):
            ApprovalService().resolve(approval.id, "maybe", bidder.id)

    @pytest.mark.parametrize("decision", [["approved"], {"status": "approved"}, 1, None])
    def test_non_string_decision(self, make_user, make_project, decision):
        bidder = make_user("bid_manager")
        approval = _gate_approvals(make_project())[0]
        with pytest.raises(ValidationError) as exc:
            ApprovalService().resolve(approval.id, decision, bidder.id)
        assert "decision" in exc.value.details

    def test_non_string_comments(self, make_user, make_project):
        bidder = make_user("bid_manager")
        approval = _gate_approvals(make_project())[0]
        with pytest.raises(ValidationError):
            ApprovalService().resolve(approval.id, "approved", bidder.id, comments=["ok"])

    def test_already_resolved(self, make_user, make_project):
        bidder = make_user("bid_manager")
        approval = _gate_approvals(make_project())[0]
        ApprovalService().resolve(approval.id, "rejected", bidder.id)
        with pytest.raises(ValidationError):
            ApprovalService().resolve(approval.id, "approved", bidder.id)

    def test_empty_comment_still_recorded(self, make_user, make_project):
        bidder = make_user("bid_manager")
        approval = _gate_approvals(make_project())[0]
        result = ApprovalService().resolve(approval.id, "approved", bidder.id)
        assert [(c["kind"], c["text"]) for c in result["approval"]["comments"]] == [("decision", "")]

    def test_not_ready_while_others_pending(self, make_user, make_project, session):
        branch = make_user("branch_manager")
        project = make_project(revenue=100_000, risk_factor=1)  # category_1a
        ApprovalService().seed_approvals(project, 3)
        session.commit()
        # the project still sits at gate 1, so resolving gate 3 never reports ready
        approval = [a for a in _gate_approvals(project, 3) if a.required_role == "branch_manager"][0]
        result = ApprovalService().resolve(approval.id, "approved", branch.id)
        assert result["ready_to_advance"] is False

    def test_unknown_approval(self, make_user):
        user = make_user("bid_manager")
        with pytest.raises(NotFoundError):
            ApprovalService().resolve(999, "approved", user.id)


class TestResubmit:
    def test_resubmit_keeps_history(self, make_user, make_project):
        bidder = make_user("bid_manager")
        approval = _gate_approvals(make_project(creator=bidder))[0]
        svc = ApprovalService()
        svc.resolve(approval.id, "rejected", bidder.id, comments="Margin too thin")

        reopened = svc.resubmit(approval.id, bidder.id, note="Repriced")

        assert reopened.status == "pending"
        assert reopened.approved_by is None
        assert as_utc(reopened.due_date) > utcnow() + timedelta(days=6)
        assert [(c.kind, c.text) for c in reopened.comments] == [
            ("decision", "Margin too thin"),
            ("resubmission", "Repriced"),
        ]

    def test_only_rejected_can_be_resubmitted(self, make_user, make_project):
        bidder = make_user("bid_manager")
        approval = _gate_approvals(make_project())[0]
        with pytest.raises(ValidationError):
            ApprovalService().resubmit(approval.id, bidder.id)

    def test_non_string_note(self, make_user, make_project):
        bidder = make_user("bid_manager")
        approval = _gate_approvals(make_project())[0]
        ApprovalService().resolve(approval.id, "rejected", bidder.id)
        with pytest.raises(ValidationError):
            ApprovalService().resubmit(approval.id, bidder.id, note={"text": "Repriced"})

    def test_resubmit_role_check(self, make_user, make_project):
        bidder = make_user("bid_manager")
        ceo = make_user("ceo")
        approval = _gate_approvals(make_project())[0]
        ApprovalService().resolve(approval.id, "rejected", bidder.id)
        with pytest.raises(PermissionDeniedError) as exc:
            ApprovalService().resubmit(approval.id, ceo.id)
        assert exc.value.details["allowed_roles"] == ["bid_manager"]


class TestQueries:
    def test_pending_for_role_only_current_gate(self, make_user, make_project, session):
        make_user("branch_manager")
        project = make_project(revenue=100_000, risk_factor=1)  # category_1a
        ApprovalService().seed_approvals(project, 3)
        session.commit()

        assert [a.required_role for a in ApprovalService().pending_for_role("bid_manager")] == ["bid_manager"]
        assert ApprovalService().pending_for_role("finance_manager") == []


class TestRecordValues:
    def test_unknown_approval_status(self):
        with pytest.raises(ValueError):
            ProjectApproval(project_id=1, gate_number=1, required_role="bid_manager", status="withdrawn")

    def test_unknown_comment_kind(self):
        with pytest.raises(ValueError):
            ApprovalComment(approval_id=1, kind="note", text="")

    def test_unknown_gate_status(self):
        with pytest.raises(ValueError):
            GateRecord(project_id=1, gate_number=1, status="closed")

    def test_unknown_notification_type(self):
        with pytest.raises(ValueError):
            Notification(user_id=1, title="x", type="carrier_pigeon")
