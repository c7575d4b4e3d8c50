"""
PLM Gate Workflow
Compliance / metrics aggregator.

Pure functions over gate, approval, project and document rows feed the
dashboard. None of them mutate anything; empty input yields zero or the
documented default. ``MetricsService`` loads the rows and combines them.

Usage:
    from plm.services.metrics import MetricsService
    MetricsService().dashboard()
"""

from __future__ import annotations

import math
from typing import Iterable

from plm.models import db
from plm.models.approval import ProjectApproval
from plm.models.document import Document, DocumentRequirement
from plm.models.project import FINAL_GATE, FIRST_GATE, GATE_NAMES, GateRecord, Project
from plm.services.classification import CATEGORIES
from plm.utils.helpers import as_utc, days_between, utcnow

# Document types every project is expected to produce over its lifecycle
COMPLIANCE_DOCUMENT_TYPES = ("BAR", "CAR", "Risk Register", "Technical Proposal")

OVERDUE_WEIGHT = 5
TOP_BOTTLENECKS = 3


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def _safe_pct(numerator: int, denominator: int, default: float = 0.0) -> float:
    """Zero-safe percentage."""
    return (numerator / denominator) * 100 if denominator else default


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _round1(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def _is_overdue(gate, now) -> bool:
    return bool(gate.deadline) and as_utc(gate.deadline) < now and gate.status != "approved"


def _completed(gates: Iterable) -> list:
    return [g for g in gates if g.status == "approved" and g.started_at and g.completed_at]


# ═════════════════════════════════════════════════════════════════════════════
# Core metric functions
# ═════════════════════════════════════════════════════════════════════════════

def average_gate_time(gates: Iterable) -> float:
    """Mean whole days (rounded up per gate) from start to completion of approved gates."""
    durations = [days_between(g.started_at, g.completed_at) for g in _completed(gates)]
    return _round1(sum(durations) / len(durations)) if durations else 0.0


def on_time_rate(gates: Iterable) -> float:
    """Percentage of completed gates finished by their deadline (100 when none completed)."""
    completed = _completed(gates)
    on_time = [g for g in completed if not g.deadline or as_utc(g.completed_at) <= as_utc(g.deadline)]
    return float(_round_half_up(_safe_pct(len(on_time), len(completed), default=100.0)))


def gate_bottlenecks(gates: Iterable, now=None, top: int | None = TOP_BOTTLENECKS) -> list[dict]:
    """
    Rank gates by ``average delay + overdue count x 5``, highest first.

    Average delay covers gates with both start and completion; overdue counts
    unapproved gates whose deadline has passed.
    """
    now = now or utcnow()
    gates = list(gates)
    ranked = []
    for gate_number in range(FIRST_GATE, FINAL_GATE + 1):
        rows = [g for g in gates if g.gate_number == gate_number]
        if not rows:
            continue
        delays = [days_between(g.started_at, g.completed_at) for g in rows if g.started_at and g.completed_at]
        average_delay = sum(delays) / len(delays) if delays else 0.0
        overdue = sum(1 for g in rows if _is_overdue(g, now))
        ranked.append({
            "gate": gate_number,
            "gate_name": GATE_NAMES[gate_number],
            "average_delay": _round1(average_delay),
            "overdue_count": overdue,
            "bottleneck_score": _round1(average_delay + overdue * OVERDUE_WEIGHT),
            "affected_projects": len({g.project_id for g in rows}),
        })
    ranked.sort(key=lambda b: b["bottleneck_score"], reverse=True)
    return ranked[:top] if top else ranked


def category_distribution(projects: Iterable) -> dict[str, int]:
    dist = {c: 0 for c in CATEGORIES}
    for p in projects:
        dist[p.category] = dist.get(p.category, 0) + 1
    return dist


def gate_efficiency(gates: Iterable) -> dict[str, float]:
    """Per gate: approved records as a percentage of all records for that gate."""
    gates = list(gates)
    out = {}
    for gate_number in range(FIRST_GATE, FINAL_GATE + 1):
        rows = [g for g in gates if g.gate_number == gate_number]
        approved = sum(1 for g in rows if g.status == "approved")
        out[f"gate_{gate_number}"] = _round1(_safe_pct(approved, len(rows)))
    return out


def compliance_score(gates: Iterable, approvals: Iterable, document_types: Iterable[str],
                     required_types=COMPLIANCE_DOCUMENT_TYPES, now=None) -> dict:
    """
    Document, approval and timeline compliance percentages.

    ``document_types`` are the types with a completed upload. Only the
    types in ``required_types`` count towards document compliance.
    """
    now = now or utcnow()
    gates = list(gates)
    approvals = list(approvals)

    available = set(document_types) & set(required_types)
    doc_score = _safe_pct(len(available), len(required_types), default=100.0)
    doc_issues = [f"Missing {t}" for t in required_types if t not in available]

    approved = sum(1 for a in approvals if a.status == "approved")
    approval_score = _safe_pct(approved, len(approvals), default=100.0)
    approval_issues = [f"Pending approval for {a.required_role}" for a in approvals if a.status == "pending"]

    overdue = [g for g in gates if _is_overdue(g, now)]
    timeline_score = _safe_pct(len(gates) - len(overdue), len(gates), default=100.0)
    timeline_issues = [f"Gate {g.gate_number} overdue" for g in overdue]

    return {
        "overall": _round_half_up((doc_score + approval_score + timeline_score) / 3),
        "document_compliance": _round_half_up(doc_score),
        "approval_compliance": _round_half_up(approval_score),
        "timeline_compliance": _round_half_up(timeline_score),
        "details": [
            {"metric": "Document Compliance", "score": _round_half_up(doc_score), "issues": doc_issues},
            {"metric": "Approval Compliance", "score": _round_half_up(approval_score), "issues": approval_issues},
            {"metric": "Timeline Compliance", "score": _round_half_up(timeline_score), "issues": timeline_issues},
        ],
    }


def project_metrics(projects: Iterable, gates: Iterable, now=None) -> dict:
    """Portfolio totals. ``total_value`` converts minor units to currency units."""
    now = now or utcnow()
    projects = list(projects)
    gates = list(gates)
    by_project: dict[int, list] = {}
    for g in gates:
        by_project.setdefault(g.project_id, []).append(g)

    total_value = sum(p.revenue or 0 for p in projects)
    avg_risk = sum(p.risk_factor for p in projects) / len(projects) if projects else 0.0
    completed = sum(1 for p in projects if p.status == "completed")

    tracked = [p for p in projects if by_project.get(p.id)]
    on_time = 0
    for p in tracked:
        rows = by_project[p.id]
        late = [
            g for g in rows
            if g.deadline and as_utc(g.completed_at or now) > as_utc(g.deadline)
        ]
        if not late and any(g.status == "approved" for g in rows):
            on_time += 1

    return {
        "project_count": len(projects),
        "total_value": total_value / 100,
        "average_risk_factor": _round1(avg_risk),
        "completion_rate": _round_half_up(_safe_pct(completed, len(projects))),
        "on_time_delivery": _round_half_up(_safe_pct(on_time, len(tracked), default=100.0)),
        "category_breakdown": category_distribution(projects),
        "gate_efficiency": gate_efficiency(gates),
    }


def user_performance(user_id: int, projects: Iterable, gates: Iterable, approvals: Iterable) -> dict:
    """Managed projects, their average gate time, and the user's approval rate (100 with no decisions)."""
    projects = list(projects)
    decided = [a for a in approvals if a.approved_by == user_id and a.status in ("approved", "rejected")]
    approved = sum(1 for a in decided if a.status == "approved")
    return {
        "user_id": user_id,
        "projects_managed": len(projects),
        "average_gate_time": average_gate_time(gates),
        "approvals_decided": len(decided),
        "approval_rate": _round_half_up(_safe_pct(approved, len(decided), default=100.0)),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════════════

class MetricsService:
    """Loads rows and feeds them through the metric functions."""

    def __init__(self, session=None):
        self.session = session or db.session

    def _gates(self, project_id=None):
        q = self.session.query(GateRecord)
        if project_id is not None:
            q = q.filter(GateRecord.project_id == project_id)
        return q.all()

    def bottlenecks(self, top=TOP_BOTTLENECKS, now=None) -> list[dict]:
        return gate_bottlenecks(self._gates(), now=now, top=top)

    def compliance(self, project_id=None, now=None) -> dict:
        approvals_q = self.session.query(ProjectApproval)
        docs_q = (
            self.session.query(DocumentRequirement.document_type)
            .join(Document, Document.requirement_id == DocumentRequirement.id)
            .filter(Document.upload_status == "completed")
        )
        if project_id is not None:
            approvals_q = approvals_q.filter(ProjectApproval.project_id == project_id)
            docs_q = docs_q.filter(Document.project_id == project_id)
        document_types = {t for (t,) in docs_q.distinct()}
        result = compliance_score(self._gates(project_id), approvals_q.all(), document_types, now=now)
        result["project_id"] = project_id
        return result

    def portfolio(self, *, category=None, country=None, now=None) -> dict:
        q = self.session.query(Project)
        if category:
            q = q.filter(Project.category == category)
        if country:
            q = q.filter(Project.country == country)
        projects = q.all()
        ids = [p.id for p in projects]
        gates = (
            self.session.query(GateRecord).filter(GateRecord.project_id.in_(ids)).all() if ids else []
        )
        return project_metrics(projects, gates, now=now)

    def user_metrics(self, user_id: int) -> dict:
        managed = (
            self.session.query(Project)
            .filter((Project.bid_manager_id == user_id) | (Project.project_manager_id == user_id))
            .all()
        )
        ids = [p.id for p in managed]
        gates = self.session.query(GateRecord).filter(GateRecord.project_id.in_(ids)).all() if ids else []
        approvals = self.session.query(ProjectApproval).filter(ProjectApproval.approved_by == user_id).all()
        return user_performance(user_id, managed, gates, approvals)

    def dashboard(self, now=None) -> dict:
        from plm.services.gate_service import GateService

        now = now or utcnow()
        projects = self.session.query(Project).all()
        gates = self._gates()
        pending = (
            self.session.query(ProjectApproval)
            .join(Project, Project.id == ProjectApproval.project_id)
            .filter(ProjectApproval.status == "pending", ProjectApproval.gate_number == Project.current_gate)
            .all()
        )
        overdue = [a for a in pending if a.is_overdue(now)]

        gate_svc = GateService(self.session)
        ready = [
            p.id for p in projects
            if p.current_gate < FINAL_GATE and gate_svc.can_advance(p).ready
        ]

        return {
            "total_projects": len(projects),
            "category_distribution": category_distribution(projects),
            "gate_distribution": {
                f"gate_{n}": sum(1 for p in projects if p.current_gate == n)
                for n in range(FIRST_GATE, FINAL_GATE + 1)
            },
            "average_gate_time": average_gate_time(gates),
            "on_time_rate": on_time_rate(gates),
            "pending_approvals": len(pending),
            "overdue_approvals": len(overdue),
            "ready_to_advance": len(ready),
            "ready_project_ids": ready,
            "bottlenecks": gate_bottlenecks(gates, now=now),
            "portfolio": project_metrics(projects, gates, now=now),
        }
