"""
PLM Gate Workflow
Gate Advancement Service.

State machine for moving a project from gate N to N+1.

    can_advance(project)        -> GateReadiness
    advance(project_id, actor)  -> {"status": "advanced" | "already_advanced", ...}

A gate is ready when every required document for it has a completed upload
and it has at least one approval record with all of them approved. A gate
with no approval records only passes when its matrix entry sets
``auto_approve``.

Advancement is a compare-and-swap on ``current_gate``: losing the race is
reported as ``already_advanced`` rather than an error. Closing the gate
record, opening the next one and seeding the next gate's approvals share the
same transaction. Notifications go out only after that commit and can never
undo it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from plm.core.exceptions import (
    DependencyError,
    FinalGateError,
    NotFoundError,
    PermissionDeniedError,
    RequirementsNotMetError,
)
from plm.models import db
from plm.models.approval import ProjectApproval
from plm.models.auth import MANAGEMENT_ROLES, User
from plm.models.document import Document, DocumentRequirement
from plm.models.project import FINAL_GATE, GateRecord, Project
from plm.services.approval_matrix import find_entry, gate_name
from plm.services.approval_service import ApprovalService
from plm.services.notification import NotificationService
from plm.utils.helpers import config_value, utcnow

logger = logging.getLogger(__name__)

DEFAULT_GATE_DEADLINE_DAYS = 30


@dataclass
class GateReadiness:
    """Outcome of the advancement precondition for a project's current gate."""
    project_id: int
    gate_number: int
    documents_ok: bool
    approvals_ok: bool
    missing_documents: list[str] = field(default_factory=list)
    pending_approvals: list[dict] = field(default_factory=list)
    approval_count: int = 0
    auto_approve: bool = False

    @property
    def ready(self) -> bool:
        return self.documents_ok and self.approvals_ok

    @property
    def is_final_gate(self) -> bool:
        return self.gate_number >= FINAL_GATE

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "gate_number": self.gate_number,
            "gate_name": gate_name(self.gate_number),
            "ready": self.ready,
            "is_final_gate": self.is_final_gate,
            "documents_ok": self.documents_ok,
            "approvals_ok": self.approvals_ok,
            "missing_documents": self.missing_documents,
            "pending_approvals": self.pending_approvals,
            "approval_count": self.approval_count,
            "auto_approve": self.auto_approve,
        }


def gate_deadline(now=None):
    days = config_value("GATE_DEADLINE_DAYS", DEFAULT_GATE_DEADLINE_DAYS)
    return (now or utcnow()) + timedelta(days=days)


class GateService:
    """Gate advancement state machine bound to a session."""

    def __init__(self, session=None, notifier: NotificationService | None = None):
        self.session = session or db.session
        self.notifier = notifier or NotificationService(self.session)
        self.approvals = ApprovalService(self.session, notifier=self.notifier)

    # ── Precondition ──────────────────────────────────────────────────────

    def missing_documents(self, project: Project, gate_number: int) -> list[str]:
        """Required document types for the gate without a completed upload."""
        requirements = (
            self.session.query(DocumentRequirement)
            .filter(DocumentRequirement.gate_number == gate_number, DocumentRequirement.is_required.is_(True))
            .order_by(DocumentRequirement.id)
            .all()
        )
        if not requirements:
            return []
        fulfilled = {
            rid for (rid,) in self.session.query(Document.requirement_id).filter(
                Document.project_id == project.id,
                Document.upload_status == "completed",
                Document.requirement_id.in_([r.id for r in requirements]),
            )
        }
        return [r.document_type for r in requirements if r.id not in fulfilled]

    def can_advance(self, project: Project) -> GateReadiness:
        gate = project.current_gate
        missing = self.missing_documents(project, gate)
        records = (
            self.session.query(ProjectApproval)
            .filter(ProjectApproval.project_id == project.id, ProjectApproval.gate_number == gate)
            .order_by(ProjectApproval.id)
            .all()
        )
        entry = find_entry(project.category, gate)
        if records:
            approvals_ok = all(r.status == "approved" for r in records)
        else:
            approvals_ok = entry.auto_approve

        return GateReadiness(
            project_id=project.id,
            gate_number=gate,
            documents_ok=not missing,
            approvals_ok=approvals_ok,
            missing_documents=missing,
            pending_approvals=[
                {"id": r.id, "required_role": r.required_role, "status": r.status}
                for r in records if r.status != "approved"
            ],
            approval_count=len(records),
            auto_approve=entry.auto_approve,
        )

    # ── Gate records ──────────────────────────────────────────────────────

    def open_gate(self, project: Project, gate_number: int, now=None) -> GateRecord:
        """Open (or return the already open) tracking record for a gate. Does not commit."""
        record = (
            self.session.query(GateRecord)
            .filter(GateRecord.project_id == project.id, GateRecord.gate_number == gate_number)
            .first()
        )
        if record is None:
            now = now or utcnow()
            record = GateRecord(
                project_id=project.id,
                gate_number=gate_number,
                status="in_progress",
                started_at=now,
                deadline=gate_deadline(now),
            )
            self.session.add(record)
            self.session.flush()
        return record

    def _close_gate(self, project: Project, gate_number: int, now) -> GateRecord:
        record = self.open_gate(project, gate_number, now=project.created_at or now)
        record.status = "approved"
        record.completed_at = now
        return record

    def gate_history(self, project_id: int) -> list[GateRecord]:
        return (
            self.session.query(GateRecord)
            .filter(GateRecord.project_id == project_id)
            .order_by(GateRecord.gate_number)
            .all()
        )

    # ── Advancement ───────────────────────────────────────────────────────

    def advance(self, project_id: int, actor_id: int) -> dict:
        """
        Move the project from its current gate to the next.

        Raises:
            NotFoundError: unknown project or actor.
            PermissionDeniedError: actor is not in a management role.
            FinalGateError: project is already at the last gate.
            RequirementsNotMetError: documents or approvals outstanding.
            DependencyError: the store failed; nothing was committed.
        """
        project = self.session.get(Project, project_id)
        if project is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        actor = self.session.get(User, actor_id) if actor_id is not None else None
        if actor is None:
            raise NotFoundError(resource="User", resource_id=actor_id)

        log_extra = {"project_id": project.id, "gate_number": project.current_gate, "user_id": actor.id}

        if not actor.is_management:
            logger.warning("Advance refused for role %s", actor.role, extra=log_extra)
            raise PermissionDeniedError(
                "Only management roles can advance a gate",
                details={"allowed_roles": sorted(MANAGEMENT_ROLES), "your_role": actor.role},
            )

        from_gate = project.current_gate
        if from_gate >= FINAL_GATE:
            raise FinalGateError(
                f"Gate {FINAL_GATE} is the final gate; the project cannot advance further",
                details={"current_gate": from_gate},
            )

        readiness = self.can_advance(project)
        if not readiness.ready:
            raise RequirementsNotMetError(
                f"Gate {from_gate} requirements not yet met",
                details=readiness.to_dict(),
            )

        to_gate = from_gate + 1
        now = utcnow()
        try:
            swapped = (
                self.session.query(Project)
                .filter(Project.id == project.id, Project.current_gate == from_gate)
                .update({"current_gate": to_gate, "updated_at": now}, synchronize_session=False)
            )
            if not swapped:
                self.session.rollback()
                self.session.refresh(project)
                logger.info("Gate already advanced by another request", extra=log_extra)
                return {
                    "status": "already_advanced",
                    "from_gate": from_gate,
                    "current_gate": project.current_gate,
                    "project": project.to_dict(),
                    "approvals": [],
                }

            self.session.refresh(project)
            self._close_gate(project, from_gate, now)
            self.open_gate(project, to_gate, now)
            seeded = self.approvals.seed_approvals(project, to_gate, now=now)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Gate advancement failed", extra=log_extra)
            raise DependencyError(cause=exc) from exc

        logger.info(
            "Project advanced from gate %s to %s", from_gate, to_gate,
            extra={**log_extra, "gate_number": to_gate, "event_type": "gate_advancement"},
        )

        self._notify_advanced(project, from_gate, to_gate, actor)

        return {
            "status": "advanced",
            "from_gate": from_gate,
            "current_gate": to_gate,
            "project": project.to_dict(),
            "approvals": [a.to_dict() for a in seeded],
        }

    def _notify_advanced(self, project, from_gate, to_gate, actor):
        try:
            self.notifier.notify_gate_advancement(project, from_gate, to_gate, triggered_by=actor.id)
            self.notifier.notify_approval_request(project, to_gate, triggered_by=actor.id)
        except Exception:
            logger.exception(
                "Post-advancement notifications failed",
                extra={"project_id": project.id, "gate_number": to_gate},
            )
