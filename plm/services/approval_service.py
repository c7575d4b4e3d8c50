"""
PLM Gate Workflow
Approval Record Service.

Creates, queries and resolves the per-role approval records of a project gate.

Business rules enforced here (not in blueprints):
    - Only the holder of ``required_role`` may resolve an approval; a more
      senior role does not override.
    - Resolving never advances the gate. When the last approval lands the
      result carries ``ready_to_advance`` and a management user advances
      explicitly.
    - Only a rejected approval can be resubmitted, and only by a role from
      the resubmission table for the project's (category, gate).
    - Decision and resubmission notes are appended as ApprovalComment rows.
    - Store failures roll back and surface as DependencyError; notification
      failures never do.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from plm.core.exceptions import DependencyError, NotFoundError, PermissionDeniedError, ValidationError
from plm.models import db
from plm.models.approval import APPROVAL_DECISIONS, ApprovalComment, ProjectApproval
from plm.models.auth import User
from plm.models.project import Project
from plm.services.approval_matrix import required_roles, resubmit_roles
from plm.services.notification import NotificationService
from plm.utils.helpers import config_value, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DUE_DAYS = 7


def approval_due_date(now=None):
    """Due date for a freshly seeded or resubmitted approval."""
    days = config_value("APPROVAL_DUE_DAYS", DEFAULT_DUE_DAYS)
    return (now or utcnow()) + timedelta(days=days)


class ApprovalService:
    """Approval record manager bound to a session."""

    def __init__(self, session=None, notifier: NotificationService | None = None):
        self.session = session or db.session
        self.notifier = notifier or NotificationService(self.session)

    # ── Seeding ───────────────────────────────────────────────────────────

    def seed_approvals(self, project: Project, gate_number: int, now=None) -> list[ProjectApproval]:
        """
        Add one pending approval per required role for (project, gate).

        No-op when the matrix lists no roles. Roles that already have a
        record for the gate are skipped. Does not commit: the caller owns the
        transaction.
        """
        roles = required_roles(project.category, gate_number)
        if not roles:
            logger.info(
                "No approvers required for %s gate %s", project.category, gate_number,
                extra={"project_id": project.id, "gate_number": gate_number},
            )
            return []

        existing = {
            role for (role,) in self.session.query(ProjectApproval.required_role).filter(
                ProjectApproval.project_id == project.id,
                ProjectApproval.gate_number == gate_number,
            )
        }
        due = approval_due_date(now)
        created = [
            ProjectApproval(
                project_id=project.id,
                gate_number=gate_number,
                required_role=role,
                status="pending",
                due_date=due,
            )
            for role in roles
            if role not in existing
        ]
        if created:
            self.session.add_all(created)
            self.session.flush()
            logger.info(
                "Seeded %d approvals (%s)", len(created), ",".join(a.required_role for a in created),
                extra={"project_id": project.id, "gate_number": gate_number},
            )
        return created

    # ── Resolution ────────────────────────────────────────────────────────

    def resolve(self, approval_id: int, decision: str, resolver_id: int, comments: str | None = None) -> dict:
        """
        Approve or reject a pending approval.

        Returns:
            {"approval": dict, "ready_to_advance": bool}
        """
        if not isinstance(decision, str) or decision not in APPROVAL_DECISIONS:
            raise ValidationError(
                "decision must be 'approved' or 'rejected'",
                details={"decision": decision},
            )
        if comments is not None and not isinstance(comments, str):
            raise ValidationError("comments must be a string", details={"comments": "must be a string"})
        approval = self._get_or_404(approval_id)
        resolver = self._user_or_404(resolver_id)

        if approval.status != "pending":
            raise ValidationError(
                f"Approval already {approval.status}",
                details={"approval_id": approval.id, "status": approval.status},
            )
        if resolver.role != approval.required_role:
            logger.warning(
                "Role %s attempted to resolve %s approval", resolver.role, approval.required_role,
                extra={"approval_id": approval.id, "user_id": resolver.id},
            )
            raise PermissionDeniedError(
                f"Only a {approval.required_role} can resolve this approval",
                details={"required_role": approval.required_role, "your_role": resolver.role},
            )

        now = utcnow()
        try:
            updated = (
                self.session.query(ProjectApproval)
                .filter(ProjectApproval.id == approval.id, ProjectApproval.status == "pending")
                .update(
                    {"status": decision, "approved_by": resolver.id, "approved_at": now, "updated_at": now},
                    synchronize_session="fetch",
                )
            )
            if not updated:
                self.session.rollback()
                raise ValidationError("Approval was resolved concurrently", details={"approval_id": approval_id})
            self.session.add(ApprovalComment(
                approval_id=approval.id, author_id=resolver.id, kind="decision", text=comments or "",
            ))
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to resolve approval", extra={"approval_id": approval_id})
            raise DependencyError(cause=exc) from exc

        self.session.refresh(approval)
        logger.info(
            "Approval %s by %s", decision, resolver.role,
            extra={
                "approval_id": approval.id,
                "project_id": approval.project_id,
                "gate_number": approval.gate_number,
                "user_id": resolver.id,
            },
        )

        self.notifier.notify_approval_decision(approval, resolver, comments)

        ready = False
        project = approval.project
        if decision == "approved" and project.current_gate == approval.gate_number:
            from plm.services.gate_service import GateService

            ready = GateService(self.session, notifier=self.notifier).can_advance(project).ready
            if ready:
                logger.info(
                    "Gate %s ready to advance", project.current_gate,
                    extra={"project_id": project.id, "gate_number": project.current_gate},
                )

        return {"approval": approval.to_dict(), "ready_to_advance": ready}

    def resubmit(self, approval_id: int, resubmitter_id: int, note: str | None = None) -> ProjectApproval:
        """Reopen a rejected approval as pending with a fresh due date."""
        if note is not None and not isinstance(note, str):
            raise ValidationError("note must be a string", details={"note": "must be a string"})
        approval = self._get_or_404(approval_id)
        user = self._user_or_404(resubmitter_id)

        if approval.status != "rejected":
            raise ValidationError(
                "Only rejected approvals can be resubmitted",
                details={"approval_id": approval.id, "status": approval.status},
            )
        project = approval.project
        allowed = resubmit_roles(project.category, approval.gate_number)
        if user.role not in allowed:
            raise PermissionDeniedError(
                "You are not allowed to resubmit this approval",
                details={"allowed_roles": allowed, "your_role": user.role},
            )

        now = utcnow()
        try:
            updated = (
                self.session.query(ProjectApproval)
                .filter(ProjectApproval.id == approval.id, ProjectApproval.status == "rejected")
                .update(
                    {
                        "status": "pending",
                        "approved_by": None,
                        "approved_at": None,
                        "due_date": approval_due_date(now),
                        "updated_at": now,
                    },
                    synchronize_session="fetch",
                )
            )
            if not updated:
                self.session.rollback()
                raise ValidationError("Approval was changed concurrently", details={"approval_id": approval_id})
            self.session.add(ApprovalComment(
                approval_id=approval.id, author_id=user.id, kind="resubmission", text=note or "",
            ))
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to resubmit approval", extra={"approval_id": approval_id})
            raise DependencyError(cause=exc) from exc

        self.session.refresh(approval)
        logger.info(
            "Approval resubmitted by %s", user.role,
            extra={
                "approval_id": approval.id,
                "project_id": project.id,
                "gate_number": approval.gate_number,
                "user_id": user.id,
            },
        )
        self.notifier.notify_approval_request(
            project, approval.gate_number, triggered_by=user.id,
            approval_id=approval.id, resubmission=True,
        )
        return approval

    # ── Queries ───────────────────────────────────────────────────────────

    def get(self, approval_id: int) -> ProjectApproval:
        return self._get_or_404(approval_id)

    def list_for_project(self, project_id: int, gate_number: int | None = None) -> list[ProjectApproval]:
        q = self.session.query(ProjectApproval).filter(ProjectApproval.project_id == project_id)
        if gate_number is not None:
            q = q.filter(ProjectApproval.gate_number == gate_number)
        return q.order_by(ProjectApproval.gate_number, ProjectApproval.id).all()

    def pending_for_role(self, role: str) -> list[ProjectApproval]:
        """Pending approvals a role must act on, with their project loaded."""
        return (
            self.session.query(ProjectApproval)
            .join(Project, Project.id == ProjectApproval.project_id)
            .filter(
                ProjectApproval.status == "pending",
                ProjectApproval.required_role == role,
                ProjectApproval.gate_number == Project.current_gate,
            )
            .order_by(ProjectApproval.due_date, ProjectApproval.id)
            .all()
        )

    # ── Helpers ───────────────────────────────────────────────────────────

    def _get_or_404(self, approval_id) -> ProjectApproval:
        approval = self.session.get(ProjectApproval, approval_id)
        if approval is None:
            raise NotFoundError(resource="ProjectApproval", resource_id=approval_id)
        return approval

    def _user_or_404(self, user_id) -> User:
        user = self.session.get(User, user_id) if user_id is not None else None
        if user is None:
            raise NotFoundError(resource="User", resource_id=user_id)
        return user
