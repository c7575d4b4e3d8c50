"""
PLM Gate Workflow
Notification Service.

Resolves workflow events to concrete recipients and writes one in-app
notification per user. Dispatch is best-effort: a data-store failure is
logged and rolled back and the caller's workflow action stands.

Also provides the inbox operations (list, unread count, mark read).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from plm.core.exceptions import NotFoundError
from plm.models import db
from plm.models.approval import ProjectApproval
from plm.models.auth import User
from plm.models.notification import Notification
from plm.models.project import Project
from plm.services.notification_routing import (
    APPROVAL_DECISION,
    APPROVAL_REQUEST,
    GATE_ADVANCEMENT,
    OVERDUE_APPROVAL,
    PERIODIC_REVIEW,
    PROJECT_CREATION,
    route,
)
from plm.utils.helpers import config_value, utcnow

logger = logging.getLogger(__name__)

PROJECT_CREATION_ROLES = ("branch_manager", "bu_director", "sales_director", "technical_director")
DEFAULT_OVERDUE_ROLES = ("branch_manager", "bu_director")
PERIODIC_REVIEW_ROLES = ("branch_manager",)


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════

def render_template(action_type: str, *, project_name: str, gate: int | None = None,
                    category: str = "", **params: Any) -> tuple[str, str]:
    """Return (title, message) for a notification type."""
    cat = (category or "").upper()

    if action_type == APPROVAL_REQUEST:
        return (
            f"Approval Required: {project_name} – Gate {gate}",
            f'Project "{project_name}" ({cat}) requires your approval to progress from Gate {gate}.',
        )
    if action_type == GATE_ADVANCEMENT:
        return (
            f"Gate {gate} Advanced: {project_name}",
            f'Project "{project_name}" has successfully advanced to Gate {gate}.',
        )
    if action_type == APPROVAL_DECISION:
        decision = params.get("decision", "approved")
        comments = params.get("comments")
        message = (
            f'{params.get("approver_name") or "An approver"} {decision} Gate {gate} '
            f'for "{project_name}" ({cat}).'
        )
        if comments:
            message += f" Comments: {comments}"
        return f"Gate {gate} {decision.capitalize()}: {project_name}", message
    if action_type == OVERDUE_APPROVAL:
        return (
            f"Overdue Approval: Gate {gate}",
            f'Approval for "{project_name}" (Gate {gate}) is overdue.',
        )
    if action_type == PROJECT_CREATION:
        return (
            "New Project Created",
            f'{params.get("creator_name") or "Someone"} created "{project_name}" ({cat}).',
        )
    if action_type == PERIODIC_REVIEW:
        return (
            f"Periodic Review Due: {project_name}",
            f'Project "{project_name}" is due for its periodic review on {params.get("review_date")}.',
        )
    raise ValueError(f"Unknown notification type: {action_type}")


@dataclass
class NotificationContext:
    """A workflow event to fan out.

    ``gate_number`` is the gate the message is about: the completed gate for
    ``gate_advancement`` routing, the gate awaiting approval otherwise.
    """
    project: Project
    gate_number: int
    action_type: str
    triggered_by: int | None = None
    category: str | None = None
    extra: dict = field(default_factory=dict)
    extra_user_ids: tuple[int, ...] = ()

    @property
    def project_category(self) -> str:
        return self.category or self.project.category


class NotificationService:
    """Notification dispatcher and inbox operations."""

    def __init__(self, session=None):
        self.session = session or db.session

    # ── Dispatch ──────────────────────────────────────────────────────────

    def dispatch(self, context: NotificationContext) -> list[Notification]:
        """Route a workflow event and write one notification per recipient."""
        r = route(context.project_category, context.gate_number, context.action_type)
        title_gate = context.extra.get("display_gate", context.gate_number)
        title, message = render_template(
            context.action_type,
            project_name=context.project.name,
            gate=title_gate,
            category=context.project_category,
            **context.extra,
        )
        payload = {
            "project_id": context.project.id,
            "project_name": context.project.name,
            "project_category": context.project_category,
            "current_gate": context.gate_number,
            "action_type": context.action_type,
            "triggered_by": context.triggered_by,
            "notice_days": r.notice_days,
        }
        payload.update({k: v for k, v in context.extra.items() if k != "display_gate"})
        return self._fan_out(
            roles=r.recipients,
            user_ids=context.extra_user_ids,
            project=context.project,
            notification_type=context.action_type,
            title=title,
            message=message,
            payload=payload,
        )

    def notify_approval_request(self, project, gate_number, triggered_by=None, **extra):
        return self.dispatch(NotificationContext(
            project=project, gate_number=gate_number, action_type=APPROVAL_REQUEST,
            triggered_by=triggered_by, extra=extra,
        ))

    def notify_gate_advancement(self, project, completed_gate, new_gate, triggered_by=None):
        """Routing uses the completed gate; the message names the gate reached."""
        return self.dispatch(NotificationContext(
            project=project, gate_number=completed_gate, action_type=GATE_ADVANCEMENT,
            triggered_by=triggered_by,
            extra={"display_gate": new_gate, "completed_gate": completed_gate, "new_gate": new_gate},
        ))

    def notify_approval_decision(self, approval: ProjectApproval, approver: User, comments=None):
        """Decision notice to the gate's routing recipients plus the project's own stakeholders."""
        project = approval.project
        return self.dispatch(NotificationContext(
            project=project,
            gate_number=approval.gate_number,
            action_type=APPROVAL_DECISION,
            triggered_by=approver.id if approver else None,
            extra={
                "approval_id": approval.id,
                "status": approval.status,
                "decision": approval.status,
                "required_role": approval.required_role,
                "approver_name": approver.full_name if approver else None,
                "comments": comments,
            },
            extra_user_ids=tuple(project.stakeholder_ids),
        ))

    def notify_project_created(self, project: Project, creator: User | None = None):
        title, message = render_template(
            PROJECT_CREATION,
            project_name=project.name,
            category=project.category,
            creator_name=creator.full_name if creator else None,
        )
        return self._fan_out(
            roles=PROJECT_CREATION_ROLES,
            project=project,
            notification_type=PROJECT_CREATION,
            title=title,
            message=message,
            payload={
                "project_id": project.id,
                "project_name": project.name,
                "project_category": project.category,
                "current_gate": project.current_gate,
                "action_type": PROJECT_CREATION,
                "triggered_by": creator.id if creator else None,
            },
        )

    def notify_periodic_review(self, project: Project):
        review_date = project.next_review_date.isoformat() if project.next_review_date else None
        title, message = render_template(
            PERIODIC_REVIEW,
            project_name=project.name,
            category=project.category,
            review_date=review_date,
        )
        return self._fan_out(
            roles=PERIODIC_REVIEW_ROLES,
            user_ids=project.stakeholder_ids,
            project=project,
            notification_type=PERIODIC_REVIEW,
            title=title,
            message=message,
            payload={
                "project_id": project.id,
                "project_name": project.name,
                "project_category": project.category,
                "current_gate": project.current_gate,
                "action_type": PERIODIC_REVIEW,
                "review_date": review_date,
            },
        )

    # ── Overdue scan ──────────────────────────────────────────────────────

    def scan_overdue_approvals(self, now=None) -> list[Notification]:
        """
        Notify about every pending approval whose due date has passed.

        Recipients per approval: holders of the required role plus the
        configured escalation roles. Repeated scans notify again; nothing
        records that an approval was already reported.
        """
        now = now or utcnow()
        escalation = tuple(config_value("OVERDUE_NOTIFY_ROLES", DEFAULT_OVERDUE_ROLES))
        try:
            overdue = (
                self.session.query(ProjectApproval)
                .filter(ProjectApproval.status == "pending", ProjectApproval.due_date < now)
                .order_by(ProjectApproval.due_date)
                .all()
            )
        except SQLAlchemyError:
            logger.exception("Overdue scan query failed", extra={"event_type": OVERDUE_APPROVAL})
            self.session.rollback()
            return []

        created: list[Notification] = []
        for approval in overdue:
            project = approval.project
            title, message = render_template(
                OVERDUE_APPROVAL,
                project_name=project.name,
                gate=approval.gate_number,
                category=project.category,
            )
            roles = [approval.required_role] + [r for r in escalation if r != approval.required_role]
            created.extend(self._fan_out(
                roles=roles,
                project=project,
                notification_type=OVERDUE_APPROVAL,
                title=title,
                message=message,
                payload={
                    "project_id": project.id,
                    "project_name": project.name,
                    "project_category": project.category,
                    "current_gate": approval.gate_number,
                    "action_type": OVERDUE_APPROVAL,
                    "approval_id": approval.id,
                    "required_role": approval.required_role,
                    "due_date": approval.due_date.isoformat() if approval.due_date else None,
                },
            ))
        logger.info(
            "Overdue scan: %d approvals, %d notifications", len(overdue), len(created),
            extra={"event_type": OVERDUE_APPROVAL},
        )
        return created

    # ── Fan-out ───────────────────────────────────────────────────────────

    def _fan_out(self, *, roles, project, notification_type, title, message,
                 payload, user_ids=()) -> list[Notification]:
        """Insert one notification per distinct active user holding *roles* (or listed in *user_ids*)."""
        roles = list(roles)
        log_extra = {
            "project_id": project.id if project is not None else None,
            "gate_number": payload.get("current_gate"),
            "event_type": notification_type,
        }
        try:
            recipients: list[User] = []
            if roles:
                recipients = (
                    self.session.query(User)
                    .filter(User.role.in_(roles), User.is_active.is_(True))
                    .order_by(User.id)
                    .all()
                )
            extra_ids = [uid for uid in user_ids if uid]
            if extra_ids:
                recipients += (
                    self.session.query(User)
                    .filter(User.id.in_(extra_ids), User.is_active.is_(True))
                    .order_by(User.id)
                    .all()
                )

            seen: set[int] = set()
            rows: list[Notification] = []
            for user in recipients:
                if user.id in seen:
                    continue
                seen.add(user.id)
                rows.append(Notification(
                    user_id=user.id,
                    project_id=project.id if project is not None else None,
                    title=title,
                    message=message,
                    type=notification_type,
                    payload=dict(payload),
                ))

            if not rows:
                logger.warning(
                    "No recipients for %s (roles=%s)", notification_type, ",".join(roles),
                    extra=log_extra,
                )
                return []

            self.session.add_all(rows)
            self.session.commit()
        except SQLAlchemyError:
            logger.exception("Notification dispatch failed for %s", notification_type, extra=log_extra)
            self.session.rollback()
            return []

        logger.info("Dispatched %d %s notifications", len(rows), notification_type, extra=log_extra)
        return rows

    # ── Inbox ─────────────────────────────────────────────────────────────

    def list_for_user(self, user_id, *, unread_only=False, project_id=None, limit=50, offset=0):
        """Notifications for a user, newest first. Returns (items, total)."""
        q = self.session.query(Notification).filter(Notification.user_id == user_id)
        if project_id:
            q = q.filter(Notification.project_id == project_id)
        if unread_only:
            q = q.filter(Notification.read_at.is_(None))
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    def unread_count(self, user_id) -> int:
        return (
            self.session.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read_at.is_(None))
            .count()
        )

    def mark_read(self, notification_id, user_id) -> Notification:
        notif = self.session.get(Notification, notification_id)
        if notif is None or notif.user_id != user_id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        notif.mark_read()
        self.session.commit()
        return notif

    def mark_all_read(self, user_id) -> int:
        count = (
            self.session.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read_at.is_(None))
            .update({"read_at": utcnow()}, synchronize_session="fetch")
        )
        self.session.commit()
        return count
