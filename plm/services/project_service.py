"""
PLM Gate Workflow
Project Service.

Project creation classifies the project, opens gate 1 and seeds its
approvals in one transaction, then announces the project and requests the
gate-1 approvals.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from plm.core.exceptions import DependencyError, NotFoundError, ValidationError
from plm.models import db
from plm.models.auth import User
from plm.models.project import FIRST_GATE, PROJECT_STATUSES, Project
from plm.services.classification import CATEGORIES, MAX_RISK, MIN_RISK, classify
from plm.utils.helpers import parse_date

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "client_name", "description", "country", "technique", "status",
                   "next_review_date", "bid_manager_id", "project_manager_id")
# Fields fixed at creation: changing them would break category == classify(revenue, risk)
IMMUTABLE_FIELDS = ("revenue", "risk_factor", "category", "current_gate")
TEXT_FIELDS = ("name", "client_name", "description", "country", "technique", "status", "next_review_date")


def _check_text(data: dict, errors: dict) -> None:
    for key in TEXT_FIELDS:
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            errors[key] = "must be a string"


def _is_changed(project: Project, key: str, value) -> bool:
    current = getattr(project, key)
    if isinstance(current, int) and not isinstance(value, bool):
        try:
            return int(value) != current
        except (TypeError, ValueError):
            return True
    return value != current


def _as_int(data: dict, key: str, errors: dict, *, required=False):
    value = data.get(key)
    if value is None or value == "":
        if required:
            errors[key] = "required"
        return None
    if isinstance(value, bool):
        errors[key] = "must be an integer"
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        errors[key] = "must be an integer"
        return None


class ProjectService:
    """Project lifecycle operations bound to a session."""

    def __init__(self, session=None, notifier=None):
        from plm.services.gate_service import GateService
        from plm.services.notification import NotificationService

        self.session = session or db.session
        self.notifier = notifier or NotificationService(self.session)
        self.gates = GateService(self.session, notifier=self.notifier)

    # ── Create ────────────────────────────────────────────────────────────

    def create_project(self, data: dict, creator: User | None = None) -> Project:
        errors: dict[str, str] = {}
        _check_text(data, errors)
        if errors:
            raise ValidationError("Invalid project data", details=errors)
        name = (data.get("name") or "").strip()
        if not name:
            errors["name"] = "required"
        revenue = _as_int(data, "revenue", errors, required=True)
        risk = _as_int(data, "risk_factor", errors, required=True)
        if revenue is not None and revenue < 0:
            errors["revenue"] = "must be >= 0"
        if risk is not None and not MIN_RISK <= risk <= MAX_RISK:
            errors["risk_factor"] = f"must be between {MIN_RISK} and {MAX_RISK}"
        status = data.get("status") or "opportunity"
        if status not in PROJECT_STATUSES:
            errors["status"] = f"must be one of {sorted(PROJECT_STATUSES)}"
        bid_manager_id = _as_int(data, "bid_manager_id", errors)
        project_manager_id = _as_int(data, "project_manager_id", errors)
        for key, uid in (("bid_manager_id", bid_manager_id), ("project_manager_id", project_manager_id)):
            if uid is not None and self.session.get(User, uid) is None:
                errors[key] = "unknown user"
        if errors:
            raise ValidationError("Invalid project data", details=errors)

        category = classify(revenue, risk).value
        project = Project(
            name=name,
            client_name=(data.get("client_name") or "").strip(),
            description=data.get("description") or "",
            revenue=revenue,
            risk_factor=risk,
            country=data.get("country"),
            technique=data.get("technique"),
            category=category,
            current_gate=FIRST_GATE,
            status=status,
            next_review_date=parse_date(data.get("next_review_date")),
            bid_manager_id=bid_manager_id,
            project_manager_id=project_manager_id,
            created_by=creator.id if creator else None,
        )
        try:
            self.session.add(project)
            self.session.flush()
            self.gates.open_gate(project, FIRST_GATE)
            self.gates.approvals.seed_approvals(project, FIRST_GATE)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Project creation failed")
            raise DependencyError(cause=exc) from exc

        logger.info(
            "Project created as %s", category,
            extra={"project_id": project.id, "gate_number": FIRST_GATE, "category": category,
                   "user_id": creator.id if creator else None},
        )
        self.notifier.notify_project_created(project, creator)
        self.notifier.notify_approval_request(project, FIRST_GATE, triggered_by=creator.id if creator else None)
        return project

    # ── Read ──────────────────────────────────────────────────────────────

    def get_project(self, project_id: int) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        return project

    def list_projects(self, *, category=None, gate=None, status=None, search=None):
        q = self.session.query(Project)
        if category:
            if category not in CATEGORIES:
                raise ValidationError("Unknown category", details={"category": category})
            q = q.filter(Project.category == category)
        if gate:
            q = q.filter(Project.current_gate == gate)
        if status:
            q = q.filter(Project.status == status)
        if search:
            term = f"%{search}%"
            q = q.filter(Project.name.ilike(term) | Project.client_name.ilike(term))
        return q.order_by(Project.created_at.desc(), Project.id.desc())

    # ── Update ────────────────────────────────────────────────────────────

    def update_project(self, project_id: int, data: dict) -> Project:
        """Edit descriptive fields. Revenue, risk, category and gate are fixed."""
        project = self.get_project(project_id)
        locked = [k for k in IMMUTABLE_FIELDS if k in data and _is_changed(project, k, data[k])]
        if locked:
            raise ValidationError(
                "Fields cannot be changed after creation",
                details={k: "immutable" for k in locked},
            )
        errors: dict[str, str] = {}
        _check_text(data, errors)
        if errors:
            raise ValidationError("Invalid project data", details=errors)
        if "name" in data and not (data.get("name") or "").strip():
            errors["name"] = "required"
        if "status" in data and data["status"] not in PROJECT_STATUSES:
            errors["status"] = f"must be one of {sorted(PROJECT_STATUSES)}"
        for key in ("bid_manager_id", "project_manager_id"):
            if key in data:
                uid = _as_int(data, key, errors)
                if uid is not None and self.session.get(User, uid) is None:
                    errors[key] = "unknown user"
        if errors:
            raise ValidationError("Invalid project data", details=errors)

        for key in EDITABLE_FIELDS:
            if key not in data:
                continue
            value = data[key]
            if key == "next_review_date":
                value = parse_date(value)
            elif key in ("bid_manager_id", "project_manager_id"):
                value = int(value) if value not in (None, "") else None
            elif key == "name":
                value = value.strip()
            setattr(project, key, value)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise DependencyError(cause=exc) from exc
        logger.info("Project updated", extra={"project_id": project.id})
        return project
