"""
PLM Gate Workflow
Scheduled Jobs.

Jobs:
    - overdue_scanner: notifies about pending approvals past their due date
    - periodic_review_scanner: notifies about projects whose review date has come
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from plm.models import db
from plm.models.project import Project
from plm.services.notification import NotificationService
from plm.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Overdue approvals
# ═══════════════════════════════════════════════════════════════════════════

@register_job("overdue_scanner")
def scan_overdue_approvals(app) -> dict[str, Any]:
    """Notify required roles and escalation roles about overdue approvals."""
    created = NotificationService(db.session).scan_overdue_approvals()
    approvals = {n.payload.get("approval_id") for n in created}
    return {"approvals_overdue": len(approvals), "notifications_created": len(created)}


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Periodic project reviews
# ═══════════════════════════════════════════════════════════════════════════

@register_job("periodic_review_scanner")
def scan_periodic_reviews(app, today: date | None = None) -> dict[str, Any]:
    """Notify stakeholders of active projects whose next review date is today or earlier."""
    today = today or date.today()
    due = (
        Project.query
        .filter(Project.next_review_date.isnot(None), Project.next_review_date <= today)
        .filter(Project.status != "completed")
        .order_by(Project.next_review_date)
        .all()
    )
    service = NotificationService(db.session)
    created = 0
    for project in due:
        created += len(service.notify_periodic_review(project))
    logger.info("Periodic review scan: %d projects due", len(due), extra={"job_name": "periodic_review_scanner"})
    return {"projects_due": len(due), "notifications_created": created}
