"""
Notification & scheduling blueprint.

Routes:
  GET    /notifications                    – caller's inbox (?unread_only, ?project_id, ?limit, ?offset)
  GET    /notifications/unread-count       – unread badge count
  POST   /notifications/<nid>/read         – mark one read
  POST   /notifications/read-all           – mark all read
  POST   /notifications/scan-overdue       – run the overdue approval scan now
  GET    /scheduler/jobs                   – registered jobs with run history
  POST   /scheduler/jobs/<name>/run        – trigger a job
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from plm.auth import current_user, require_roles, require_user
from plm.blueprints import register_error_handlers
from plm.models.auth import MANAGEMENT_ROLES
from plm.services.notification import NotificationService
from plm.services.scheduler_service import SchedulerService, get_registered_jobs

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


# ═══════════════════════════════════════════════════════════════════════════
#  INBOX
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
@require_user
def list_notifications():
    unread_only = request.args.get("unread_only", "false").lower() in ("1", "true", "yes")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService().list_for_user(
        current_user().id,
        unread_only=unread_only,
        project_id=request.args.get("project_id", type=int),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_user
def unread_count():
    return jsonify({"unread_count": NotificationService().unread_count(current_user().id)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
@require_user
def mark_read(nid):
    return jsonify(NotificationService().mark_read(nid, current_user().id).to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
@require_user
def mark_all_read():
    return jsonify({"marked_read": NotificationService().mark_all_read(current_user().id)})


@notification_bp.route("/notifications/scan-overdue", methods=["POST"])
@require_user
@require_roles(*MANAGEMENT_ROLES)
def scan_overdue():
    created = NotificationService().scan_overdue_approvals()
    return jsonify({
        "notifications_created": len(created),
        "approval_ids": sorted({n.payload.get("approval_id") for n in created}),
    })


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/scheduler/jobs", methods=["GET"])
def list_jobs():
    return jsonify(SchedulerService.list_jobs())


@notification_bp.route("/scheduler/jobs/<job_name>/run", methods=["POST"])
@require_user
@require_roles(*MANAGEMENT_ROLES)
def run_job(job_name):
    if job_name not in get_registered_jobs():
        return jsonify({"error": f"Unknown job: {job_name}"}), 404
    result = SchedulerService.run_job(job_name)
    return jsonify(result), 200 if result["status"] == "success" else 500
