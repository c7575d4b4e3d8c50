"""
Approval blueprint.

Routes:
  GET    /approvals/pending            – pending approvals for the caller's role
  GET    /approvals/<aid>              – approval detail incl. comment trail
  POST   /approvals/<aid>/decide       – approve / reject
  POST   /approvals/<aid>/resubmit     – reopen a rejected approval
  GET    /approval-matrix              – approver hierarchy (?category, ?gate or ?project_id)
"""

import logging

from flask import Blueprint, jsonify, request

from plm.auth import current_user, require_user
from plm.blueprints import register_error_handlers
from plm.core.exceptions import ValidationError
from plm.models.project import FINAL_GATE, FIRST_GATE
from plm.services.approval_matrix import approval_hierarchy
from plm.services.approval_service import ApprovalService
from plm.services.classification import CATEGORIES
from plm.services.project_service import ProjectService

logger = logging.getLogger(__name__)

approval_bp = Blueprint("approval_bp", __name__, url_prefix="/api/v1")
register_error_handlers(approval_bp)


@approval_bp.route("/approvals/pending", methods=["GET"])
@require_user
def pending_approvals():
    approvals = ApprovalService().pending_for_role(current_user().role)
    return jsonify([a.to_dict(include_project=True) for a in approvals])


@approval_bp.route("/approvals/<int:aid>", methods=["GET"])
def get_approval(aid):
    return jsonify(ApprovalService().get(aid).to_dict(include_project=True))


@approval_bp.route("/approvals/<int:aid>/decide", methods=["POST"])
@require_user
def decide_approval(aid):
    """Body: { decision: "approved"|"rejected", comments? }"""
    data = request.get_json(silent=True) or {}
    result = ApprovalService().resolve(
        aid,
        data.get("decision", ""),
        current_user().id,
        comments=data.get("comments"),
    )
    return jsonify(result)


@approval_bp.route("/approvals/<int:aid>/resubmit", methods=["POST"])
@require_user
def resubmit_approval(aid):
    """Body: { note? }"""
    data = request.get_json(silent=True) or {}
    approval = ApprovalService().resubmit(aid, current_user().id, note=data.get("note"))
    return jsonify(approval.to_dict())


@approval_bp.route("/approval-matrix", methods=["GET"])
def approval_matrix():
    """Approver hierarchy for a category/gate, or for a project's current gate with record status."""
    project_id = request.args.get("project_id", type=int)
    if project_id:
        project = ProjectService().get_project(project_id)
        gate = request.args.get("gate", type=int) or project.current_gate
        hierarchy = approval_hierarchy(project.category, gate)
        records = {a.required_role: a for a in ApprovalService().list_for_project(project.id, gate)}
        for step in hierarchy["approvers"]:
            rec = records.get(step["role"])
            step["status"] = rec.status if rec else None
            step["approval_id"] = rec.id if rec else None
        hierarchy["project_id"] = project.id
        return jsonify(hierarchy)

    category = request.args.get("category")
    gate = request.args.get("gate", type=int)
    if category not in CATEGORIES:
        raise ValidationError("Unknown category", details={"category": category})
    if gate is None:
        return jsonify([approval_hierarchy(category, g) for g in range(FIRST_GATE, FINAL_GATE + 1)])
    if not FIRST_GATE <= gate <= FINAL_GATE:
        raise ValidationError("Unknown gate", details={"gate": gate})
    return jsonify(approval_hierarchy(category, gate))
