"""
Project & gate workflow blueprint.

Routes:
  GET    /projects                        – list projects (?category, ?gate, ?status, ?q)
  POST   /projects                        – create project (classify + seed gate 1)
  GET    /projects/<pid>                  – project detail
  PUT    /projects/<pid>                  – edit descriptive fields
  GET    /projects/<pid>/readiness        – can the current gate advance?
  POST   /projects/<pid>/advance          – advance to the next gate
  GET    /projects/<pid>/gates            – gate tracking history
  GET    /projects/<pid>/approvals        – approvals (?gate=)
"""

import logging

from flask import Blueprint, jsonify, request

from plm.auth import current_user, require_user
from plm.blueprints import paginate_query, register_error_handlers
from plm.services.approval_service import ApprovalService
from plm.services.gate_service import GateService
from plm.services.project_service import ProjectService

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects", methods=["GET"])
def list_projects():
    query = ProjectService().list_projects(
        category=request.args.get("category"),
        gate=request.args.get("gate", type=int),
        status=request.args.get("status"),
        search=request.args.get("q"),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [p.to_dict() for p in items], "total": total})


@project_bp.route("/projects", methods=["POST"])
@require_user
def create_project():
    """Body: { name, client_name?, revenue, risk_factor, country?, technique?, ... }"""
    data = request.get_json(silent=True) or {}
    project = ProjectService().create_project(data, creator=current_user())
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = ProjectService().get_project(project_id)
    d = project.to_dict()
    d["readiness"] = GateService().can_advance(project).to_dict()
    return jsonify(d)


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
@require_user
def update_project(project_id):
    data = request.get_json(silent=True) or {}
    return jsonify(ProjectService().update_project(project_id, data).to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# GATES
# ═════════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/readiness", methods=["GET"])
def gate_readiness(project_id):
    project = ProjectService().get_project(project_id)
    return jsonify(GateService().can_advance(project).to_dict())


@project_bp.route("/projects/<int:project_id>/advance", methods=["POST"])
@require_user
def advance_gate(project_id):
    result = GateService().advance(project_id, current_user().id)
    status = 200 if result["status"] == "advanced" else 409
    return jsonify(result), status


@project_bp.route("/projects/<int:project_id>/gates", methods=["GET"])
def gate_history(project_id):
    ProjectService().get_project(project_id)
    return jsonify([g.to_dict() for g in GateService().gate_history(project_id)])


@project_bp.route("/projects/<int:project_id>/approvals", methods=["GET"])
def project_approvals(project_id):
    ProjectService().get_project(project_id)
    gate = request.args.get("gate", type=int)
    approvals = ApprovalService().list_for_project(project_id, gate_number=gate)
    return jsonify([a.to_dict() for a in approvals])
