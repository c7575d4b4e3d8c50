"""
Document blueprint.

Routes:
  GET    /document-requirements                 – checklist (?gate=)
  POST   /document-requirements                 – add a checklist row
  GET    /projects/<pid>/documents              – document metadata (?gate=)
  POST   /projects/<pid>/documents              – register an upload
  PATCH  /projects/<pid>/documents/<did>        – update upload status
  GET    /projects/<pid>/document-checklist     – gate checklist with fulfilment
"""

from flask import Blueprint, jsonify, request

from plm.auth import current_user, require_roles, require_user
from plm.blueprints import register_error_handlers
from plm.models.auth import MANAGEMENT_ROLES
from plm.services.document_service import DocumentService

document_bp = Blueprint("document_bp", __name__, url_prefix="/api/v1")
register_error_handlers(document_bp)


@document_bp.route("/document-requirements", methods=["GET"])
def list_requirements():
    gate = request.args.get("gate", type=int)
    return jsonify([r.to_dict() for r in DocumentService().list_requirements(gate)])


@document_bp.route("/document-requirements", methods=["POST"])
@require_user
@require_roles(*MANAGEMENT_ROLES)
def create_requirement():
    """Body: { gate_number, document_type, is_required?, description? }"""
    data = request.get_json(silent=True) or {}
    return jsonify(DocumentService().create_requirement(data).to_dict()), 201


@document_bp.route("/projects/<int:project_id>/documents", methods=["GET"])
def list_documents(project_id):
    gate = request.args.get("gate", type=int)
    return jsonify([d.to_dict() for d in DocumentService().list_documents(project_id, gate)])


@document_bp.route("/projects/<int:project_id>/documents", methods=["POST"])
@require_user
def register_document(project_id):
    """Body: { requirement_id, file_name, file_size?, storage_path?, upload_status? }"""
    data = request.get_json(silent=True) or {}
    doc = DocumentService().register_document(project_id, data, uploader_id=current_user().id)
    return jsonify(doc.to_dict()), 201


@document_bp.route("/projects/<int:project_id>/documents/<int:document_id>", methods=["PATCH"])
@require_user
def update_document(project_id, document_id):
    """Body: { upload_status }"""
    data = request.get_json(silent=True) or {}
    doc = DocumentService().update_status(project_id, document_id, data.get("upload_status"))
    return jsonify(doc.to_dict())


@document_bp.route("/projects/<int:project_id>/document-checklist", methods=["GET"])
def document_checklist(project_id):
    gate = request.args.get("gate", type=int)
    return jsonify(DocumentService().checklist(project_id, gate))
