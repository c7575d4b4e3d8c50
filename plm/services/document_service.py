"""
PLM Gate Workflow
Document Service.

Per-gate document checklist (reference data) and upload metadata for
projects. File bytes are stored elsewhere; only metadata lives here. A
requirement is fulfilled for a project once any of its documents reaches
``completed``.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from plm.core.exceptions import ConflictError, NotFoundError, ValidationError
from plm.models import db
from plm.models.document import (
    DEFAULT_DOCUMENT_REQUIREMENTS,
    UPLOAD_STATUSES,
    Document,
    DocumentRequirement,
)
from plm.models.project import FINAL_GATE, FIRST_GATE, Project

logger = logging.getLogger(__name__)


class DocumentService:
    def __init__(self, session=None):
        self.session = session or db.session

    # ── Requirements ──────────────────────────────────────────────────────

    def list_requirements(self, gate_number: int | None = None) -> list[DocumentRequirement]:
        q = self.session.query(DocumentRequirement)
        if gate_number is not None:
            q = q.filter(DocumentRequirement.gate_number == gate_number)
        return q.order_by(DocumentRequirement.gate_number, DocumentRequirement.id).all()

    def create_requirement(self, data: dict) -> DocumentRequirement:
        errors = {}
        try:
            gate_number = int(data.get("gate_number"))
        except (TypeError, ValueError):
            gate_number = None
        if gate_number is None or not FIRST_GATE <= gate_number <= FINAL_GATE:
            errors["gate_number"] = f"must be between {FIRST_GATE} and {FINAL_GATE}"
        document_type = data.get("document_type") or ""
        if not isinstance(document_type, str):
            errors["document_type"] = "must be a string"
        elif not document_type.strip():
            errors["document_type"] = "required"
        else:
            document_type = document_type.strip()
        if errors:
            raise ValidationError("Invalid document requirement", details=errors)

        req = DocumentRequirement(
            gate_number=gate_number,
            document_type=document_type,
            is_required=bool(data.get("is_required", True)),
            description=data.get("description") or "",
        )
        self.session.add(req)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("DocumentRequirement", "document_type", f"{gate_number}/{document_type}")
        return req

    def seed_default_requirements(self) -> int:
        """Insert the default checklist rows that are not present yet. Returns the count added."""
        existing = {
            (g, t) for g, t in self.session.query(
                DocumentRequirement.gate_number, DocumentRequirement.document_type,
            )
        }
        added = 0
        for row in DEFAULT_DOCUMENT_REQUIREMENTS:
            if (row["gate_number"], row["document_type"]) in existing:
                continue
            self.session.add(DocumentRequirement(**row))
            added += 1
        self.session.commit()
        logger.info("Seeded %d document requirements", added)
        return added

    # ── Project documents ─────────────────────────────────────────────────

    def _project_or_404(self, project_id) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        return project

    def list_documents(self, project_id: int, gate_number: int | None = None) -> list[Document]:
        self._project_or_404(project_id)
        q = self.session.query(Document).filter(Document.project_id == project_id)
        if gate_number is not None:
            q = q.join(DocumentRequirement).filter(DocumentRequirement.gate_number == gate_number)
        return q.order_by(Document.created_at.desc(), Document.id.desc()).all()

    def register_document(self, project_id: int, data: dict, uploader_id: int | None = None) -> Document:
        project = self._project_or_404(project_id)
        errors = {}
        requirement = None
        try:
            requirement = self.session.get(DocumentRequirement, int(data.get("requirement_id")))
        except (TypeError, ValueError):
            pass
        if requirement is None:
            errors["requirement_id"] = "unknown document requirement"
        file_name = data.get("file_name") or ""
        if not isinstance(file_name, str):
            errors["file_name"] = "must be a string"
        elif not file_name.strip():
            errors["file_name"] = "required"
        else:
            file_name = file_name.strip()
        status = data.get("upload_status") or "completed"
        if not isinstance(status, str) or status not in UPLOAD_STATUSES:
            errors["upload_status"] = f"must be one of {sorted(UPLOAD_STATUSES)}"
        if errors:
            raise ValidationError("Invalid document", details=errors)

        doc = Document(
            project_id=project.id,
            requirement_id=requirement.id,
            file_name=file_name,
            file_size=data.get("file_size"),
            storage_path=data.get("storage_path"),
            upload_status=status,
            uploaded_by=uploader_id,
        )
        self.session.add(doc)
        self.session.commit()
        logger.info(
            "Document %s registered (%s)", requirement.document_type, status,
            extra={"project_id": project.id, "gate_number": requirement.gate_number},
        )
        return doc

    def update_status(self, project_id: int, document_id: int, status: str) -> Document:
        doc = self.session.get(Document, document_id)
        if doc is None or doc.project_id != project_id:
            raise NotFoundError(resource="Document", resource_id=document_id)
        if not isinstance(status, str) or status not in UPLOAD_STATUSES:
            raise ValidationError("Invalid upload status", details={"upload_status": status})
        doc.upload_status = status
        self.session.commit()
        return doc

    def checklist(self, project_id: int, gate_number: int | None = None) -> list[dict]:
        """Requirements for a gate (default: the project's current gate) with fulfilment flags."""
        project = self._project_or_404(project_id)
        gate = gate_number or project.current_gate
        requirements = self.list_requirements(gate)
        completed = {
            rid for (rid,) in self.session.query(Document.requirement_id).filter(
                Document.project_id == project.id, Document.upload_status == "completed",
            )
        }
        return [{**r.to_dict(), "fulfilled": r.id in completed} for r in requirements]
