"""
PLM Gate Workflow
Gate document models.

Models:
    - DocumentRequirement: static per-gate document checklist
    - Document: upload metadata for one project against one requirement
"""

from plm.models import db
from plm.utils.helpers import utcnow

UPLOAD_STATUSES = {"completed", "pending", "failed"}

# Default checklist loaded by ``flask seed-document-requirements``
DEFAULT_DOCUMENT_REQUIREMENTS = (
    {"gate_number": 1, "document_type": "Opportunity Brief", "is_required": False,
     "description": "Short summary of the opportunity and client"},
    {"gate_number": 2, "document_type": "BAR", "is_required": True,
     "description": "Bid Approval Request"},
    {"gate_number": 3, "document_type": "Technical Proposal", "is_required": True,
     "description": "Technical offer submitted to the client"},
    {"gate_number": 3, "document_type": "Risk Register", "is_required": True,
     "description": "Identified risks with mitigation owners"},
    {"gate_number": 4, "document_type": "CAR", "is_required": True,
     "description": "Contract Approval Request"},
)


class DocumentRequirement(db.Model):
    __tablename__ = "document_requirements"
    __table_args__ = (
        db.UniqueConstraint("gate_number", "document_type", name="uq_docreq_gate_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    gate_number = db.Column(db.Integer, nullable=False, index=True)
    document_type = db.Column(db.String(100), nullable=False)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    description = db.Column(db.Text, default="")

    documents = db.relationship("Document", backref="requirement", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "gate_number": self.gate_number,
            "document_type": self.document_type,
            "is_required": self.is_required,
            "description": self.description,
        }


class Document(db.Model):
    """Upload metadata only; file bytes live in external storage."""

    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    requirement_id = db.Column(
        db.Integer, db.ForeignKey("document_requirements.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    file_name = db.Column(db.String(300), nullable=False)
    file_size = db.Column(db.Integer, nullable=True)
    storage_path = db.Column(db.String(500), nullable=True)
    upload_status = db.Column(db.String(20), nullable=False, default="pending", comment="completed | pending | failed")
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "requirement_id": self.requirement_id,
            "document_type": self.requirement.document_type if self.requirement else None,
            "gate_number": self.requirement.gate_number if self.requirement else None,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "storage_path": self.storage_path,
            "upload_status": self.upload_status,
            "uploaded_by": self.uploaded_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
