"""
PLM Gate Workflow
Approval domain models.

Models:
    - ProjectApproval: one required sign-off (role) for one project gate
    - ApprovalComment: append-only comment trail for an approval

A full set of ProjectApproval rows is created together when a gate becomes
active. Rows are never deleted; a rejected row may be reopened (resubmitted),
and every decision / resubmission note is kept as its own ApprovalComment so
the history survives the reopen.
"""

from sqlalchemy.orm import validates

from plm.models import db
from plm.utils.helpers import as_utc, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

APPROVAL_STATUSES = {"pending", "approved", "rejected"}
APPROVAL_DECISIONS = {"approved", "rejected"}
COMMENT_KINDS = {"decision", "resubmission"}


class ProjectApproval(db.Model):
    """Required approval of one role for one (project, gate)."""

    __tablename__ = "project_approvals"
    __table_args__ = (
        db.Index("ix_project_approvals_project_gate", "project_id", "gate_number"),
        db.Index("ix_project_approvals_status_due", "status", "due_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
    )
    gate_number = db.Column(db.Integer, nullable=False)
    required_role = db.Column(db.String(30), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending", comment="pending | approved | rejected")
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    approved_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    approver = db.relationship("User", foreign_keys=[approved_by])
    comments = db.relationship(
        "ApprovalComment",
        backref="approval",
        lazy="select",
        order_by="ApprovalComment.id",
        cascade="all, delete-orphan",
    )

    @validates("status")
    def _validate_status(self, key, value):
        if value not in APPROVAL_STATUSES:
            raise ValueError(f"Unknown approval status: {value}")
        return value

    def is_overdue(self, now=None) -> bool:
        if self.status != "pending" or self.due_date is None:
            return False
        return as_utc(self.due_date) < (now or utcnow())

    def to_dict(self, include_project=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "gate_number": self.gate_number,
            "required_role": self.required_role,
            "status": self.status,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "is_overdue": self.is_overdue(),
            "approved_by": self.approved_by,
            "approver_name": self.approver.full_name if self.approver else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "comments": [c.to_dict() for c in self.comments],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_project and self.project is not None:
            d["project"] = {
                "name": self.project.name,
                "client_name": self.project.client_name,
                "category": self.project.category,
                "revenue": self.project.revenue,
                "risk_factor": self.project.risk_factor,
            }
        return d

    def __repr__(self):
        return f"<ProjectApproval {self.id}: p={self.project_id} g={self.gate_number} {self.required_role}={self.status}>"


class ApprovalComment(db.Model):
    """Immutable note attached to an approval (decision or resubmission)."""

    __tablename__ = "approval_comments"

    id = db.Column(db.Integer, primary_key=True)
    approval_id = db.Column(
        db.Integer, db.ForeignKey("project_approvals.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    kind = db.Column(db.String(20), nullable=False, comment="decision | resubmission")
    text = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    author = db.relationship("User", foreign_keys=[author_id])

    @validates("kind")
    def _validate_kind(self, key, value):
        if value not in COMMENT_KINDS:
            raise ValueError(f"Unknown comment kind: {value}")
        return value

    def to_dict(self):
        return {
            "id": self.id,
            "author_id": self.author_id,
            "author_name": self.author.full_name if self.author else None,
            "kind": self.kind,
            "text": self.text,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
