"""
PLM Gate Workflow
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from sqlalchemy.orm import validates

from plm.models import db
from plm.utils.helpers import utcnow

# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "approval_request",
    "gate_advancement",
    "approval_decision",
    "overdue_approval",
    "project_creation",
    "periodic_review",
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "read_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    type = db.Column(db.String(30), nullable=False, comment="approval_request | gate_advancement | ...")
    # ``metadata`` is reserved on declarative classes
    payload = db.Column("metadata", db.JSON, default=dict)

    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    @validates("type")
    def _validate_type(self, key, value):
        if value not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {value}")
        return value

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def mark_read(self):
        if self.read_at is None:
            self.read_at = utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "metadata": self.payload or {},
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
