"""
User directory model.

Users are provisioned by the hosted identity service; this table mirrors the
profile the workflow needs: a single business role plus location data used
for reporting.
"""

from plm.models import db
from plm.utils.helpers import utcnow

# ── Roles ────────────────────────────────────────────────────────────────────

USER_ROLES = frozenset({
    "bid_manager",
    "project_manager",
    "branch_manager",
    "bu_director",
    "finance_manager",
    "technical_director",
    "sales_director",
    "amea_president",
    "ceo",
})

# Roles allowed to trigger gate advancement
MANAGEMENT_ROLES = frozenset({"branch_manager", "bu_director", "amea_president", "ceo"})

ROLE_LABELS = {
    "bid_manager": "Bid Manager",
    "branch_manager": "Branch Manager",
    "sales_director": "Sales Director",
    "technical_director": "Technical Director",
    "finance_manager": "Finance Manager",
    "bu_director": "BU Director",
    "amea_president": "AMEA President",
    "ceo": "CEO",
    "project_manager": "Project Manager",
}


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    full_name = db.Column(db.String(200), nullable=False, default="")
    role = db.Column(
        db.String(30),
        nullable=False,
        index=True,
        comment="bid_manager | project_manager | branch_manager | bu_director | ...",
    )
    country = db.Column(db.String(100), nullable=True)
    branch = db.Column(db.String(100), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_management(self) -> bool:
        return self.role in MANAGEMENT_ROLES

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "role_label": ROLE_LABELS.get(self.role, self.role),
            "country": self.country,
            "branch": self.branch,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
