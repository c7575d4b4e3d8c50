"""
PLM Gate Workflow
Project domain models.

Models:
    - Project: a bid / contract routed through the 7-gate workflow
    - GateRecord: per-gate tracking row (started / completed / deadline)
"""

from sqlalchemy.orm import validates

from plm.models import db
from plm.utils.helpers import utcnow

# ── Constants ────────────────────────────────────────────────────────────────

GATE_NAMES = {
    1: "Early Bid Decision",
    2: "Bid/No Bid Decision",
    3: "Bid Submission",
    4: "Contract Approval",
    5: "Launch Review",
    6: "Contracted Works Acceptance",
    7: "Contract Close & Learning",
}
FIRST_GATE = 1
FINAL_GATE = 7

PROJECT_STATUSES = {"opportunity", "bidding", "contract_review", "in_progress", "completed"}
GATE_STATUSES = {"in_progress", "approved"}


# ── Project ──────────────────────────────────────────────────────────────────


class Project(db.Model):
    """
    Project routed through the gate workflow.

    ``category`` is derived from (revenue, risk_factor) once, at creation,
    and never reassigned. ``current_gate`` only moves forward one gate at a
    time; the gate service performs that move as a conditional UPDATE.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    client_name = db.Column(db.String(200), nullable=False, default="")
    description = db.Column(db.Text, default="")
    revenue = db.Column(db.BigInteger, nullable=False, comment="Minor currency units")
    risk_factor = db.Column(db.Integer, nullable=False, comment="1..10")
    country = db.Column(db.String(100), nullable=True)
    technique = db.Column(db.String(100), nullable=True)
    category = db.Column(
        db.String(20),
        nullable=False,
        index=True,
        comment="category_1a | category_1b | category_1c | category_2 | category_3",
    )
    current_gate = db.Column(db.Integer, nullable=False, default=FIRST_GATE)
    status = db.Column(
        db.String(30),
        nullable=False,
        default="opportunity",
        comment="opportunity | bidding | contract_review | in_progress | completed",
    )
    next_review_date = db.Column(db.Date, nullable=True)

    bid_manager_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    project_manager_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    bid_manager = db.relationship("User", foreign_keys=[bid_manager_id])
    project_manager = db.relationship("User", foreign_keys=[project_manager_id])
    creator = db.relationship("User", foreign_keys=[created_by])

    approvals = db.relationship(
        "ProjectApproval", backref="project", lazy="dynamic", cascade="all, delete-orphan",
    )
    gate_records = db.relationship(
        "GateRecord", backref="project", lazy="dynamic", cascade="all, delete-orphan",
    )
    documents = db.relationship(
        "Document", backref="project", lazy="dynamic", cascade="all, delete-orphan",
    )

    @validates("category")
    def _validate_category(self, key, value):
        if self.category is not None and value != self.category:
            raise ValueError("Project category is immutable once assigned")
        return value

    @validates("current_gate")
    def _validate_current_gate(self, key, value):
        if value is None or not FIRST_GATE <= value <= FINAL_GATE:
            raise ValueError(f"current_gate must be between {FIRST_GATE} and {FINAL_GATE}")
        if self.current_gate is not None and value not in (self.current_gate, self.current_gate + 1):
            raise ValueError("current_gate may only advance by one gate at a time")
        return value

    @property
    def gate_name(self) -> str:
        return GATE_NAMES.get(self.current_gate, "")

    @property
    def stakeholder_ids(self) -> list[int]:
        """Bid manager, project manager and creator (deduplicated, order kept)."""
        ids = []
        for uid in (self.bid_manager_id, self.project_manager_id, self.created_by):
            if uid and uid not in ids:
                ids.append(uid)
        return ids

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "client_name": self.client_name,
            "description": self.description,
            "revenue": self.revenue,
            "risk_factor": self.risk_factor,
            "country": self.country,
            "technique": self.technique,
            "category": self.category,
            "current_gate": self.current_gate,
            "gate_name": self.gate_name,
            "status": self.status,
            "next_review_date": self.next_review_date.isoformat() if self.next_review_date else None,
            "bid_manager_id": self.bid_manager_id,
            "project_manager_id": self.project_manager_id,
            "created_by": self.created_by,
            "bid_manager": self.bid_manager.full_name if self.bid_manager else None,
            "project_manager": self.project_manager.full_name if self.project_manager else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name} gate={self.current_gate}>"


# ── GateRecord ───────────────────────────────────────────────────────────────


class GateRecord(db.Model):
    """
    Tracking row for one gate of one project.

    Opened when the gate becomes active, closed (status=approved) when the
    project advances past it. The metrics aggregator reads these rows.
    """

    __tablename__ = "gates"
    __table_args__ = (
        db.UniqueConstraint("project_id", "gate_number", name="uq_gates_project_gate"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    gate_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="in_progress", comment="in_progress | approved")
    started_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)

    @validates("status")
    def _validate_status(self, key, value):
        if value not in GATE_STATUSES:
            raise ValueError(f"Unknown gate status: {value}")
        return value

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "gate_number": self.gate_number,
            "gate_name": GATE_NAMES.get(self.gate_number, ""),
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "deadline": self.deadline.isoformat() if self.deadline else None,
        }

    def __repr__(self):
        return f"<GateRecord project={self.project_id} gate={self.gate_number} {self.status}>"
