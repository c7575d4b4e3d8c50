"""
Notification routing matrix.

    route(category, gate_number, action_type) -> Route(approvers, notify, inform, notice_days)

* approvers: the requirement matrix approvers for the gate
* notify: roles that must be told about the gate (escalation chain)
* inform: wider stakeholder roles kept informed about the gate
* notice_days: advance-notice period the notify roles expect (metadata only)

``approval_request`` reaches approvers ∪ notify; every other action reaches
approvers ∪ notify ∪ inform. The ``project_review_team`` pseudo-role is
expanded here, once, when a route is built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType

from plm.services.approval_matrix import required_roles

logger = logging.getLogger(__name__)

# ── Action types ─────────────────────────────────────────────────────────────

APPROVAL_REQUEST = "approval_request"
APPROVAL_DECISION = "approval_decision"
GATE_ADVANCEMENT = "gate_advancement"
OVERDUE_APPROVAL = "overdue_approval"
PROJECT_CREATION = "project_creation"
PERIODIC_REVIEW = "periodic_review"

ACTION_TYPES = frozenset({
    APPROVAL_REQUEST,
    APPROVAL_DECISION,
    GATE_ADVANCEMENT,
    OVERDUE_APPROVAL,
    PROJECT_CREATION,
    PERIODIC_REVIEW,
})

# ── Pseudo-roles ─────────────────────────────────────────────────────────────

PSEUDO_ROLES = MappingProxyType({
    "project_review_team": (
        "bu_director",
        "division_amea",
        "group_executive",
        "technical_director",
        "finance_director",
    ),
})


@dataclass(frozen=True)
class NotifyEntry:
    roles: tuple[str, ...]
    notice_days: int | None = None


def _n(*roles: str, notice_days: int | None = None) -> NotifyEntry:
    return NotifyEntry(tuple(roles), notice_days)


# ═════════════════════════════════════════════════════════════════════════════
# Notify roles (escalation chain) per (category, gate)
# ═════════════════════════════════════════════════════════════════════════════

NOTIFY_MATRIX: MappingProxyType = MappingProxyType({
    ("category_1a", 1): _n("branch_manager"),
    ("category_1b", 1): _n("branch_manager"),
    ("category_1c", 1): _n("branch_manager"),
    ("category_2", 1): _n("bu_director"),
    ("category_3", 1): _n("amea_president"),

    ("category_1a", 2): _n("sales_director", "technical_director", "branch_manager"),
    ("category_1b", 2): _n("sales_director", "technical_director", "bu_director"),
    ("category_1c", 2): _n("sales_director", "technical_director", "bu_director"),
    ("category_2", 2): _n("amea_president", notice_days=1),
    ("category_3", 2): _n("ceo", notice_days=3),

    ("category_1a", 3): _n("bu_director"),
    ("category_1b", 3): _n("bu_director", "finance_manager"),
    ("category_1c", 3): _n("amea_president"),
    ("category_2", 3): _n("project_review_team", notice_days=3),
    ("category_3", 3): _n("project_review_team", notice_days=7),

    ("category_1a", 4): _n("bu_director"),
    ("category_1b", 4): _n("amea_president"),
    ("category_1c", 4): _n("amea_president"),
    ("category_2", 4): _n("ceo", notice_days=3),
    ("category_3", 4): _n("board_members", notice_days=7),

    ("category_1a", 5): _n("project_manager"),
    ("category_1b", 5): _n("project_manager", "bu_director"),
    ("category_1c", 5): _n("project_manager", "bu_director"),
    ("category_2", 5): _n("project_manager", "amea_president"),
    ("category_3", 5): _n("project_manager", "amea_president"),

    ("category_1a", 6): _n("project_manager"),
    ("category_1b", 6): _n("project_manager", "bu_director"),
    ("category_1c", 6): _n("project_manager", "bu_director"),
    ("category_2", 6): _n("project_manager", "bu_director"),
    ("category_3", 6): _n("project_manager", "amea_president"),

    ("category_1a", 7): _n("project_manager", "finance_manager"),
    ("category_1b", 7): _n("project_manager", "bu_director"),
    ("category_1c", 7): _n("project_manager", "bu_director"),
    ("category_2", 7): _n("project_manager", "bu_director"),
    ("category_3", 7): _n("project_manager", "amea_president"),
})


# ═════════════════════════════════════════════════════════════════════════════
# Inform roles (stakeholders kept in the loop) per category, gate
# ═════════════════════════════════════════════════════════════════════════════

INFORM_MATRIX: MappingProxyType = MappingProxyType({
    "category_1a": {
        1: ("branch_manager",),
        2: ("branch_manager",),
        3: ("branch_manager", "finance_manager"),
        4: ("branch_manager", "finance_manager"),
        5: ("branch_manager", "finance_manager"),
        6: ("branch_manager", "finance_manager"),
        7: ("branch_manager",),
    },
    "category_1b": {
        1: ("branch_manager",),
        2: ("branch_manager", "sales_director", "technical_director"),
        3: ("sales_director", "technical_director"),
        4: ("finance_manager", "bu_director"),
        5: ("branch_manager",),
        6: ("branch_manager",),
        7: ("branch_manager",),
    },
    "category_1c": {
        1: ("branch_manager",),
        2: ("branch_manager", "sales_director", "technical_director", "bu_director"),
        3: ("bu_director", "finance_manager"),
        4: ("bu_director", "finance_manager"),
        5: ("branch_manager",),
        6: ("branch_manager",),
        7: ("branch_manager",),
    },
    "category_2": {
        1: ("bu_director",),
        2: ("bu_director",),
        3: ("bu_director",),
        4: ("amea_president",),
        5: ("branch_manager",),
        6: ("branch_manager",),
        7: ("branch_manager",),
    },
    "category_3": {
        1: ("amea_president",),
        2: ("amea_president",),
        3: ("amea_president",),
        4: ("ceo",),
        5: ("bu_director",),
        6: ("bu_director",),
        7: ("bu_director",),
    },
})


# ═════════════════════════════════════════════════════════════════════════════
# Route
# ═════════════════════════════════════════════════════════════════════════════

def expand_roles(roles) -> tuple[str, ...]:
    """Replace pseudo-roles by their members; order kept, duplicates dropped."""
    out: list[str] = []
    for role in roles:
        for member in PSEUDO_ROLES.get(role, (role,)):
            if member not in out:
                out.append(member)
    return tuple(out)


def _union(*groups) -> list[str]:
    out: list[str] = []
    for group in groups:
        for role in group:
            if role not in out:
                out.append(role)
    return out


@dataclass(frozen=True)
class Route:
    category: str
    gate_number: int
    action_type: str
    approvers: tuple[str, ...]
    notify: tuple[str, ...]
    inform: tuple[str, ...]
    notice_days: int | None = None

    @property
    def recipients(self) -> list[str]:
        """Roles to notify for this action (ordered, deduplicated)."""
        if self.action_type == APPROVAL_REQUEST:
            return _union(self.approvers, self.notify)
        return _union(self.approvers, self.notify, self.inform)

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "gate_number": self.gate_number,
            "action_type": self.action_type,
            "approvers": list(self.approvers),
            "notify": list(self.notify),
            "inform": list(self.inform),
            "notice_days": self.notice_days,
            "recipients": self.recipients,
        }


def route(category: str, gate_number: int, action_type: str) -> Route:
    """Build the routing entry for (category, gate, action). Missing config yields empty role sets."""
    if action_type not in ACTION_TYPES:
        raise ValueError(f"Unknown notification action: {action_type}")
    notify_entry = NOTIFY_MATRIX.get((category, gate_number))
    inform = INFORM_MATRIX.get(category, {}).get(gate_number, ())
    if notify_entry is None:
        logger.warning(
            "No notification routing for %s gate %s", category, gate_number,
            extra={"category": category, "gate_number": gate_number},
        )
        notify_entry = NotifyEntry(())
    return Route(
        category=category,
        gate_number=gate_number,
        action_type=action_type,
        approvers=tuple(required_roles(category, gate_number)),
        notify=expand_roles(notify_entry.roles),
        inform=expand_roles(inform),
        notice_days=notify_entry.notice_days,
    )
