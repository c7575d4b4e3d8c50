"""
Approval requirement matrix.

One canonical table: (category, gate_number) -> MatrixEntry(approvers, auto_approve).
Approver order is kept for the hierarchy display; completion checks use
set semantics.

The resubmission table is narrower: it lists the roles allowed to reopen a
rejected approval for a (category, gate), typically the role that owns the
work at that stage rather than the approvers.

Usage:
    from plm.services.approval_matrix import required_roles
    required_roles("category_3", 1)   # -> ["bu_director"]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType

from plm.core.exceptions import ConfigGapError
from plm.models.auth import ROLE_LABELS
from plm.models.project import FINAL_GATE, FIRST_GATE, GATE_NAMES
from plm.services.classification import CATEGORIES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatrixEntry:
    """Approvers required for one (category, gate).

    ``auto_approve`` declares that a gate with no approval records counts as
    satisfied; when False, zero records block advancement.
    """
    approvers: tuple[str, ...]
    auto_approve: bool = False

    def to_dict(self) -> dict:
        return {"approvers": list(self.approvers), "auto_approve": self.auto_approve}


def _entry(*approvers: str, auto_approve: bool = False) -> MatrixEntry:
    return MatrixEntry(tuple(approvers), auto_approve)


# ═════════════════════════════════════════════════════════════════════════════
# Canonical requirement matrix
# ═════════════════════════════════════════════════════════════════════════════

APPROVAL_MATRIX: MappingProxyType = MappingProxyType({
    # Gate 1: Early Bid Decision
    ("category_1a", 1): _entry("bid_manager"),
    ("category_1b", 1): _entry("bid_manager"),
    ("category_1c", 1): _entry("bid_manager"),
    ("category_2", 1): _entry("branch_manager"),
    ("category_3", 1): _entry("bu_director"),
    # Gate 2: Bid/No Bid Decision
    ("category_1a", 2): _entry("bid_manager"),
    ("category_1b", 2): _entry("branch_manager"),
    ("category_1c", 2): _entry("branch_manager"),
    ("category_2", 2): _entry("bu_director"),
    ("category_3", 2): _entry("amea_president"),
    # Gate 3: Bid Submission
    ("category_1a", 3): _entry("branch_manager", "finance_manager"),
    ("category_1b", 3): _entry("sales_director", "technical_director"),
    ("category_1c", 3): _entry("bu_director", "finance_manager"),
    ("category_2", 3): _entry("amea_president"),
    ("category_3", 3): _entry("ceo"),
    # Gate 4: Contract Approval
    ("category_1a", 4): _entry("branch_manager", "finance_manager"),
    ("category_1b", 4): _entry("finance_manager", "bu_director"),
    ("category_1c", 4): _entry("bu_director", "finance_manager"),
    ("category_2", 4): _entry("amea_president"),
    ("category_3", 4): _entry("ceo"),
    # Gate 5: Launch Review
    ("category_1a", 5): _entry("branch_manager", "finance_manager"),
    ("category_1b", 5): _entry("branch_manager"),
    ("category_1c", 5): _entry("branch_manager"),
    ("category_2", 5): _entry("bu_director"),
    ("category_3", 5): _entry("bu_director"),
    # Gate 6: Contracted Works Acceptance
    ("category_1a", 6): _entry("branch_manager", "finance_manager"),
    ("category_1b", 6): _entry("branch_manager"),
    ("category_1c", 6): _entry("branch_manager"),
    ("category_2", 6): _entry("branch_manager"),
    ("category_3", 6): _entry("bu_director"),
    # Gate 7: Contract Close & Learning
    ("category_1a", 7): _entry("branch_manager"),
    ("category_1b", 7): _entry("branch_manager"),
    ("category_1c", 7): _entry("branch_manager"),
    ("category_2", 7): _entry("branch_manager"),
    ("category_3", 7): _entry("bu_director"),
})


# ═════════════════════════════════════════════════════════════════════════════
# Resubmission table: who may reopen a rejected approval
# ═════════════════════════════════════════════════════════════════════════════

_BID_PHASE = ("bid_manager",)
_DELIVERY_PHASE = ("project_manager",)
_ESCALATED_CATEGORIES = {"category_2", "category_3"}


def _resubmitters(category: str, gate_number: int) -> tuple[str, ...]:
    roles = _BID_PHASE if gate_number <= 4 else _DELIVERY_PHASE
    if category in _ESCALATED_CATEGORIES:
        roles = roles + ("branch_manager",)
    return roles


RESUBMIT_MATRIX: MappingProxyType = MappingProxyType({
    (category, gate): _resubmitters(category, gate)
    for category in CATEGORIES
    for gate in range(FIRST_GATE, FINAL_GATE + 1)
})


# ═════════════════════════════════════════════════════════════════════════════
# Lookups
# ═════════════════════════════════════════════════════════════════════════════

def matrix_entry(category: str, gate_number: int) -> MatrixEntry:
    """Strict lookup. Raises ConfigGapError when the pair is not configured."""
    entry = APPROVAL_MATRIX.get((category, gate_number))
    if entry is None:
        raise ConfigGapError(category, gate_number)
    return entry


def find_entry(category: str, gate_number: int) -> MatrixEntry:
    """Lenient lookup: a config gap is logged and treated as zero required roles."""
    try:
        return matrix_entry(category, gate_number)
    except ConfigGapError as exc:
        logger.warning(
            "%s; treating as zero required roles", exc,
            extra={"category": category, "gate_number": gate_number},
        )
        return MatrixEntry(())


def required_roles(category: str, gate_number: int) -> list[str]:
    """Ordered approver roles for (category, gate); empty on a config gap."""
    return list(find_entry(category, gate_number).approvers)


def resubmit_roles(category: str, gate_number: int) -> list[str]:
    return list(RESUBMIT_MATRIX.get((category, gate_number), ()))


def gate_name(gate_number: int) -> str:
    return GATE_NAMES.get(gate_number, f"Gate {gate_number}")


def approval_hierarchy(category: str, gate_number: int) -> dict:
    """Display form of one matrix entry: ordered approvers with labels."""
    entry = find_entry(category, gate_number)
    return {
        "category": category,
        "gate_number": gate_number,
        "gate_name": gate_name(gate_number),
        "auto_approve": entry.auto_approve,
        "approvers": [
            {"order": i, "role": role, "role_label": ROLE_LABELS.get(role, role)}
            for i, role in enumerate(entry.approvers, start=1)
        ],
        "resubmit_roles": resubmit_roles(category, gate_number),
    }
