"""
Category classification.

A project's category is derived once, at creation, from its revenue (minor
currency units) and risk factor (1..10). Rules are evaluated in order and the
first match wins; anything no rule covers falls back to ``category_1a``.

Usage:
    from plm.services.classification import classify
    classify(1_000_000, 2)   # -> Category.C1B
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Category(str, Enum):
    C1A = "category_1a"
    C1B = "category_1b"
    C1C = "category_1c"
    C2 = "category_2"
    C3 = "category_3"


CATEGORIES = tuple(c.value for c in Category)
FALLBACK_CATEGORY = Category.C1A

MIN_RISK = 1
MAX_RISK = 10


@dataclass(frozen=True)
class ClassificationRule:
    """Half-open revenue band ``[revenue_min, revenue_max)`` plus an inclusive risk band.

    A ``None`` bound is open on that side.
    """
    category: Category
    revenue_min: int | None
    revenue_max: int | None
    risk_min: int | None
    risk_max: int | None

    def matches(self, revenue: int, risk_factor: int) -> bool:
        if self.revenue_min is not None and revenue < self.revenue_min:
            return False
        if self.revenue_max is not None and revenue >= self.revenue_max:
            return False
        return self.matches_risk(risk_factor)

    def matches_risk(self, risk_factor: int) -> bool:
        if self.risk_min is not None and risk_factor < self.risk_min:
            return False
        if self.risk_max is not None and risk_factor > self.risk_max:
            return False
        return True


# Priority order; first match wins
RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(Category.C1A, None, 500_000, None, 3),
    ClassificationRule(Category.C1B, 500_000, 2_000_000, None, 3),
    ClassificationRule(Category.C1C, 2_000_000, 5_000_000, None, 5),
    ClassificationRule(Category.C2, 5_000_000, 30_000_000, 5, None),
    ClassificationRule(Category.C3, 30_000_000, None, None, None),
)


def classify(revenue: int, risk_factor: int) -> Category:
    """Return the category for (revenue, risk_factor). Total: never raises."""
    for rule in RULES:
        if rule.matches(revenue, risk_factor):
            return rule.category
    logger.debug(
        "No classification rule matched revenue=%s risk=%s, using fallback %s",
        revenue, risk_factor, FALLBACK_CATEGORY.value,
    )
    return FALLBACK_CATEGORY


def matched_rule(revenue: int, risk_factor: int) -> ClassificationRule | None:
    """The rule that classified the pair, or None when the fallback applied."""
    for rule in RULES:
        if rule.matches(revenue, risk_factor):
            return rule
    return None


def classification_gaps() -> list[dict]:
    """Revenue/risk regions that no rule covers and therefore hit the fallback.

    Within rule bands, the risk values each band leaves uncovered. Used for
    reporting; the boundaries come from ``RULES`` so the list stays in step
    with them.
    """
    gaps = []
    for rule in RULES:
        uncovered = [r for r in range(MIN_RISK, MAX_RISK + 1) if not rule.matches_risk(r)]
        if not uncovered:
            continue
        gaps.append({
            "revenue_min": rule.revenue_min,
            "revenue_max": rule.revenue_max,
            "risk_factors": uncovered,
            "falls_back_to": FALLBACK_CATEGORY.value,
        })
    return gaps
