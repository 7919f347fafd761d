"""Pure eligibility rules: level, badges, trophy criteria.

Nothing in this module touches the database. Callers supply the ruleset and
any externally aggregated facts (sales totals, streak length).
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sellscore.gamification.ruleset import (
    AvatarLevel,
    BadgeRule,
    CriterionOperator,
    Period,
    Ruleset,
    TrophyCategory,
    TrophyCriterion,
    TrophyRule,
)

logger = logging.getLogger(__name__)

MANAGER_ROLE = "manager"


@dataclass(frozen=True)
class SalesTotals:
    """Sales count and amount over some window."""

    count: int = 0
    amount: float = 0.0


@dataclass(frozen=True)
class TrophyFacts:
    """Measurements a trophy criterion can be evaluated against."""

    period_totals: Mapping[Period, SalesTotals] = field(default_factory=dict)
    consecutive_best_seller_count: int = 0


# ---------------------------------------------------------------------------
# Levels
# ---------------------------------------------------------------------------


def level_for(total_points: int, ruleset: Ruleset) -> AvatarLevel:
    """Highest avatar level whose required_points <= total_points.

    Defaults to the lowest defined level when nothing matches.
    """
    levels = ruleset.sorted_levels()
    for lvl in reversed(levels):
        if total_points >= lvl.required_points:
            return lvl
    return levels[0]


def level_progress(total_points: int, ruleset: Ruleset) -> dict:
    """Current/next level and percentage progress between them."""
    current = level_for(total_points, ruleset)
    nxt = ruleset.next_level(current.level)
    if nxt is None:
        progress = 100.0
    else:
        span = nxt.required_points - current.required_points
        progress = max(0.0, round((total_points - current.required_points) / span * 100, 2))
    return {"current": current, "next": nxt, "progress": progress}


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


def _meets_manager_requirements(badge: BadgeRule, role: str | None, lifetime: SalesTotals | None) -> bool:
    if role != MANAGER_ROLE or lifetime is None:
        return False
    req = badge.manager_requirements
    if req is None:
        return False
    return lifetime.amount >= req.total_sales and lifetime.count >= req.sales_count


def eligible_badges(
    total_points: int,
    ruleset: Ruleset,
    role: str | None = None,
    lifetime: SalesTotals | None = None,
) -> set[str]:
    """Badge types the user qualifies for at ``total_points``."""
    eligible: set[str] = set()
    for badge in ruleset.badges:
        if not badge.is_active or total_points < badge.required_points:
            continue
        if badge.is_manager_only and not _meets_manager_requirements(badge, role, lifetime):
            continue
        eligible.add(badge.type)
    return eligible


def needs_manager_facts(ruleset: Ruleset) -> bool:
    """Whether any active badge depends on role/lifetime sales."""
    return any(b.is_active and b.is_manager_only for b in ruleset.badges)


# ---------------------------------------------------------------------------
# Trophies
# ---------------------------------------------------------------------------

_OPERATORS: dict[CriterionOperator, Callable[[float, float], bool]] = {
    CriterionOperator.GREATER_THAN: operator.gt,
    CriterionOperator.GREATER_OR_EQUAL: operator.ge,
}


def measure(facts: TrophyFacts, kind: str, period: Period | str) -> float | None:
    """Value of a criterion type for a period, or None if it cannot be measured."""
    if kind == "best_seller_count":
        return float(facts.consecutive_best_seller_count)
    try:
        totals = facts.period_totals.get(Period(period))
    except ValueError:
        return None
    if totals is None:
        return None
    if kind == "sales_amount":
        return float(totals.amount)
    if kind == "sales_count":
        return float(totals.count)
    return None


def evaluate_criterion(criterion: TrophyCriterion, facts: TrophyFacts) -> bool:
    """Evaluate one criterion; unknown operators and unmeasurable types are False."""
    try:
        compare = _OPERATORS[CriterionOperator(criterion.operator)]
    except (ValueError, KeyError):
        logger.debug("Unknown trophy operator %r treated as non-matching", criterion.operator)
        return False
    measured = measure(facts, criterion.type, criterion.period)
    if measured is None:
        return False
    return compare(measured, criterion.value)


def evaluate_trophy(trophy: TrophyRule, facts: TrophyFacts) -> bool:
    """A trophy is won only when it has criteria and all of them hold."""
    if not trophy.is_active or not trophy.criteria:
        return False
    return all(evaluate_criterion(c, facts) for c in trophy.criteria)


def periods_needed(trophies: list[TrophyRule]) -> set[Period]:
    """Sales windows required to evaluate the given (non-streak) trophies."""
    needed: set[Period] = set()
    for trophy in trophies:
        for criterion in trophy.criteria:
            if criterion.type in ("sales_amount", "sales_count"):
                try:
                    needed.add(Period(criterion.period))
                except ValueError:
                    continue
    return needed


PERIOD_TROPHY_CATEGORIES = (
    TrophyCategory.MONTHLY,
    TrophyCategory.QUARTERLY,
    TrophyCategory.YEARLY,
    TrophyCategory.SPECIAL,
)


# ---------------------------------------------------------------------------
# Time windows (UTC)
# ---------------------------------------------------------------------------


def utc_day_start(now: datetime) -> datetime:
    now = ensure_utc(now)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def period_start(period: Period, now: datetime) -> datetime:
    """Start of the calendar window containing ``now``. Weeks start on Monday."""
    day = utc_day_start(now)
    if period is Period.DAILY:
        return day
    if period is Period.WEEKLY:
        return day - timedelta(days=day.weekday())
    if period is Period.MONTHLY:
        return day.replace(day=1)
    if period is Period.QUARTERLY:
        return day.replace(month=(day.month - 1) // 3 * 3 + 1, day=1)
    return day.replace(month=1, day=1)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite returns them naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
