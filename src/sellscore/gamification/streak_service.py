"""Consecutive best-seller month tracking.

Months are ``YYYY-MM`` strings in UTC. A streak continues only when the new
month is exactly one calendar month after the last recorded one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.database import lock_row
from sellscore.db.models import UserGamification
from sellscore.gamification.eligibility import ensure_utc
from sellscore.gamification.errors import ValidationError
from sellscore.gamification.points_service import ensure_gamification
from sellscore.gamification.providers import MonthlyStatsProvider
from sellscore.gamification.ruleset import Ruleset

logger = logging.getLogger(__name__)

_MONTH_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def parse_month(month: str) -> tuple[int, int]:
    """Split a YYYY-MM string into (year, month); ValidationError otherwise."""
    match = _MONTH_RE.match(month or "")
    if match is None:
        raise ValidationError("Month must be formatted YYYY-MM", month=month)
    return int(match.group(1)), int(match.group(2))


def month_of(dt: datetime) -> str:
    dt = ensure_utc(dt)
    return f"{dt.year:04d}-{dt.month:02d}"


def previous_month(month: str) -> str:
    year, mon = parse_month(month)
    if mon == 1:
        return f"{year - 1:04d}-12"
    return f"{year:04d}-{mon - 1:02d}"


def _month_index(month: str) -> int:
    year, mon = parse_month(month)
    return year * 12 + (mon - 1)


def is_consecutive_month(first: str, second: str) -> bool:
    """True iff ``second`` is exactly one calendar month after ``first``."""
    return _month_index(second) - _month_index(first) == 1


def next_streak(last_month: str | None, count: int, month: str) -> int:
    """Streak length after ``month`` is recorded as a best-seller month.

    Months at or before the last recorded one leave the count unchanged.
    """
    if last_month is None:
        return 1
    if _month_index(month) <= _month_index(last_month):
        return count
    if is_consecutive_month(last_month, month):
        return count + 1
    return 1


@dataclass
class StreakUpdate:
    gamification: UserGamification | None
    is_best_seller: bool
    changed: bool
    count: int


async def update_best_seller_status(
    db: AsyncSession,
    user_id: str,
    month: str,
    ruleset: Ruleset,
    monthly_stats: MonthlyStatsProvider,
    now: datetime | None = None,
) -> StreakUpdate:
    """Record ``month`` as a best-seller month for the user if they topped it.

    Consecutive-trophy evaluation on the returned count is left to the caller.
    """
    parse_month(month)
    now = now or datetime.now(timezone.utc)

    top = await monthly_stats.top_seller(month)
    if top != user_id:
        logger.debug("User %s is not the best seller of %s (top: %s)", user_id, month, top)
        return StreakUpdate(gamification=None, is_best_seller=False, changed=False, count=0)

    await monthly_stats.mark_best_seller(user_id, month)
    await ensure_gamification(db, user_id, ruleset, now)
    gam = await lock_row(db, UserGamification, UserGamification.user_id == user_id)

    count = next_streak(gam.last_best_seller_month, gam.consecutive_best_seller_count, month)
    # Months at or before the recorded one never rewind last_best_seller_month or the count
    if gam.last_best_seller_month is not None and _month_index(month) <= _month_index(gam.last_best_seller_month):
        return StreakUpdate(gamification=gam, is_best_seller=True, changed=False, count=count)

    await db.execute(
        update(UserGamification)
        .where(UserGamification.user_id == user_id)
        .values(consecutive_best_seller_count=count, last_best_seller_month=month, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    gam = await db.get(UserGamification, user_id, populate_existing=True)
    logger.info("User %s best seller of %s, streak now %d", user_id, month, count)
    return StreakUpdate(gamification=gam, is_best_seller=True, changed=True, count=count)
