"""Point ledger: lazy aggregate creation, atomic balance updates, level-up detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.database import insert_ignore
from sellscore.db.models import GamificationEvent, UserGamification
from sellscore.gamification.eligibility import level_for
from sellscore.gamification.notification_service import notify
from sellscore.gamification.ruleset import Ruleset

logger = logging.getLogger(__name__)

POINT_EVENT_TYPES = frozenset({
    "points_earned",
    "points_lost",
    "admin_points_adjustment",
    "no_sales_penalty",
})


@dataclass
class PointsResult:
    gamification: UserGamification
    previous_level: int
    leveled_up: bool


async def get_gamification(db: AsyncSession, user_id: str) -> UserGamification | None:
    result = await db.execute(select(UserGamification).where(UserGamification.user_id == user_id))
    return result.scalar_one_or_none()


async def ensure_gamification(
    db: AsyncSession,
    user_id: str,
    ruleset: Ruleset,
    now: datetime | None = None,
) -> bool:
    """Create the aggregate row at the lowest level if missing.

    Returns True when this call created it. Safe under concurrent callers.
    """
    now = now or datetime.now(timezone.utc)
    start = ruleset.sorted_levels()[0]
    created = await insert_ignore(
        db,
        UserGamification,
        {
            "user_id": user_id,
            "total_points": 0,
            "current_level": start.level,
            "current_avatar_url": start.avatar_url or None,
            "consecutive_best_seller_count": 0,
            "last_best_seller_month": None,
            "created_at": now,
            "updated_at": now,
        },
        index_elements=["user_id"],
    )
    if created:
        logger.info("Created gamification profile for user %s", user_id)
    return created


async def get_or_create_gamification(
    db: AsyncSession,
    user_id: str,
    ruleset: Ruleset,
    now: datetime | None = None,
) -> UserGamification:
    """Get or create the denormalized gamification row for a user."""
    await ensure_gamification(db, user_id, ruleset, now)
    result = await db.execute(
        select(UserGamification)
        .where(UserGamification.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def record_event(
    db: AsyncSession,
    user_id: str,
    event_type: str,
    event_data: dict[str, Any],
    now: datetime | None = None,
) -> GamificationEvent:
    event = GamificationEvent(
        user_id=user_id,
        event_type=event_type,
        event_data=event_data,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(event)
    await db.flush()
    return event


async def apply_points_delta(
    db: AsyncSession,
    user_id: str,
    delta: int,
    reason: str,
    ruleset: Ruleset,
    event_type: str | None = None,
    now: datetime | None = None,
) -> PointsResult:
    """Apply a signed point delta, floored at zero, and recompute the level.

    The balance is changed by a single UPDATE so concurrent callers on the
    same user serialize on the row lock. Exactly one point event is written.
    If the level rose, a ``level_up`` event and notification follow.
    """
    now = now or datetime.now(timezone.utc)
    if event_type is None:
        event_type = "points_earned" if delta > 0 else "points_lost"
    if event_type not in POINT_EVENT_TYPES:
        msg = f"Unknown point event type: {event_type}"
        raise ValueError(msg)

    await ensure_gamification(db, user_id, ruleset, now)

    raw_total = UserGamification.total_points + delta
    result = await db.execute(
        update(UserGamification)
        .where(UserGamification.user_id == user_id)
        .values(total_points=case((raw_total < 0, 0), else_=raw_total), updated_at=now)
        .returning(UserGamification.total_points, UserGamification.current_level)
        .execution_options(synchronize_session=False)
    )
    new_total, previous_level = result.one()

    level = level_for(new_total, ruleset)
    await db.execute(
        update(UserGamification)
        .where(UserGamification.user_id == user_id)
        .values(current_level=level.level, current_avatar_url=level.avatar_url or None)
        .execution_options(synchronize_session=False)
    )

    await record_event(
        db,
        user_id,
        event_type,
        {"points": delta, "reason": reason, "total_points": new_total},
        now,
    )

    leveled_up = level.level > previous_level
    if leveled_up:
        await record_event(
            db,
            user_id,
            "level_up",
            {"old_level": previous_level, "new_level": level.level, "level_name": level.name},
            now,
        )
        await notify(
            db,
            user_id,
            "level_up",
            "Level up!",
            f"You reached level {level.level}: {level.name}",
            icon_url=level.avatar_url or None,
            now=now,
        )
        logger.info("User %s leveled up %d -> %d", user_id, previous_level, level.level)

    gam = await db.get(UserGamification, user_id, populate_existing=True)
    return PointsResult(gamification=gam, previous_level=previous_level, leveled_up=leveled_up)
