"""Persisted user notifications (rows only, no push delivery)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.db.models import GamificationNotification
from sellscore.gamification.errors import NotFound

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = frozenset({
    "badge",
    "trophy",
    "level_up",
    "daily_goal",
    "penalty",
    "admin_adjustment",
    "no_sales_penalty",
})


async def notify(
    db: AsyncSession,
    user_id: str,
    type_: str,
    title: str,
    message: str,
    points: int | None = None,
    icon_url: str | None = None,
    now: datetime | None = None,
) -> GamificationNotification:
    """Append a notification row in the caller's transaction."""
    if type_ not in NOTIFICATION_TYPES:
        msg = f"Unknown notification type: {type_}"
        raise ValueError(msg)
    notification = GamificationNotification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        points=points,
        icon_url=icon_url,
        is_read=False,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()
    return notification


async def list_notifications(
    db: AsyncSession,
    user_id: str,
    unread_only: bool = False,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[GamificationNotification], int, int]:
    """Newest-first page of notifications plus (total, unread) counts."""
    query = select(GamificationNotification).where(GamificationNotification.user_id == user_id)
    if unread_only:
        query = query.where(GamificationNotification.is_read == False)  # noqa: E712
    result = await db.execute(
        query.order_by(GamificationNotification.created_at.desc(), GamificationNotification.id.desc())
        .offset(offset)
        .limit(limit)
    )
    items = list(result.scalars().all())

    total_result = await db.execute(
        select(func.count()).select_from(GamificationNotification).where(
            GamificationNotification.user_id == user_id
        )
    )
    unread_result = await db.execute(
        select(func.count()).select_from(GamificationNotification).where(
            GamificationNotification.user_id == user_id,
            GamificationNotification.is_read == False,  # noqa: E712
        )
    )
    return items, total_result.scalar_one(), unread_result.scalar_one()


async def mark_read(db: AsyncSession, user_id: str, notification_id: int) -> None:
    """Mark one of the user's notifications read. Idempotent."""
    result = await db.execute(
        update(GamificationNotification)
        .where(
            GamificationNotification.id == notification_id,
            GamificationNotification.user_id == user_id,
        )
        .values(is_read=True)
        .returning(GamificationNotification.id)
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Notification not found", notification_id=notification_id)
