"""Guard rails for privileged point adjustments: per-pair cooldown and per-admin daily cap."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.database import advisory_xact_lock
from sellscore.db.models import AdminPointAdjustment
from sellscore.gamification.eligibility import ensure_utc, utc_day_start
from sellscore.gamification.errors import CooldownActive, DailyCapExceeded
from sellscore.gamification.ruleset import AdminConfig

logger = logging.getLogger(__name__)


async def last_adjustment_at(db: AsyncSession, admin_id: str, user_id: str) -> datetime | None:
    result = await db.execute(
        select(func.max(AdminPointAdjustment.created_at)).where(
            AdminPointAdjustment.admin_id == admin_id,
            AdminPointAdjustment.user_id == user_id,
        )
    )
    last = result.scalar_one_or_none()
    return ensure_utc(last) if last is not None else None


async def adjusted_today(db: AsyncSession, admin_id: str, now: datetime) -> int:
    """Sum of |points_adjusted| by ``admin_id`` during the current UTC day."""
    start = utc_day_start(now)
    result = await db.execute(
        select(func.coalesce(func.sum(func.abs(AdminPointAdjustment.points_adjusted)), 0)).where(
            AdminPointAdjustment.admin_id == admin_id,
            AdminPointAdjustment.created_at >= start,
            AdminPointAdjustment.created_at < start + timedelta(days=1),
        )
    )
    return int(result.scalar_one())


async def authorize(
    db: AsyncSession,
    admin_id: str,
    user_id: str,
    points: int,
    config: AdminConfig,
    now: datetime | None = None,
) -> None:
    """Check cooldown and daily cap before any mutation.

    Holds a transaction-scoped lock on ``admin_id`` so the checks and the
    caller's adjustment insert cannot interleave with another adjustment by
    the same admin. Raises ``CooldownActive`` or ``DailyCapExceeded``.
    """
    now = ensure_utc(now or datetime.now(timezone.utc))
    await advisory_xact_lock(db, "admin_adjustment", admin_id)

    last = await last_adjustment_at(db, admin_id, user_id)
    if last is not None and config.cooldown_hours > 0:
        available_at = last + timedelta(hours=config.cooldown_hours)
        if now < available_at:
            retry_after = math.ceil((available_at - now).total_seconds())
            logger.info(
                "Adjustment by %s on %s rejected: cooldown %ss remaining", admin_id, user_id, retry_after
            )
            raise CooldownActive(retry_after_seconds=retry_after, cooldown_hours=config.cooldown_hours)

    used = await adjusted_today(db, admin_id, now)
    requested = abs(points)
    if used + requested > config.max_daily_adjustment:
        remaining = max(0, config.max_daily_adjustment - used)
        logger.info("Adjustment by %s rejected: daily cap (%d used, %d requested)", admin_id, used, requested)
        raise DailyCapExceeded(requested=requested, remaining=remaining, cap=config.max_daily_adjustment)


async def record_adjustment(
    db: AsyncSession,
    admin_id: str,
    user_id: str,
    signed_points: int,
    reason: str,
    now: datetime | None = None,
) -> AdminPointAdjustment:
    adjustment = AdminPointAdjustment(
        admin_id=admin_id,
        user_id=user_id,
        points_adjusted=signed_points,
        reason=reason,
        adjustment_type="add" if signed_points > 0 else "subtract",
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(adjustment)
    await db.flush()
    return adjustment
