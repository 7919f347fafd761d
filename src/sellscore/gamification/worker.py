"""Scheduled gamification jobs (arq).

Run with: arq sellscore.gamification.worker.WorkerSettings
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from arq import cron
from arq.connections import RedisSettings
from sqlalchemy import select, union
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.config import get_settings
from sellscore.database import close_db, get_session, init_db
from sellscore.db.models import Profile, UserGamification
from sellscore.gamification.config_store import get_config_store
from sellscore.gamification.engine import ScoringEngine
from sellscore.gamification.errors import ScoringError
from sellscore.gamification.providers import SqlMonthlyStatsProvider
from sellscore.gamification.streak_service import month_of, previous_month

logger = logging.getLogger(__name__)


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


def _engine(db: AsyncSession) -> ScoringEngine:
    return ScoringEngine(db, config_store=get_config_store(), admin_roles=get_settings().admin_roles)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize the DB engine on worker startup."""
    await init_db(get_settings().database_url)
    logger.info("Gamification worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    logger.info("Gamification worker shut down")


async def sweep_candidates(db: AsyncSession) -> list[str]:
    """Users subject to the no-sales check: gamified users plus active sellers and managers."""
    query = union(
        select(UserGamification.user_id.label("user_id")),
        select(Profile.id.label("user_id")).where(
            Profile.is_active == True,  # noqa: E712
            Profile.role.in_(("seller", "manager")),
        ),
    )
    result = await db.execute(query)
    return sorted(result.scalars().all())


async def no_sales_sweep(ctx: dict) -> int:  # type: ignore[type-arg]
    """Daily task: apply the no-sales penalty to every user without a sale today."""
    db = await _get_db_session()
    try:
        user_ids = await sweep_candidates(db)
    finally:
        await db.close()

    penalized = 0
    for user_id in user_ids:
        db = await _get_db_session()
        try:
            if await _engine(db).apply_no_sales_penalty(user_id) is not None:
                penalized += 1
        except ScoringError:
            logger.exception("No-sales penalty failed for user %s", user_id)
        finally:
            await db.close()

    logger.info("No-sales sweep: %d of %d users penalized", penalized, len(user_ids))
    return penalized


async def monthly_best_seller(ctx: dict, month: str | None = None) -> str | None:  # type: ignore[type-arg]
    """Monthly task: rank last month's sellers and extend the winner's streak."""
    month = month or previous_month(month_of(datetime.now(timezone.utc)))

    db = await _get_db_session()
    try:
        stats = SqlMonthlyStatsProvider(db)
        await stats.refresh_month(month)
        await db.commit()
        top = await stats.top_seller(month)
    finally:
        await db.close()

    if top is None:
        logger.info("No sales recorded for %s, no best seller", month)
        return None

    db = await _get_db_session()
    try:
        gam = await _engine(db).update_best_seller_status(top, month)
        logger.info("Best seller of %s: %s (streak %d)", month, top, gam.consecutive_best_seller_count)
    finally:
        await db.close()
    return top


def _cron_jobs() -> list:
    settings = get_settings()
    return [
        cron(
            no_sales_sweep,
            hour={settings.no_sales_sweep_hour},
            minute={settings.no_sales_sweep_minute},
            run_at_startup=False,
        ),
        cron(
            monthly_best_seller,
            day={settings.best_seller_day_of_month},
            hour={settings.best_seller_hour},
            minute={0},
        ),
    ]


class WorkerSettings:
    """arq worker settings for the scheduled gamification jobs."""

    functions = [no_sales_sweep, monthly_best_seller]
    cron_jobs = _cron_jobs()
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = 4
    job_timeout = 600
