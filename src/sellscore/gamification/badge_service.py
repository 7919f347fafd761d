"""Badge and trophy awarding with duplicate prevention and notification."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.database import insert_ignore
from sellscore.db.models import UserAchievement, UserBadge
from sellscore.gamification.eligibility import SalesTotals, eligible_badges
from sellscore.gamification.errors import ConflictAlreadyAwarded
from sellscore.gamification.notification_service import notify
from sellscore.gamification.points_service import record_event
from sellscore.gamification.ruleset import BadgeRule, Ruleset, TrophyRule

logger = logging.getLogger(__name__)


async def earned_badge_types(db: AsyncSession, user_id: str) -> set[str]:
    result = await db.execute(select(UserBadge.badge_type).where(UserBadge.user_id == user_id))
    return set(result.scalars().all())


async def earned_trophy_names(db: AsyncSession, user_id: str) -> set[str]:
    result = await db.execute(
        select(UserAchievement.achievement_name).where(UserAchievement.user_id == user_id)
    )
    return set(result.scalars().all())


async def count_awards(db: AsyncSession, user_id: str) -> tuple[int, int]:
    """(active badges, active trophies) held by the user."""
    badges = await db.execute(
        select(func.count()).select_from(UserBadge).where(
            UserBadge.user_id == user_id, UserBadge.is_active == True  # noqa: E712
        )
    )
    trophies = await db.execute(
        select(func.count()).select_from(UserAchievement).where(
            UserAchievement.user_id == user_id, UserAchievement.is_active == True  # noqa: E712
        )
    )
    return badges.scalar_one(), trophies.scalar_one()


async def _insert_badge(db: AsyncSession, user_id: str, badge: BadgeRule, now: datetime) -> None:
    created = await insert_ignore(
        db,
        UserBadge,
        {
            "user_id": user_id,
            "badge_type": badge.type,
            "badge_name": badge.name,
            "is_manager_only": badge.is_manager_only,
            "is_active": True,
            "earned_at": now,
        },
        index_elements=["user_id", "badge_type"],
    )
    if not created:
        raise ConflictAlreadyAwarded("Badge already awarded", badge_type=badge.type)


async def award_badges(
    db: AsyncSession,
    user_id: str,
    total_points: int,
    ruleset: Ruleset,
    role: str | None = None,
    lifetime: SalesTotals | None = None,
    now: datetime | None = None,
) -> list[BadgeRule]:
    """Award every eligible badge the user does not hold yet.

    Returns the badges newly awarded by this call. A badge lost to a
    concurrent award is silently skipped.
    """
    now = now or datetime.now(timezone.utc)
    eligible = eligible_badges(total_points, ruleset, role=role, lifetime=lifetime)
    missing = eligible - await earned_badge_types(db, user_id)
    if not missing:
        return []

    awarded: list[BadgeRule] = []
    for badge in ruleset.badges:
        if badge.type not in missing:
            continue
        try:
            await _insert_badge(db, user_id, badge, now)
        except ConflictAlreadyAwarded:
            logger.debug("Badge %s already held by %s", badge.type, user_id)
            continue

        await record_event(
            db, user_id, "badge_earned", {"badge_type": badge.type, "badge_name": badge.name}, now
        )
        await notify(
            db,
            user_id,
            "badge",
            f"New badge: {badge.name}",
            badge.description or f"You earned the {badge.name} badge",
            icon_url=badge.icon_url,
            now=now,
        )
        logger.info("Awarded badge %s to user %s", badge.type, user_id)
        awarded.append(badge)
    return awarded


async def award_trophy(
    db: AsyncSession,
    user_id: str,
    trophy: TrophyRule,
    now: datetime | None = None,
) -> bool:
    """Record a trophy win. Returns True if newly won, False if already held.

    The points reward is credited by the caller through the point path.
    """
    now = now or datetime.now(timezone.utc)
    created = await insert_ignore(
        db,
        UserAchievement,
        {
            "user_id": user_id,
            "achievement_name": trophy.name,
            "points_earned": trophy.points_reward,
            "is_active": True,
            "earned_at": now,
        },
        index_elements=["user_id", "achievement_name"],
    )
    if not created:
        return False

    await record_event(
        db,
        user_id,
        "trophy_won",
        {"trophy": trophy.name, "category": trophy.category.value, "points_reward": trophy.points_reward},
        now,
    )
    await notify(
        db,
        user_id,
        "trophy",
        f"Trophy won: {trophy.name}",
        trophy.description or f"You won the {trophy.name} trophy",
        points=trophy.points_reward or None,
        icon_url=trophy.icon_url,
        now=now,
    )
    logger.info("Awarded trophy %r to user %s", trophy.name, user_id)
    return True
