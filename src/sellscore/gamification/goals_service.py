"""Daily goal progress with single-award completion."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.database import insert_ignore
from sellscore.db.models import UserDailyGoal
from sellscore.gamification.eligibility import ensure_utc
from sellscore.gamification.errors import ValidationError
from sellscore.gamification.ruleset import Ruleset

logger = logging.getLogger(__name__)


@dataclass
class GoalProgress:
    goal: UserDailyGoal
    completed_now: bool


def goal_date_for(now: datetime) -> date:
    return ensure_utc(now).date()


async def list_goals(db: AsyncSession, user_id: str, day: date) -> list[UserDailyGoal]:
    result = await db.execute(
        select(UserDailyGoal)
        .where(UserDailyGoal.user_id == user_id, UserDailyGoal.goal_date == day)
        .order_by(UserDailyGoal.goal_type)
    )
    return list(result.scalars().all())


async def increment_goal(
    db: AsyncSession,
    user_id: str,
    goal_type: str,
    increment: float,
    ruleset: Ruleset,
    now: datetime | None = None,
) -> GoalProgress:
    """Add ``increment`` to today's goal and flip it to completed at most once.

    ``completed_now`` is True only for the call whose compare-and-set wins
    the completion; that caller is responsible for awarding the bonus.
    """
    if goal_type not in ruleset.daily_goals:
        raise ValidationError(f"Unknown daily goal type: {goal_type}", goal_type=goal_type)
    if not math.isfinite(increment) or increment < 0:
        raise ValidationError("Goal increment must be a finite non-negative number", increment=str(increment))
    now = ensure_utc(now or datetime.now(timezone.utc))
    day = goal_date_for(now)
    key = (
        UserDailyGoal.user_id == user_id,
        UserDailyGoal.goal_date == day,
        UserDailyGoal.goal_type == goal_type,
    )

    await insert_ignore(
        db,
        UserDailyGoal,
        {
            "user_id": user_id,
            "goal_date": day,
            "goal_type": goal_type,
            "target_value": float(ruleset.daily_goals[goal_type]),
            "current_value": 0.0,
            "is_completed": False,
            "points_earned": 0,
            "completed_at": None,
        },
        index_elements=["user_id", "goal_date", "goal_type"],
    )

    await db.execute(
        update(UserDailyGoal)
        .where(*key)
        .values(current_value=UserDailyGoal.current_value + increment)
        .execution_options(synchronize_session=False)
    )

    flipped = await db.execute(
        update(UserDailyGoal)
        .where(
            *key,
            UserDailyGoal.is_completed == False,  # noqa: E712
            UserDailyGoal.current_value >= UserDailyGoal.target_value,
        )
        .values(is_completed=True, points_earned=ruleset.daily_goal_bonus, completed_at=now)
        .returning(UserDailyGoal.id)
        .execution_options(synchronize_session=False)
    )
    completed_now = flipped.scalar_one_or_none() is not None

    result = await db.execute(select(UserDailyGoal).where(*key).execution_options(populate_existing=True))
    goal = result.scalar_one()
    if completed_now:
        logger.info("User %s completed daily goal %s (%s/%s)", user_id, goal_type, goal.current_value,
                    goal.target_value)
    return GoalProgress(goal=goal, completed_now=completed_now)
