"""Point ledger: lazy creation, floor at zero, one event per mutation, level-ups."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from sellscore.db.models import GamificationEvent, GamificationNotification, UserGamification
from sellscore.gamification.points_service import (
    apply_points_delta,
    ensure_gamification,
    get_or_create_gamification,
)
from sellscore.gamification.ruleset import DEFAULT_RULESET


async def _events(db, user_id: str, event_type: str | None = None) -> list[GamificationEvent]:
    query = select(GamificationEvent).where(GamificationEvent.user_id == user_id)
    if event_type:
        query = query.where(GamificationEvent.event_type == event_type)
    result = await db.execute(query.order_by(GamificationEvent.id))
    return list(result.scalars().all())


class TestLazyCreation:
    @pytest.mark.asyncio
    async def test_created_at_level_one(self, db_session):
        gam = await get_or_create_gamification(db_session, "u1", DEFAULT_RULESET)
        assert gam.total_points == 0
        assert gam.current_level == 1
        assert gam.consecutive_best_seller_count == 0
        assert gam.last_best_seller_month is None

    @pytest.mark.asyncio
    async def test_created_exactly_once(self, db_session):
        assert await ensure_gamification(db_session, "u1", DEFAULT_RULESET) is True
        assert await ensure_gamification(db_session, "u1", DEFAULT_RULESET) is False
        count = await db_session.execute(select(func.count()).select_from(UserGamification))
        assert count.scalar_one() == 1


class TestApplyPointsDelta:
    @pytest.mark.asyncio
    async def test_credit_records_points_earned(self, db_session):
        result = await apply_points_delta(db_session, "u1", 40, "sale", DEFAULT_RULESET)
        assert result.gamification.total_points == 40
        events = await _events(db_session, "u1")
        assert [e.event_type for e in events] == ["points_earned"]
        assert events[0].event_data == {"points": 40, "reason": "sale", "total_points": 40}

    @pytest.mark.asyncio
    async def test_debit_floors_at_zero(self, db_session):
        await apply_points_delta(db_session, "u1", 5, "sale", DEFAULT_RULESET)
        result = await apply_points_delta(db_session, "u1", -20, "complaint", DEFAULT_RULESET)
        assert result.gamification.total_points == 0
        lost = await _events(db_session, "u1", "points_lost")
        assert len(lost) == 1
        assert lost[0].event_data["total_points"] == 0

    @pytest.mark.asyncio
    async def test_event_type_override(self, db_session):
        await apply_points_delta(
            db_session, "u1", -10, "manual", DEFAULT_RULESET, event_type="admin_points_adjustment"
        )
        events = await _events(db_session, "u1")
        assert [e.event_type for e in events] == ["admin_points_adjustment"]

    @pytest.mark.asyncio
    async def test_rejects_unknown_event_type(self, db_session):
        with pytest.raises(ValueError, match="Unknown point event type"):
            await apply_points_delta(db_session, "u1", 10, "x", DEFAULT_RULESET, event_type="badge_earned")

    @pytest.mark.asyncio
    async def test_level_up_emits_event_and_notification(self, db_session):
        await apply_points_delta(db_session, "u1", 90, "sale", DEFAULT_RULESET)
        result = await apply_points_delta(db_session, "u1", 10, "sale", DEFAULT_RULESET)

        assert result.leveled_up is True
        assert result.previous_level == 1
        assert result.gamification.current_level == 2
        assert result.gamification.current_avatar_url == "/avatars/level2.png"

        level_ups = await _events(db_session, "u1", "level_up")
        assert len(level_ups) == 1
        assert level_ups[0].event_data["new_level"] == 2

        notes = await db_session.execute(
            select(GamificationNotification).where(GamificationNotification.type == "level_up")
        )
        assert len(notes.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_level_drops_without_level_up_event(self, db_session):
        await apply_points_delta(db_session, "u1", 350, "sale", DEFAULT_RULESET)
        result = await apply_points_delta(db_session, "u1", -300, "penalty", DEFAULT_RULESET)
        assert result.gamification.current_level == 1
        assert result.leveled_up is False
        assert len(await _events(db_session, "u1", "level_up")) == 1
