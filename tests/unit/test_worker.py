"""Scheduled jobs: no-sales sweep and monthly best seller."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from conftest import add_profile, add_sale
from sellscore.db.models import GamificationEvent, UserGamification, UserMonthlyStats
from sellscore.gamification import worker
from sellscore.gamification.config_store import ConfigStore


@pytest.fixture
def worker_db(session_factory, monkeypatch):
    async def _session():
        return session_factory()

    store = ConfigStore(ttl_seconds=0)
    monkeypatch.setattr(worker, "_get_db_session", _session)
    monkeypatch.setattr(worker, "get_config_store", lambda: store)
    return session_factory


class TestSweepCandidates:
    @pytest.mark.asyncio
    async def test_gamified_users_and_active_sellers(self, db_session):
        await add_profile(db_session, "s1", role="seller")
        await add_profile(db_session, "m1", role="manager")
        await add_profile(db_session, "a1", role="admin")
        db_session.add(UserGamification(user_id="g1", total_points=10, current_level=1))
        await db_session.commit()

        assert await worker.sweep_candidates(db_session) == ["g1", "m1", "s1"]


class TestNoSalesSweep:
    @pytest.mark.asyncio
    async def test_penalizes_users_without_sales_once(self, worker_db, db_session):
        await add_profile(db_session, "s1", role="seller")
        await add_profile(db_session, "s2", role="seller")
        await add_sale(db_session, "s2", 40, datetime.now(timezone.utc))

        assert await worker.no_sales_sweep({}) == 1
        assert await worker.no_sales_sweep({}) == 0

        async with worker_db() as session:
            result = await session.execute(
                select(GamificationEvent.user_id).where(GamificationEvent.event_type == "no_sales_penalty")
            )
            assert result.scalars().all() == ["s1"]


class TestMonthlyBestSeller:
    @pytest.mark.asyncio
    async def test_top_seller_gets_streak(self, worker_db, db_session):
        feb = datetime(2026, 2, 10, tzinfo=timezone.utc)
        await add_sale(db_session, "u1", 200, feb)
        await add_sale(db_session, "u2", 700, feb)

        assert await worker.monthly_best_seller({}, month="2026-02") == "u2"

        async with worker_db() as session:
            gam = await session.get(UserGamification, "u2")
            assert gam.consecutive_best_seller_count == 1
            assert gam.last_best_seller_month == "2026-02"
            best = await session.execute(
                select(UserMonthlyStats.user_id).where(UserMonthlyStats.is_best_seller == True)  # noqa: E712
            )
            assert best.scalars().all() == ["u2"]

    @pytest.mark.asyncio
    async def test_month_without_sales(self, worker_db):
        assert await worker.monthly_best_seller({}, month="2025-07") is None


def test_worker_settings_registers_jobs():
    assert worker.WorkerSettings.functions == [worker.no_sales_sweep, worker.monthly_best_seller]
    assert len(worker.WorkerSettings.cron_jobs) == 2
