"""SQL adapters over the retail application's sales and monthly stats tables."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from conftest import T0, add_profile, add_sale
from sellscore.db.models import UserMonthlyStats
from sellscore.gamification.providers import (
    SqlMonthlyStatsProvider,
    SqlRoleProvider,
    SqlSalesProvider,
    month_bounds,
)

FEB = datetime(2026, 2, 14, 12, 0, tzinfo=timezone.utc)


def test_month_bounds():
    assert month_bounds("2026-12") == (
        datetime(2026, 12, 1, tzinfo=timezone.utc),
        datetime(2027, 1, 1, tzinfo=timezone.utc),
    )


class TestSqlSalesProvider:
    @pytest.mark.asyncio
    async def test_totals(self, db_session):
        await add_sale(db_session, "u1", 100, T0 - timedelta(days=40))
        await add_sale(db_session, "u1", 50, T0)
        await add_sale(db_session, "u2", 999, T0)
        sales = SqlSalesProvider(db_session)

        lifetime = await sales.lifetime_totals("u1")
        assert (lifetime.count, lifetime.amount) == (2, 150.0)
        recent = await sales.period_totals("u1", T0 - timedelta(days=1))
        assert (recent.count, recent.amount) == (1, 50.0)
        empty = await sales.lifetime_totals("nobody")
        assert (empty.count, empty.amount) == (0, 0.0)

    @pytest.mark.asyncio
    async def test_had_sale_today(self, db_session):
        await add_sale(db_session, "u1", 10, T0)
        sales = SqlSalesProvider(db_session)

        assert await sales.had_sale_today("u1", T0 + timedelta(hours=2)) is True
        assert await sales.had_sale_today("u2", T0) is False
        assert await sales.had_sale_today("u1", T0 + timedelta(days=1)) is False


class TestSqlMonthlyStatsProvider:
    @pytest.mark.asyncio
    async def test_refresh_ranks_and_flags_top_three(self, db_session):
        for user_id, amount in [("u1", 300), ("u2", 500), ("u3", 100), ("u4", 50)]:
            await add_sale(db_session, user_id, amount, FEB)
        await add_sale(db_session, "u4", 10_000, T0)  # March, ignored

        stats = SqlMonthlyStatsProvider(db_session)
        await stats.refresh_month("2026-02")
        await stats.refresh_month("2026-02")
        await db_session.commit()

        result = await db_session.execute(
            select(UserMonthlyStats).where(UserMonthlyStats.month == "2026-02").order_by(UserMonthlyStats.rank)
        )
        rows = result.scalars().all()
        assert [(r.user_id, r.rank, r.is_top_seller) for r in rows] == [
            ("u2", 1, True),
            ("u1", 2, True),
            ("u3", 3, True),
            ("u4", 4, False),
        ]
        assert await stats.top_seller("2026-02") == "u2"
        assert await stats.top_seller("2026-01") is None

    @pytest.mark.asyncio
    async def test_mark_best_seller(self, db_session):
        await add_sale(db_session, "u1", 300, FEB)
        stats = SqlMonthlyStatsProvider(db_session)
        await stats.refresh_month("2026-02")
        await stats.mark_best_seller("u1", "2026-02")
        await db_session.commit()

        row = (await db_session.execute(select(UserMonthlyStats))).scalar_one()
        assert row.is_best_seller is True


@pytest.mark.asyncio
async def test_role_provider(db_session):
    await add_profile(db_session, "m1", role="manager")
    roles = SqlRoleProvider(db_session)
    assert await roles.get_role("m1") == "manager"
    assert await roles.get_role("nobody") is None
