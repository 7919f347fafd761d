"""Collaborator interfaces for data owned by the retail application.

The engine only depends on the protocols; the ``Sql*`` classes read the
retail application's own tables through the same session.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.database import insert_ignore
from sellscore.db.models import Profile, Sale, UserMonthlyStats
from sellscore.gamification.eligibility import SalesTotals, utc_day_start

logger = logging.getLogger(__name__)

TOP_SELLER_COUNT = 3


class SalesProvider(Protocol):
    async def lifetime_totals(self, user_id: str) -> SalesTotals: ...

    async def period_totals(self, user_id: str, since: datetime) -> SalesTotals: ...

    async def had_sale_today(self, user_id: str, now: datetime) -> bool: ...


class MonthlyStatsProvider(Protocol):
    async def top_seller(self, month: str) -> str | None: ...

    async def mark_best_seller(self, user_id: str, month: str) -> None: ...

    async def refresh_month(self, month: str) -> None: ...


class RoleProvider(Protocol):
    async def get_role(self, user_id: str) -> str | None: ...


# ---------------------------------------------------------------------------
# SQL adapters
# ---------------------------------------------------------------------------


def month_bounds(month: str) -> tuple[datetime, datetime]:
    """UTC [start, end) of a YYYY-MM month."""
    start = datetime.strptime(month, "%Y-%m").replace(tzinfo=timezone.utc)
    end = (start + timedelta(days=32)).replace(day=1)
    return start, end


class SqlSalesProvider:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _totals(self, *criteria: object) -> SalesTotals:
        result = await self.db.execute(
            select(func.count(Sale.id), func.coalesce(func.sum(Sale.total_amount), 0)).where(*criteria)
        )
        count, amount = result.one()
        return SalesTotals(count=int(count or 0), amount=float(amount or 0))

    async def lifetime_totals(self, user_id: str) -> SalesTotals:
        return await self._totals(Sale.user_id == user_id)

    async def period_totals(self, user_id: str, since: datetime) -> SalesTotals:
        return await self._totals(Sale.user_id == user_id, Sale.created_at >= since)

    async def had_sale_today(self, user_id: str, now: datetime) -> bool:
        start = utc_day_start(now)
        result = await self.db.execute(
            select(Sale.id)
            .where(
                Sale.user_id == user_id,
                Sale.created_at >= start,
                Sale.created_at < start + timedelta(days=1),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None


class SqlMonthlyStatsProvider:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def top_seller(self, month: str) -> str | None:
        """Highest total_amount for the month; ties go to the lower rank."""
        result = await self.db.execute(
            select(UserMonthlyStats.user_id)
            .where(UserMonthlyStats.month == month, UserMonthlyStats.total_amount > 0)
            .order_by(UserMonthlyStats.total_amount.desc(), UserMonthlyStats.rank.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_best_seller(self, user_id: str, month: str) -> None:
        await self.db.execute(
            update(UserMonthlyStats)
            .where(UserMonthlyStats.user_id == user_id, UserMonthlyStats.month == month)
            .values(is_best_seller=True, updated_at=datetime.now(timezone.utc))
        )

    async def refresh_month(self, month: str) -> None:
        """Recompute per-user totals and ranks for ``month`` from the sales table."""
        start, end = month_bounds(month)
        result = await self.db.execute(
            select(
                Sale.user_id,
                func.count(Sale.id).label("total_sales"),
                func.coalesce(func.sum(Sale.total_amount), 0).label("total_amount"),
            )
            .where(Sale.created_at >= start, Sale.created_at < end)
            .group_by(Sale.user_id)
        )
        rows = sorted(result.all(), key=lambda r: (-float(r.total_amount), r.user_id))
        now = datetime.now(timezone.utc)

        for rank, row in enumerate(rows, start=1):
            values = {
                "total_sales": int(row.total_sales),
                "total_amount": float(row.total_amount),
                "rank": rank,
                "is_top_seller": rank <= TOP_SELLER_COUNT,
                "updated_at": now,
            }
            created = await insert_ignore(
                self.db,
                UserMonthlyStats,
                {"user_id": row.user_id, "month": month, "is_best_seller": False, **values},
                index_elements=["user_id", "month"],
            )
            if not created:
                await self.db.execute(
                    update(UserMonthlyStats)
                    .where(UserMonthlyStats.user_id == row.user_id, UserMonthlyStats.month == month)
                    .values(**values)
                )
        logger.info("Refreshed monthly stats for %s (%d sellers)", month, len(rows))


class SqlRoleProvider:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_role(self, user_id: str) -> str | None:
        result = await self.db.execute(select(Profile.role).where(Profile.id == user_id))
        return result.scalar_one_or_none()
