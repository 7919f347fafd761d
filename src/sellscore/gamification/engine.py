"""ScoringEngine: entry points that turn business events into points, levels and awards.

Each public coroutine is one unit of work: it loads the live ruleset, performs
all writes on the engine's session and commits, or rolls back and raises a
``ScoringError``. Storage errors surface as ``PersistenceFailure``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Collection
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.database import lock_row
from sellscore.db.models import GamificationEvent, GamificationNotification, Profile, UserGamification
from sellscore.gamification import admin_guard, badge_service, goals_service, notification_service
from sellscore.gamification.config_store import ConfigStore, get_config_store
from sellscore.gamification.eligibility import (
    MANAGER_ROLE,
    PERIOD_TROPHY_CATEGORIES,
    SalesTotals,
    TrophyFacts,
    ensure_utc,
    evaluate_trophy,
    level_progress,
    needs_manager_facts,
    period_start,
    periods_needed,
    utc_day_start,
)
from sellscore.gamification.errors import (
    PermissionDenied,
    PersistenceFailure,
    ScoringError,
    ValidationError,
)
from sellscore.gamification.points_service import (
    apply_points_delta,
    get_gamification,
    get_or_create_gamification,
)
from sellscore.gamification.providers import (
    MonthlyStatsProvider,
    RoleProvider,
    SalesProvider,
    SqlMonthlyStatsProvider,
    SqlRoleProvider,
    SqlSalesProvider,
)
from sellscore.gamification.ruleset import Period, Ruleset, TrophyCategory, TrophyRule
from sellscore.gamification.streak_service import update_best_seller_status

logger = logging.getLogger(__name__)

ADJUSTMENT_KINDS = ("add", "subtract")


@dataclass(frozen=True)
class SaleEvent:
    amount: float
    product_count: int = 0
    is_weekend: bool = False
    is_holiday: bool = False
    has_premium_products: bool = False
    is_new_customer: bool = False
    is_repeat_customer: bool = False

    def active_multipliers(self) -> list[str]:
        flags = {
            "weekend_sale": self.is_weekend,
            "holiday_sale": self.is_holiday,
            "premium_product": self.has_premium_products,
            "new_customer": self.is_new_customer,
            "repeat_customer": self.is_repeat_customer,
        }
        return [name for name, enabled in flags.items() if enabled]


def sale_points(sale: SaleEvent, ruleset: Ruleset) -> int:
    """round((sale_completed + product_count * product_sold) * product of active multipliers)."""
    base = ruleset.base_points.get("sale_completed", 0) + sale.product_count * ruleset.base_points.get(
        "product_sold", 0
    )
    factor = 1.0
    for name in sale.active_multipliers():
        factor *= ruleset.multipliers.get(name, 1.0)
    return round(base * factor)


def complaint_points(severity: str, ruleset: Ruleset) -> int:
    """Magnitude of a complaint debit for ``severity``."""
    if severity not in ruleset.complaint_severity_factors:
        raise ValidationError(f"Unknown complaint severity: {severity}", severity=severity)
    base = ruleset.penalties.get("customer_complaint", 0)
    return abs(round(base * ruleset.complaint_severity_factors[severity]))


@dataclass
class Actor:
    """Caller identity as supplied by the identity provider."""

    user_id: str
    role: str


class ScoringEngine:
    def __init__(
        self,
        db: AsyncSession,
        config_store: ConfigStore | None = None,
        sales: SalesProvider | None = None,
        monthly_stats: MonthlyStatsProvider | None = None,
        roles: RoleProvider | None = None,
        admin_roles: Collection[str] = ("admin",),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.db = db
        self.config_store = config_store or get_config_store()
        self.sales = sales or SqlSalesProvider(db)
        self.monthly_stats = monthly_stats or SqlMonthlyStatsProvider(db)
        self.roles = roles or SqlRoleProvider(db)
        self.admin_roles = frozenset(admin_roles)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    async def ruleset(self) -> Ruleset:
        return await self.config_store.get(self.db)

    @asynccontextmanager
    async def _unit_of_work(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
            await self.db.commit()
        except ScoringError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Persistence failure during %s", operation)
            raise PersistenceFailure(f"Storage error during {operation}, nothing was applied") from exc

    # ------------------------------------------------------------------
    # Internal point path (no commit)
    # ------------------------------------------------------------------

    async def _credit(
        self,
        user_id: str,
        delta: int,
        reason: str,
        ruleset: Ruleset,
        now: datetime,
        event_type: str | None = None,
        check_trophies: bool = True,
    ) -> UserGamification:
        result = await apply_points_delta(
            self.db, user_id, delta, reason, ruleset, event_type=event_type, now=now
        )
        gam = result.gamification
        await self._check_badges(gam, ruleset, now)
        if check_trophies:
            gam = await self._check_period_trophies(gam, ruleset, now)
        return gam

    async def _check_badges(self, gam: UserGamification, ruleset: Ruleset, now: datetime) -> None:
        role = None
        lifetime = None
        if needs_manager_facts(ruleset):
            role = await self.roles.get_role(gam.user_id)
            if role == MANAGER_ROLE:
                lifetime = await self.sales.lifetime_totals(gam.user_id)
        await badge_service.award_badges(
            self.db, gam.user_id, gam.total_points, ruleset, role=role, lifetime=lifetime, now=now
        )

    async def _award_trophies(
        self,
        gam: UserGamification,
        trophies: list[TrophyRule],
        facts: TrophyFacts,
        ruleset: Ruleset,
        now: datetime,
    ) -> UserGamification:
        for trophy in trophies:
            if not evaluate_trophy(trophy, facts):
                continue
            if not await badge_service.award_trophy(self.db, gam.user_id, trophy, now):
                continue
            if trophy.points_reward > 0:
                gam = await self._credit(
                    gam.user_id, trophy.points_reward, f"trophy {trophy.name}", ruleset, now, check_trophies=False
                )
        return gam

    async def _check_period_trophies(self, gam: UserGamification, ruleset: Ruleset, now: datetime) -> UserGamification:
        held = await badge_service.earned_trophy_names(self.db, gam.user_id)
        candidates = [t for t in ruleset.active_trophies(*PERIOD_TROPHY_CATEGORIES) if t.name not in held]
        if not candidates:
            return gam
        totals: dict[Period, SalesTotals] = {}
        for period in periods_needed(candidates):
            totals[period] = await self.sales.period_totals(gam.user_id, period_start(period, now))
        facts = TrophyFacts(period_totals=totals, consecutive_best_seller_count=gam.consecutive_best_seller_count)
        return await self._award_trophies(gam, candidates, facts, ruleset, now)

    async def _check_streak_trophies(self, gam: UserGamification, ruleset: Ruleset, now: datetime) -> UserGamification:
        held = await badge_service.earned_trophy_names(self.db, gam.user_id)
        candidates = [t for t in ruleset.active_trophies(TrophyCategory.CONSECUTIVE) if t.name not in held]
        facts = TrophyFacts(consecutive_best_seller_count=gam.consecutive_best_seller_count)
        return await self._award_trophies(gam, candidates, facts, ruleset, now)

    async def _goal(self, user_id: str, goal_type: str, increment: float, ruleset: Ruleset, now: datetime) -> None:
        progress = await goals_service.increment_goal(self.db, user_id, goal_type, increment, ruleset, now)
        if not progress.completed_now or ruleset.daily_goal_bonus <= 0:
            return
        await self._credit(user_id, ruleset.daily_goal_bonus, f"daily goal {goal_type} reached", ruleset, now)
        await notification_service.notify(
            self.db,
            user_id,
            "daily_goal",
            "Daily goal reached!",
            f"You reached your {goal_type.replace('_', ' ')} goal for today",
            points=ruleset.daily_goal_bonus,
            now=now,
        )

    async def _debit(
        self,
        user_id: str,
        magnitude: int,
        reason: str,
        ruleset: Ruleset,
        now: datetime,
        notification: tuple[str, str, str] | None = None,
        event_type: str | None = None,
    ) -> UserGamification:
        gam = await self._credit(user_id, -abs(magnitude), reason, ruleset, now, event_type=event_type)
        if notification is not None:
            type_, title, message = notification
            await notification_service.notify(
                self.db, user_id, type_, title, message, points=-abs(magnitude), now=now
            )
        return gam

    # ------------------------------------------------------------------
    # Point entry points
    # ------------------------------------------------------------------

    async def apply_points(self, user_id: str, delta: int, reason: str) -> UserGamification:
        """Apply a signed delta (floored at zero) and run badge and trophy checks."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError("delta must be a non-zero integer", delta=delta)
        async with self._unit_of_work("apply_points"):
            ruleset = await self.ruleset()
            gam = await self._credit(user_id, delta, reason, ruleset, self.now())
        return gam

    async def adjust_as_admin(
        self,
        actor: Actor,
        target_user_id: str,
        points: int,
        reason: str,
        kind: str,
    ) -> UserGamification:
        """Privileged adjustment guarded by cooldown and daily cap."""
        if actor.role not in self.admin_roles:
            raise PermissionDenied("Only administrators may adjust points", role=actor.role)
        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise ValidationError("points must be a positive integer", points=points)
        if kind not in ADJUSTMENT_KINDS:
            raise ValidationError("kind must be 'add' or 'subtract'", kind=kind)
        if not reason or not reason.strip():
            raise ValidationError("reason is required")

        signed = points if kind == "add" else -points
        async with self._unit_of_work("adjust_as_admin"):
            ruleset = await self.ruleset()
            now = self.now()
            await admin_guard.authorize(
                self.db, actor.user_id, target_user_id, points, ruleset.admin_config, now
            )
            gam = await self._credit(
                target_user_id, signed, reason, ruleset, now, event_type="admin_points_adjustment"
            )
            await admin_guard.record_adjustment(self.db, actor.user_id, target_user_id, signed, reason, now)
            verb = "added" if signed > 0 else "removed"
            await notification_service.notify(
                self.db,
                target_user_id,
                "admin_adjustment",
                "Points adjusted by an administrator",
                f"{abs(signed)} points {verb}: {reason}",
                points=signed,
                now=now,
            )
            logger.info("Admin %s adjusted %s by %+d", actor.user_id, target_user_id, signed)
        return gam

    async def apply_no_sales_penalty(self, user_id: str) -> UserGamification | None:
        """Debit the daily no-sales penalty at most once per user per UTC day."""
        async with self._unit_of_work("apply_no_sales_penalty"):
            ruleset = await self.ruleset()
            now = self.now()
            if not ruleset.admin_config.auto_penalty_no_sales:
                return None
            if await self.sales.had_sale_today(user_id, now):
                return None

            # Serialize concurrent sweeps for this user before checking the event log
            await get_or_create_gamification(self.db, user_id, ruleset, now)
            await lock_row(self.db, UserGamification, UserGamification.user_id == user_id)

            start = utc_day_start(now)
            existing = await self.db.execute(
                select(GamificationEvent.id)
                .where(
                    GamificationEvent.user_id == user_id,
                    GamificationEvent.event_type == "no_sales_penalty",
                    GamificationEvent.created_at >= start,
                    GamificationEvent.created_at < start + timedelta(days=1),
                )
                .limit(1)
            )
            if existing.scalar_one_or_none() is not None:
                return None

            magnitude = abs(ruleset.penalties.get("no_sales_daily", 0))
            if magnitude == 0:
                return None
            gam = await self._debit(
                user_id,
                magnitude,
                "no sales today",
                ruleset,
                now,
                notification=(
                    "no_sales_penalty",
                    "No sales today",
                    f"{magnitude} points deducted for a day without sales",
                ),
                event_type="no_sales_penalty",
            )
        return gam

    async def update_daily_goal(self, user_id: str, goal_type: str, increment: float) -> UserGamification:
        """Accumulate today's goal; the first crossing awards the completion bonus."""
        async with self._unit_of_work("update_daily_goal"):
            ruleset = await self.ruleset()
            now = self.now()
            await self._goal(user_id, goal_type, increment, ruleset, now)
            gam = await get_or_create_gamification(self.db, user_id, ruleset, now)
        return gam

    async def update_best_seller_status(self, user_id: str, month: str) -> UserGamification:
        """Record a best-seller month, extend the streak and award streak trophies."""
        async with self._unit_of_work("update_best_seller_status"):
            ruleset = await self.ruleset()
            now = self.now()
            outcome = await update_best_seller_status(
                self.db, user_id, month, ruleset, self.monthly_stats, now
            )
            if outcome.changed:
                gam = await self._check_streak_trophies(outcome.gamification, ruleset, now)
            else:
                gam = await get_or_create_gamification(self.db, user_id, ruleset, now)
        return gam

    # ------------------------------------------------------------------
    # Event-source handlers
    # ------------------------------------------------------------------

    async def handle_sale_completed(self, user_id: str, sale: SaleEvent) -> UserGamification:
        if sale.amount < 0 or sale.product_count < 0:
            raise ValidationError("Sale amount and product count must not be negative")
        async with self._unit_of_work("handle_sale_completed"):
            ruleset = await self.ruleset()
            now = self.now()
            points = sale_points(sale, ruleset)
            if points > 0:
                await self._credit(user_id, points, "sale completed", ruleset, now)
            await self._goal(user_id, "sales_count", 1, ruleset, now)
            await self._goal(user_id, "sales_amount", sale.amount, ruleset, now)
            await self._goal(user_id, "products_sold", sale.product_count, ruleset, now)
            gam = await get_or_create_gamification(self.db, user_id, ruleset, now)
        return gam

    async def handle_customer_satisfaction(self, user_id: str, score: float) -> UserGamification:
        if score < 0:
            raise ValidationError("Satisfaction score must not be negative", score=score)
        async with self._unit_of_work("handle_customer_satisfaction"):
            ruleset = await self.ruleset()
            now = self.now()
            points = ruleset.base_points.get("customer_satisfaction", 0)
            if score >= ruleset.satisfaction_threshold and points > 0:
                await self._credit(user_id, points, "excellent customer satisfaction", ruleset, now)
            await self._goal(user_id, "customer_satisfaction", score, ruleset, now)
            gam = await get_or_create_gamification(self.db, user_id, ruleset, now)
        return gam

    async def handle_product_return(
        self, user_id: str, amount: float, product_count: int, reason: str = ""
    ) -> UserGamification:
        async with self._unit_of_work("handle_product_return"):
            ruleset = await self.ruleset()
            now = self.now()
            magnitude = abs(ruleset.penalties.get("product_return", 0))
            if magnitude == 0:
                return await get_or_create_gamification(self.db, user_id, ruleset, now)
            gam = await self._debit(user_id, magnitude, f"product return: {reason}".rstrip(": "), ruleset, now)
        logger.info("Return penalty for %s (amount=%s, products=%d)", user_id, amount, product_count)
        return gam

    async def handle_customer_complaint(self, user_id: str, severity: str, description: str = "") -> UserGamification:
        async with self._unit_of_work("handle_customer_complaint"):
            ruleset = await self.ruleset()
            now = self.now()
            magnitude = complaint_points(severity, ruleset)
            if magnitude == 0:
                return await get_or_create_gamification(self.db, user_id, ruleset, now)
            gam = await self._debit(
                user_id,
                magnitude,
                f"customer complaint ({severity})",
                ruleset,
                now,
                notification=("penalty", "Customer complaint", description or f"{severity} severity complaint"),
            )
        return gam

    async def award_base_points(self, user_id: str, kind: str) -> UserGamification:
        """Award the configured base points for ``kind`` (e.g. training_completed)."""
        async with self._unit_of_work("award_base_points"):
            ruleset = await self.ruleset()
            if kind not in ruleset.base_points:
                raise ValidationError(f"Unknown point kind: {kind}", kind=kind)
            points = ruleset.base_points[kind]
            now = self.now()
            if points == 0:
                return await get_or_create_gamification(self.db, user_id, ruleset, now)
            gam = await self._credit(user_id, points, kind.replace("_", " "), ruleset, now)
        return gam

    async def apply_penalty(self, user_id: str, violation: str) -> UserGamification:
        """Debit the configured penalty for ``violation`` and notify the user."""
        async with self._unit_of_work("apply_penalty"):
            ruleset = await self.ruleset()
            if violation not in ruleset.penalties:
                raise ValidationError(f"Unknown penalty: {violation}", violation=violation)
            magnitude = abs(ruleset.penalties[violation])
            now = self.now()
            if magnitude == 0:
                return await get_or_create_gamification(self.db, user_id, ruleset, now)
            label = violation.replace("_", " ")
            gam = await self._debit(
                user_id,
                magnitude,
                label,
                ruleset,
                now,
                notification=("penalty", "Penalty applied", f"{magnitude} points deducted: {label}"),
            )
        return gam

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_summary(self, user_id: str) -> dict[str, Any]:
        """Aggregate, level progress, award counts and leaderboard rank.

        Users without a profile yet read as a fresh level-1 aggregate.
        """
        ruleset = await self.ruleset()
        gam = await get_gamification(self.db, user_id)
        total = gam.total_points if gam else 0
        progress = level_progress(total, ruleset)
        badges, trophies = await badge_service.count_awards(self.db, user_id)

        above = await self.db.execute(
            select(func.count()).select_from(UserGamification).where(UserGamification.total_points > total)
        )
        today = goals_service.goal_date_for(self.now())
        goals = await goals_service.list_goals(self.db, user_id, today)
        return {
            "user_id": user_id,
            "total_points": total,
            "current_level": progress["current"],
            "next_level": progress["next"],
            "progress": progress["progress"],
            "consecutive_best_seller_count": gam.consecutive_best_seller_count if gam else 0,
            "last_best_seller_month": gam.last_best_seller_month if gam else None,
            "badges_count": badges,
            "trophies_count": trophies,
            "rank": above.scalar_one() + 1,
            "daily_goals": goals,
        }

    async def leaderboard(self, limit: int = 10) -> list[dict[str, Any]]:
        ruleset = await self.ruleset()
        result = await self.db.execute(
            select(UserGamification, Profile.name)
            .outerjoin(Profile, Profile.id == UserGamification.user_id)
            .order_by(UserGamification.total_points.desc(), UserGamification.user_id.asc())
            .limit(limit)
        )
        entries = []
        for rank, (gam, name) in enumerate(result.all(), start=1):
            level = ruleset.level(gam.current_level)
            entries.append({
                "rank": rank,
                "user_id": gam.user_id,
                "name": name,
                "total_points": gam.total_points,
                "current_level": gam.current_level,
                "level_name": level.name,
                "avatar_url": gam.current_avatar_url,
            })
        return entries

    async def list_notifications(
        self, user_id: str, unread_only: bool = False, limit: int = 10, offset: int = 0
    ) -> tuple[list[GamificationNotification], int, int]:
        return await notification_service.list_notifications(self.db, user_id, unread_only, limit, offset)

    async def mark_notification_read(self, user_id: str, notification_id: int) -> None:
        async with self._unit_of_work("mark_notification_read"):
            await notification_service.mark_read(self.db, user_id, notification_id)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def save_ruleset(self, actor: Actor, data: dict[str, Any]) -> Ruleset:
        if actor.role not in self.admin_roles:
            raise PermissionDenied("Only administrators may change the ruleset", role=actor.role)
        async with self._unit_of_work("save_ruleset"):
            ruleset = await self.config_store.save(self.db, data, actor.user_id)
        self.config_store.invalidate()
        return ruleset
