"""ORM models for the gamification ledger.

The gamification tables are owned by this service. ``sales``, ``profiles``
and ``user_monthly_stats`` belong to the surrounding retail application and
are only read here (the one exception is ``user_monthly_stats.is_best_seller``,
which the streak tracker sets).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from sellscore.db.base import Base, BigIntPK, JSONType


# ---------------------------------------------------------------------------
# External: retail application tables
# ---------------------------------------------------------------------------


class Profile(Base):
    """Maps to the 'profiles' table of the retail application (roles)."""

    __tablename__ = "profiles"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, server_default="")
    role: Mapped[str] = mapped_column(String(16), nullable=False, server_default="seller")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class Sale(Base):
    """Maps to the 'sales' table of the retail application."""

    __tablename__ = "sales"
    __table_args__ = (
        Index("idx_sales_user_created", "user_id", "created_at"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, server_default="0")
    product_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserMonthlyStats(Base):
    """Per-user monthly sales totals and ranking."""

    __tablename__ = "user_monthly_stats"
    __table_args__ = (
        UniqueConstraint("user_id", "month", name="uq_user_monthly_stats_user_month"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")
    rank: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_top_seller: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    is_best_seller: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Gamification
# ---------------------------------------------------------------------------


class GamificationConfig(Base):
    """Saved ruleset revisions; the highest version is the live ruleset."""

    __tablename__ = "gamification_config"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    version: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    ruleset: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserGamification(Base):
    """Denormalized gamification aggregate, single row per user."""

    __tablename__ = "user_gamification"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    current_avatar_url: Mapped[str | None] = mapped_column(String(256), nullable=True)
    consecutive_best_seller_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    last_best_seller_month: Mapped[str | None] = mapped_column(String(7), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserBadge(Base):
    """Badges earned by users, UNIQUE(user_id, badge_type) prevents duplicates."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_type", name="uq_user_badges_user_type"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    badge_type: Mapped[str] = mapped_column(String(64), nullable=False)
    badge_name: Mapped[str] = mapped_column(String(128), nullable=False)
    is_manager_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserAchievement(Base):
    """Trophies won by users, UNIQUE(user_id, achievement_name)."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_name", name="uq_user_achievements_user_name"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    achievement_name: Mapped[str] = mapped_column(String(128), nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class GamificationEvent(Base):
    """Immutable audit log: one row per point mutation plus award markers."""

    __tablename__ = "gamification_events"
    __table_args__ = (
        Index("idx_gamification_events_user_type_created", "user_id", "event_type", "created_at"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AdminPointAdjustment(Base):
    """Privileged point adjustments, read by the cooldown and daily-cap checks."""

    __tablename__ = "admin_point_adjustments"
    __table_args__ = (
        Index("idx_admin_adjustments_admin_user_created", "admin_id", "user_id", "created_at"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    admin_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    points_adjusted: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(256), nullable=False)
    adjustment_type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class GamificationNotification(Base):
    """Persisted user notifications; only is_read is ever updated."""

    __tablename__ = "gamification_notifications"
    __table_args__ = (
        Index("idx_gamification_notifications_user_read", "user_id", "is_read"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    icon_url: Mapped[str | None] = mapped_column(String(256), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserDailyGoal(Base):
    """Daily goal progress, UNIQUE(user_id, goal_date, goal_type)."""

    __tablename__ = "user_daily_goals"
    __table_args__ = (
        UniqueConstraint("user_id", "goal_date", "goal_type", name="uq_user_daily_goals_user_date_type"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    goal_date: Mapped[date] = mapped_column(Date, nullable=False)
    goal_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_value: Mapped[float] = mapped_column(Float, nullable=False)
    current_value: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
