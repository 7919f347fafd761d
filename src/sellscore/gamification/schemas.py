"""Pydantic request/response models for gamification endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _ORM(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Aggregate ---


class UserGamificationResponse(_ORM):
    user_id: str
    total_points: int
    current_level: int
    current_avatar_url: str | None = None
    consecutive_best_seller_count: int
    last_best_seller_month: str | None = None
    updated_at: datetime | None = None


class LevelEntry(_ORM):
    level: int
    name: str
    required_points: int
    avatar_url: str = ""
    benefits: list[str] = []


class DailyGoalEntry(_ORM):
    goal_type: str
    goal_date: date
    target_value: float
    current_value: float
    is_completed: bool
    points_earned: int


class SummaryResponse(BaseModel):
    user_id: str
    total_points: int
    current_level: LevelEntry
    next_level: LevelEntry | None = None
    progress: float
    consecutive_best_seller_count: int
    last_best_seller_month: str | None = None
    badges_count: int
    trophies_count: int
    rank: int
    daily_goals: list[DailyGoalEntry] = []


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    name: str | None = None
    total_points: int
    current_level: int
    level_name: str
    avatar_url: str | None = None


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


class BadgeEntry(_ORM):
    type: str
    name: str
    description: str = ""
    icon_url: str | None = None
    required_points: int
    is_manager_only: bool = False


class AllBadgesResponse(BaseModel):
    badges: list[BadgeEntry]


class TrophyEntry(_ORM):
    name: str
    description: str = ""
    category: str
    icon_url: str | None = None
    points_reward: int


class AllTrophiesResponse(BaseModel):
    trophies: list[TrophyEntry]


# --- Notifications ---


class NotificationEntry(_ORM):
    id: int
    type: str
    title: str
    message: str
    points: int | None = None
    icon_url: str | None = None
    is_read: bool
    created_at: datetime


class NotificationsResponse(BaseModel):
    notifications: list[NotificationEntry]
    total: int
    unread: int


# --- Requests ---


class ApplyPointsRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    delta: int
    reason: str = Field(min_length=1, max_length=256)


class AdminAdjustRequest(BaseModel):
    target_user_id: str = Field(min_length=1, max_length=64)
    points: int
    reason: str = Field(min_length=1, max_length=256)
    kind: Literal["add", "subtract"]


class UserRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)


class GoalUpdateRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    goal_type: str
    value: float = Field(ge=0, allow_inf_nan=False)


class BestSellerRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    month: str


class SaleEventRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    amount: float = Field(ge=0)
    product_count: int = Field(0, ge=0)
    is_weekend: bool = False
    is_holiday: bool = False
    has_premium_products: bool = False
    is_new_customer: bool = False
    is_repeat_customer: bool = False


class SatisfactionEventRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    score: float = Field(ge=0, le=5)


class ReturnEventRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    amount: float = Field(ge=0)
    product_count: int = Field(ge=0)
    reason: str = ""


class ComplaintEventRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    severity: str = "medium"
    description: str = ""


class PenaltyRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    violation: str


class BasePointsRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    kind: str


class NoSalesPenaltyResponse(BaseModel):
    applied: bool
    gamification: UserGamificationResponse | None = None


class RulesetResponse(BaseModel):
    version: int
    ruleset: dict[str, Any]
