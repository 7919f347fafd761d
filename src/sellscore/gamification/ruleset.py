"""Scoring ruleset: points, multipliers, penalties, goals, levels, badges, trophies.

A ``Ruleset`` is an immutable value. The live one is obtained from
``ConfigStore`` and passed explicitly to every evaluator call.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CriterionOperator(str, Enum):
    GREATER_THAN = "greater_than"
    GREATER_OR_EQUAL = "greater_or_equal"


class TrophyCategory(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    SPECIAL = "special"
    CONSECUTIVE = "consecutive"


class Period(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class AdminConfig(_Frozen):
    cooldown_hours: int = Field(20, ge=0)
    max_daily_adjustment: int = Field(100, gt=0)
    auto_penalty_no_sales: bool = True
    manager_badge_requirements: dict[str, int] = Field(
        default_factory=lambda: {"total_sales_threshold": 1000, "sales_count_threshold": 50}
    )


class AvatarLevel(_Frozen):
    level: int = Field(ge=1)
    name: str
    required_points: int = Field(ge=0)
    avatar_url: str = ""
    benefits: list[str] = []


class ManagerRequirements(_Frozen):
    total_sales: float = Field(ge=0)
    sales_count: int = Field(ge=0)


class BadgeRule(_Frozen):
    type: str
    name: str
    description: str = ""
    icon_url: str | None = None
    required_points: int = Field(ge=0)
    is_active: bool = True
    is_manager_only: bool = False
    manager_requirements: ManagerRequirements | None = None


class TrophyCriterion(_Frozen):
    type: str
    # Unknown operator strings are accepted and evaluate as non-matching
    operator: CriterionOperator | str
    value: float
    period: Period | str = Period.MONTHLY


class TrophyRule(_Frozen):
    name: str
    description: str = ""
    category: TrophyCategory
    icon_url: str | None = None
    points_reward: int = Field(0, ge=0)
    criteria: list[TrophyCriterion] = []
    is_active: bool = True
    applies_to_all_users: bool = True


class Ruleset(_Frozen):
    """Complete scoring configuration."""

    version: int = 0
    base_points: dict[str, int]
    multipliers: dict[str, float]
    penalties: dict[str, int]
    daily_goals: dict[str, float]
    daily_goal_bonus: int = Field(10, ge=0)
    satisfaction_threshold: float = 4.5
    complaint_severity_factors: dict[str, float] = Field(
        default_factory=lambda: {"low": 0.5, "medium": 1.0, "high": 1.5}
    )
    admin_config: AdminConfig = AdminConfig()
    avatar_levels: list[AvatarLevel]
    badges: list[BadgeRule] = []
    trophies: list[TrophyRule] = []

    @model_validator(mode="after")
    def _check_tables(self) -> Ruleset:
        if not self.avatar_levels:
            msg = "avatar_levels must define at least one level"
            raise ValueError(msg)
        levels = [lvl.level for lvl in self.avatar_levels]
        if len(set(levels)) != len(levels):
            msg = "avatar level numbers must be unique"
            raise ValueError(msg)
        ordered = sorted(self.avatar_levels, key=lambda lvl: lvl.level)
        for lower, upper in zip(ordered, ordered[1:]):
            if upper.required_points <= lower.required_points:
                msg = f"required_points must increase with level (level {upper.level})"
                raise ValueError(msg)
        types = [b.type for b in self.badges]
        if len(set(types)) != len(types):
            msg = "badge types must be unique"
            raise ValueError(msg)
        names = [t.name for t in self.trophies]
        if len(set(names)) != len(names):
            msg = "trophy names must be unique"
            raise ValueError(msg)
        return self

    def sorted_levels(self) -> list[AvatarLevel]:
        return sorted(self.avatar_levels, key=lambda lvl: lvl.level)

    def level(self, number: int) -> AvatarLevel:
        """Avatar level by number; unknown numbers fall back to the lowest level."""
        for lvl in self.avatar_levels:
            if lvl.level == number:
                return lvl
        return self.sorted_levels()[0]

    def next_level(self, number: int) -> AvatarLevel | None:
        for lvl in self.sorted_levels():
            if lvl.level > number:
                return lvl
        return None

    def active_trophies(self, *categories: TrophyCategory) -> list[TrophyRule]:
        return [t for t in self.trophies if t.is_active and (not categories or t.category in categories)]


DEFAULT_RULESET_DATA: dict = {
    "version": 0,
    "base_points": {
        "sale_completed": 10,
        "product_sold": 5,
        "customer_satisfaction": 15,
        "training_completed": 20,
        "perfect_attendance": 25,
    },
    "multipliers": {
        "weekend_sale": 1.5,
        "holiday_sale": 2.0,
        "premium_product": 1.3,
        "new_customer": 1.2,
        "repeat_customer": 1.1,
    },
    "penalties": {
        "late_arrival": -10,
        "customer_complaint": -20,
        "product_return": -15,
        "missed_target": -25,
        "training_missed": -30,
        "no_sales_daily": -15,
    },
    "daily_goals": {
        "sales_count": 5,
        "sales_amount": 50000,
        "products_sold": 20,
        "customer_satisfaction": 4.5,
    },
    "daily_goal_bonus": 10,
    "admin_config": {
        "cooldown_hours": 20,
        "max_daily_adjustment": 100,
        "auto_penalty_no_sales": True,
        "manager_badge_requirements": {"total_sales_threshold": 1000, "sales_count_threshold": 50},
    },
    "avatar_levels": [
        {"level": 1, "name": "Beginner", "required_points": 0, "avatar_url": "/avatars/level1.png",
         "benefits": ["Basic access"]},
        {"level": 2, "name": "Seller", "required_points": 100, "avatar_url": "/avatars/level2.png",
         "benefits": ["Bronze badge"]},
        {"level": 3, "name": "Confirmed Seller", "required_points": 300, "avatar_url": "/avatars/level3.png",
         "benefits": ["Silver badge"]},
        {"level": 4, "name": "Expert", "required_points": 600, "avatar_url": "/avatars/level4.png",
         "benefits": ["Gold badge"]},
        {"level": 5, "name": "Master Seller", "required_points": 1000, "avatar_url": "/avatars/level5.png",
         "benefits": ["Diamond badge"]},
    ],
    "badges": [
        {"type": "bronze", "name": "Bronze", "description": "First steps",
         "icon_url": "/badges/bronze.png", "required_points": 100},
        {"type": "silver", "name": "Silver", "description": "Confirmed seller",
         "icon_url": "/badges/silver.png", "required_points": 300},
        {"type": "gold", "name": "Gold", "description": "Expert seller",
         "icon_url": "/badges/gold.png", "required_points": 600},
        {"type": "diamond", "name": "Diamond", "description": "Master seller",
         "icon_url": "/badges/diamond.png", "required_points": 1000},
        {"type": "platinum", "name": "Platinum", "description": "Legend",
         "icon_url": "/badges/platinum.png", "required_points": 2000},
        {"type": "manager_bronze", "name": "Manager Bronze", "description": "Rookie manager",
         "icon_url": "/badges/manager_bronze.png", "required_points": 500, "is_manager_only": True,
         "manager_requirements": {"total_sales": 1000, "sales_count": 50}},
        {"type": "manager_silver", "name": "Manager Silver", "description": "Confirmed manager",
         "icon_url": "/badges/manager_silver.png", "required_points": 1000, "is_manager_only": True,
         "manager_requirements": {"total_sales": 2000, "sales_count": 100}},
        {"type": "manager_gold", "name": "Manager Gold", "description": "Expert manager",
         "icon_url": "/badges/manager_gold.png", "required_points": 2000, "is_manager_only": True,
         "manager_requirements": {"total_sales": 5000, "sales_count": 250}},
    ],
    "trophies": [
        {
            "name": "Best Seller of the Month",
            "description": "Over 1,000,000 in sales within the month",
            "category": "monthly",
            "icon_url": "/trophies/monthly.png",
            "points_reward": 100,
            "criteria": [{"type": "sales_amount", "operator": "greater_than", "value": 1_000_000,
                          "period": "monthly"}],
        },
        {
            "name": "Best Seller 5 Months Running",
            "description": "Best seller five consecutive months",
            "category": "consecutive",
            "icon_url": "/trophies/consecutive5.png",
            "points_reward": 500,
            "criteria": [{"type": "best_seller_count", "operator": "greater_or_equal", "value": 5,
                          "period": "monthly"}],
        },
        {
            "name": "Best Seller 15 Months Running",
            "description": "Best seller fifteen consecutive months",
            "category": "consecutive",
            "icon_url": "/trophies/consecutive15.png",
            "points_reward": 1500,
            "criteria": [{"type": "best_seller_count", "operator": "greater_or_equal", "value": 15,
                          "period": "monthly"}],
        },
        {
            "name": "Daily Objective",
            "description": "More than five sales in a single day",
            "category": "special",
            "icon_url": "/trophies/daily.png",
            "points_reward": 50,
            "criteria": [{"type": "sales_count", "operator": "greater_than", "value": 5, "period": "daily"}],
        },
    ],
}

DEFAULT_RULESET = Ruleset.model_validate(DEFAULT_RULESET_DATA)
