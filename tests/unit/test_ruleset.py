"""Ruleset validation and defaults."""

import pytest

from sellscore.gamification.config_store import parse_ruleset
from sellscore.gamification.errors import ValidationError
from sellscore.gamification.ruleset import DEFAULT_RULESET, DEFAULT_RULESET_DATA, CriterionOperator


def _data(**overrides) -> dict:
    data = DEFAULT_RULESET.model_dump(mode="json")
    data.update(overrides)
    return data


class TestDefaults:
    def test_default_point_tables(self):
        assert DEFAULT_RULESET.base_points["sale_completed"] == 10
        assert DEFAULT_RULESET.multipliers["holiday_sale"] == 2.0
        assert DEFAULT_RULESET.penalties["no_sales_daily"] == -15
        assert DEFAULT_RULESET.daily_goal_bonus == 10

    def test_default_admin_limits(self):
        assert DEFAULT_RULESET.admin_config.cooldown_hours == 20
        assert DEFAULT_RULESET.admin_config.max_daily_adjustment == 100
        assert DEFAULT_RULESET.admin_config.auto_penalty_no_sales is True

    def test_default_levels(self):
        thresholds = [lvl.required_points for lvl in DEFAULT_RULESET.sorted_levels()]
        assert thresholds == [0, 100, 300, 600, 1000]

    def test_default_trophy_operators(self):
        ops = {t.name: CriterionOperator(t.criteria[0].operator) for t in DEFAULT_RULESET.trophies}
        assert ops["Best Seller of the Month"] is CriterionOperator.GREATER_THAN
        assert ops["Best Seller 5 Months Running"] is CriterionOperator.GREATER_OR_EQUAL

    def test_round_trips_through_json(self):
        assert parse_ruleset(DEFAULT_RULESET.model_dump(mode="json")) == DEFAULT_RULESET

    def test_unknown_level_falls_back_to_lowest(self):
        assert DEFAULT_RULESET.level(99).level == 1


class TestValidation:
    def test_duplicate_level_numbers(self):
        levels = DEFAULT_RULESET_DATA["avatar_levels"] + [DEFAULT_RULESET_DATA["avatar_levels"][0]]
        with pytest.raises(ValidationError) as exc:
            parse_ruleset(_data(avatar_levels=levels))
        assert exc.value.status_code == 422

    def test_thresholds_must_increase(self):
        levels = [
            {"level": 1, "name": "A", "required_points": 0},
            {"level": 2, "name": "B", "required_points": 300},
            {"level": 3, "name": "C", "required_points": 300},
        ]
        with pytest.raises(ValidationError):
            parse_ruleset(_data(avatar_levels=levels))

    def test_at_least_one_level(self):
        with pytest.raises(ValidationError):
            parse_ruleset(_data(avatar_levels=[]))

    def test_duplicate_badge_types(self):
        badges = DEFAULT_RULESET_DATA["badges"] + [DEFAULT_RULESET_DATA["badges"][0]]
        with pytest.raises(ValidationError):
            parse_ruleset(_data(badges=badges))

    def test_duplicate_trophy_names(self):
        trophies = DEFAULT_RULESET_DATA["trophies"] + [DEFAULT_RULESET_DATA["trophies"][0]]
        with pytest.raises(ValidationError):
            parse_ruleset(_data(trophies=trophies))

    def test_admin_cap_must_be_positive(self):
        admin = {**DEFAULT_RULESET_DATA["admin_config"], "max_daily_adjustment": 0}
        with pytest.raises(ValidationError) as exc:
            parse_ruleset(_data(admin_config=admin))
        assert any("max_daily_adjustment" in e["loc"] for e in exc.value.extra["errors"])

    def test_unknown_operator_is_accepted(self):
        trophies = [
            {"name": "Odd", "category": "special", "criteria": [
                {"type": "sales_count", "operator": "between", "value": 3, "period": "daily"},
            ]},
        ]
        ruleset = parse_ruleset(_data(trophies=trophies))
        assert ruleset.trophies[0].criteria[0].operator == "between"

    def test_ruleset_is_immutable(self):
        with pytest.raises(Exception):  # noqa: B017
            DEFAULT_RULESET.daily_goal_bonus = 50
