"""Tests for ruleset loading, caching and hot swap."""

from __future__ import annotations

import copy

import pytest

from sellscore.db.models import GamificationConfig
from sellscore.gamification.config_store import ConfigStore, parse_ruleset
from sellscore.gamification.errors import ValidationError
from sellscore.gamification.ruleset import DEFAULT_RULESET, DEFAULT_RULESET_DATA


def _data(**base_points: int) -> dict:
    data = copy.deepcopy(DEFAULT_RULESET_DATA)
    data["base_points"].update(base_points)
    return data


class TestParseRuleset:
    def test_valid(self):
        assert parse_ruleset(_data()) == DEFAULT_RULESET

    def test_errors_are_listed(self):
        data = _data()
        data["avatar_levels"] = []
        with pytest.raises(ValidationError) as exc_info:
            parse_ruleset(data)
        errors = exc_info.value.extra["errors"]
        assert errors
        assert all({"loc", "msg"} <= set(e) for e in errors)


class TestConfigStore:
    @pytest.mark.asyncio
    async def test_defaults_when_nothing_saved(self, db_session):
        ruleset = await ConfigStore(ttl_seconds=0).get(db_session)
        assert ruleset == DEFAULT_RULESET
        assert ruleset.version == 0

    @pytest.mark.asyncio
    async def test_save_increments_version(self, db_session):
        store = ConfigStore(ttl_seconds=300)
        first = await store.save(db_session, _data(sale_completed=11), "admin-1")
        second = await store.save(db_session, _data(sale_completed=12), "admin-1")
        await db_session.commit()

        assert (first.version, second.version) == (1, 2)
        live = await store.get(db_session)
        assert live.version == 2
        assert live.base_points["sale_completed"] == 12

    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self, db_session):
        store = ConfigStore(ttl_seconds=300)
        assert (await store.get(db_session)).version == 0

        db_session.add(GamificationConfig(version=1, ruleset=_data(sale_completed=99), updated_by="elsewhere"))
        await db_session.commit()
        assert (await store.get(db_session)).version == 0

        store.invalidate()
        live = await store.get(db_session)
        assert live.version == 1
        assert live.base_points["sale_completed"] == 99

    @pytest.mark.asyncio
    async def test_invalid_stored_revision_falls_back(self, db_session):
        db_session.add(GamificationConfig(version=1, ruleset={"base_points": "nonsense"}, updated_by="x"))
        await db_session.commit()
        assert await ConfigStore(ttl_seconds=0).get(db_session) == DEFAULT_RULESET

    @pytest.mark.asyncio
    async def test_invalid_save_writes_nothing(self, db_session):
        store = ConfigStore(ttl_seconds=0)
        with pytest.raises(ValidationError):
            await store.save(db_session, {"base_points": {}}, "admin-1")
        assert (await store.get(db_session)).version == 0
