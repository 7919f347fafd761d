"""Live ruleset storage: fetch-or-default with a TTL cache and hot swap on save."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

import pydantic
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.db.models import GamificationConfig
from sellscore.gamification.errors import ValidationError
from sellscore.gamification.ruleset import DEFAULT_RULESET, Ruleset

logger = logging.getLogger(__name__)


def parse_ruleset(data: dict[str, Any]) -> Ruleset:
    """Validate raw ruleset data, raising ``ValidationError`` on any problem."""
    try:
        return Ruleset.model_validate(data)
    except pydantic.ValidationError as exc:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in exc.errors(include_url=False, include_context=False)
        ]
        raise ValidationError("Invalid ruleset", errors=errors) from exc


class ConfigStore:
    """Caches the newest saved ruleset revision for ``ttl_seconds``.

    A ttl of 0 disables caching (every ``get`` hits the database).
    """

    def __init__(self, ttl_seconds: float = 300) -> None:
        self.ttl_seconds = ttl_seconds
        self._cached: Ruleset | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._cached = None
        self._expires_at = 0.0

    async def get(self, db: AsyncSession) -> Ruleset:
        """Return the live ruleset, loading it when the cache is cold."""
        if self._cached is not None and time.monotonic() < self._expires_at:
            return self._cached
        async with self._lock:
            if self._cached is not None and time.monotonic() < self._expires_at:
                return self._cached
            ruleset = await self._load(db)
            if self.ttl_seconds > 0:
                self._cached = ruleset
                self._expires_at = time.monotonic() + self.ttl_seconds
            return ruleset

    async def _load(self, db: AsyncSession) -> Ruleset:
        result = await db.execute(
            select(GamificationConfig).order_by(GamificationConfig.version.desc()).limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return DEFAULT_RULESET
        try:
            ruleset = parse_ruleset(row.ruleset)
        except ValidationError:
            logger.exception("Stored ruleset version %d is invalid, using defaults", row.version)
            return DEFAULT_RULESET
        return ruleset.model_copy(update={"version": row.version})

    async def save(self, db: AsyncSession, data: dict[str, Any] | Ruleset, updated_by: str | None) -> Ruleset:
        """Validate and persist a new ruleset revision, then hot-swap the cache.

        The caller owns the transaction and must commit.
        """
        ruleset = data if isinstance(data, Ruleset) else parse_ruleset(data)
        current = await db.execute(select(func.max(GamificationConfig.version)))
        version = (current.scalar_one_or_none() or 0) + 1
        stored = ruleset.model_copy(update={"version": version})
        db.add(
            GamificationConfig(
                version=version,
                ruleset=stored.model_dump(mode="json"),
                updated_by=updated_by,
                updated_at=datetime.now(timezone.utc),
            )
        )
        await db.flush()
        self.invalidate()
        logger.info("Saved ruleset version %d (by %s)", version, updated_by)
        return stored


_store: ConfigStore | None = None


def get_config_store() -> ConfigStore:
    """Process-wide ConfigStore built from settings."""
    global _store  # noqa: PLW0603
    if _store is None:
        from sellscore.config import get_settings

        _store = ConfigStore(ttl_seconds=get_settings().config_cache_ttl_seconds)
    return _store
