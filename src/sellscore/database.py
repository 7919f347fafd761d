"""Async SQLAlchemy engine, session management and portable write helpers."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db(url: str) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    if url.startswith("sqlite"):
        _engine = create_async_engine(url, echo=False)
    else:
        _engine = create_async_engine(
            url,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
            connect_args={"statement_cache_size": 0},
        )
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    async with _session_factory() as session:
        yield session


def dialect_name(db: AsyncSession) -> str:
    """Name of the dialect the session is bound to ("postgresql", "sqlite", ...)."""
    return db.get_bind().dialect.name


async def insert_ignore(
    db: AsyncSession,
    model: Any,  # noqa: ANN401
    values: dict[str, Any],
    index_elements: list[str],
) -> bool:
    """INSERT a row unless it collides with a unique key.

    Returns True when this call created the row, False when the row already
    existed (including when a concurrent transaction won the race).
    """
    dialect = dialect_name(db)
    pk = model.__mapper__.primary_key[0]

    if dialect in ("postgresql", "sqlite"):
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert_fn(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=index_elements)
            .returning(pk)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    # Generic fallback: savepoint + unique constraint
    try:
        async with db.begin_nested():
            db.add(model(**values))
    except IntegrityError:
        return False
    return True


def advisory_key(*parts: object) -> int:
    """Stable signed 64-bit key for pg_advisory_xact_lock."""
    digest = hashlib.sha256(":".join(str(p) for p in parts).encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


async def advisory_xact_lock(db: AsyncSession, *parts: object) -> None:
    """Take a transaction-scoped advisory lock (PostgreSQL only).

    Released automatically on commit or rollback. Other dialects serialize
    writers on their own, so the lock is skipped there.
    """
    if dialect_name(db) != "postgresql":
        logger.debug("Advisory lock skipped for dialect %s", dialect_name(db))
        return
    await db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(*parts)})


async def lock_row(db: AsyncSession, model: Any, *criteria: Any) -> Any:  # noqa: ANN401
    """SELECT ... FOR UPDATE a single row and return it (fresh from the database)."""
    result = await db.execute(
        select(model).where(*criteria).with_for_update().execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
