"""Shared test fixtures.

Tests run against an in-memory SQLite database (aiosqlite) with the schema
created from the ORM metadata; Redis is not started, so the rate limiter
lets every request through.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import jwt
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sellscore.auth.jwt import set_public_key
from sellscore.config import get_settings
from sellscore.database import get_session
from sellscore.db.models import Base, Profile, Sale
from sellscore.dependencies import get_scoring_engine
from sellscore.gamification.config_store import ConfigStore
from sellscore.gamification.eligibility import SalesTotals, utc_day_start
from sellscore.gamification.engine import ScoringEngine
from sellscore.main import create_app

T0 = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Clock and collaborator stubs
# ---------------------------------------------------------------------------


class FakeClock:
    """Deterministic clock; call it to read, ``advance`` to move forward."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class StubSales:
    def __init__(self) -> None:
        self.lifetime: dict[str, SalesTotals] = {}
        self.since: dict[tuple[str, datetime], SalesTotals] = {}
        self.sold_today: set[str] = set()

    async def lifetime_totals(self, user_id: str) -> SalesTotals:
        return self.lifetime.get(user_id, SalesTotals())

    async def period_totals(self, user_id: str, since: datetime) -> SalesTotals:
        return self.since.get((user_id, since), SalesTotals())

    async def had_sale_today(self, user_id: str, now: datetime) -> bool:
        return user_id in self.sold_today


class StubMonthlyStats:
    def __init__(self) -> None:
        self.top: dict[str, str] = {}
        self.marked: list[tuple[str, str]] = []
        self.refreshed: list[str] = []

    async def top_seller(self, month: str) -> str | None:
        return self.top.get(month)

    async def mark_best_seller(self, user_id: str, month: str) -> None:
        self.marked.append((user_id, month))

    async def refresh_month(self, month: str) -> None:
        self.refreshed.append(month)


class StubRoles:
    def __init__(self) -> None:
        self.roles: dict[str, str] = {}

    async def get_role(self, user_id: str) -> str | None:
        return self.roles.get(user_id)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database per test, schema from the ORM metadata."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sales() -> StubSales:
    return StubSales()


@pytest.fixture
def monthly_stats() -> StubMonthlyStats:
    return StubMonthlyStats()


@pytest.fixture
def roles() -> StubRoles:
    return StubRoles()


@pytest.fixture
def config_store() -> ConfigStore:
    return ConfigStore(ttl_seconds=0)


@pytest.fixture
def engine(
    db_session: AsyncSession,
    config_store: ConfigStore,
    sales: StubSales,
    monthly_stats: StubMonthlyStats,
    roles: StubRoles,
    clock: FakeClock,
) -> ScoringEngine:
    """ScoringEngine over the test session with stubbed collaborators."""
    return ScoringEngine(
        db_session,
        config_store=config_store,
        sales=sales,
        monthly_stats=monthly_stats,
        roles=roles,
        admin_roles=("admin",),
        clock=clock,
    )


async def add_sale(
    db: AsyncSession,
    user_id: str,
    amount: float,
    created_at: datetime,
    product_count: int = 1,
) -> Sale:
    sale = Sale(user_id=user_id, total_amount=Decimal(str(amount)), product_count=product_count, created_at=created_at)
    db.add(sale)
    await db.commit()
    return sale


async def add_profile(db: AsyncSession, user_id: str, role: str = "seller", name: str = "") -> Profile:
    profile = Profile(id=user_id, name=name or user_id, role=role, is_active=True)
    db.add(profile)
    await db.commit()
    return profile


def today_start(clock: FakeClock) -> datetime:
    return utc_day_start(clock.now)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_private_key() -> str:
    """RSA key pair generated once per run; the public half is installed for verification."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    set_public_key(public_pem)
    return private_pem


@pytest.fixture
def make_token(rsa_private_key: str) -> Callable[..., str]:
    def _make(user_id: str = "admin-1", role: str = "admin", **overrides: Any) -> str:
        settings = get_settings()
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": user_id,
            "role": role,
            "iat": now,
            "exp": now + timedelta(hours=1),
            "iss": settings.jwt_issuer,
            "type": "access",
            **overrides,
        }
        return jwt.encode(payload, rsa_private_key, algorithm="RS256")

    return _make


@pytest.fixture
def auth_headers(make_token: Callable[..., str]) -> Callable[..., dict[str, str]]:
    def _headers(user_id: str = "admin-1", role: str = "admin") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}

    return _headers


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    rsa_private_key: str,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, bound to the in-memory database."""
    app = create_app()
    store = ConfigStore(ttl_seconds=0)

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _engine() -> AsyncGenerator[ScoringEngine, None]:
        async with session_factory() as session:
            yield ScoringEngine(session, config_store=store, admin_roles=("admin",))

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_scoring_engine] = _engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
