"""SellScore HTTP service.

Serves the scoring engine (points, levels, badges, trophies, best-seller
streaks and daily goals) to the retail management application, plus the
admin adjustment endpoints and liveness/readiness probes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sellscore.config import get_settings
from sellscore.database import close_db, init_db
from sellscore.gamification.router import router as gamification_router
from sellscore.health.router import router as health_router
from sellscore.middleware import setup_middleware
from sellscore.redis_client import close_redis, init_redis


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the scoring database pool and the Redis client backing the rate limiter."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    yield
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Build the scoring API with health routes mounted at the root."""
    settings = get_settings()
    app = FastAPI(
        title="SellScore API",
        description=(
            "Seller gamification for the retail management application: points from sales and "
            "penalties, avatar levels, badges, trophies, best-seller streaks, daily goals and "
            "audited admin point adjustments."
        ),
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    return app


app = create_app()
