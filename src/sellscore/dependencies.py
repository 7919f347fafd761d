"""Shared FastAPI dependencies."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sellscore.config import get_settings
from sellscore.database import get_session
from sellscore.gamification.config_store import get_config_store
from sellscore.gamification.engine import ScoringEngine


async def get_scoring_engine(db: AsyncSession = Depends(get_session)) -> ScoringEngine:  # noqa: B008
    """A ScoringEngine bound to the request's session."""
    return ScoringEngine(
        db,
        config_store=get_config_store(),
        admin_roles=get_settings().admin_roles,
    )
