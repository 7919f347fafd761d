"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sellscore.auth.jwt import verify_token
from sellscore.config import get_settings
from sellscore.gamification.engine import Actor

_bearer = HTTPBearer()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> Actor:
    """
    Extract and verify the bearer JWT, return the calling Actor.

    Raises 401 on a missing, invalid or expired token.
    """
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return Actor(user_id=str(payload["sub"]), role=str(payload["role"]))


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Same as get_current_actor but the role must be privileged."""
    if actor.role not in get_settings().admin_roles:
        raise HTTPException(status_code=403, detail="Administrator role required")
    return actor
