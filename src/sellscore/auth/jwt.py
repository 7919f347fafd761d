"""
RS256 JWT verification.

Tokens are issued by the retail application's auth service; this service only
holds the public key. Claims used: ``sub`` (user id), ``role`` and ``type``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jwt

from sellscore.config import get_settings

_public_key: str | None = None


def _load_public_key() -> str:
    """Load the RSA public key from disk (cached after first call)."""
    global _public_key  # noqa: PLW0603
    if _public_key is None:
        _public_key = Path(get_settings().jwt_public_key_path).read_text()
    return _public_key


def set_public_key(pem: str | None) -> None:
    """Override or reset the cached public key (useful for testing)."""
    global _public_key  # noqa: PLW0603
    _public_key = pem


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: The encoded JWT string.
        expected_type: Expected token type.

    Returns:
        Decoded payload dictionary.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, of the wrong
            type, or lacks the ``sub``/``role`` claims.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _load_public_key(),
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type") != expected_type:
        msg = f"Expected token type '{expected_type}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)
    if not payload.get("role"):
        msg = "Token has no role claim"
        raise jwt.InvalidTokenError(msg)

    return payload
