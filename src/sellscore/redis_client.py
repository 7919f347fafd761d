"""Shared Redis client for the HTTP process.

Used by the rate limiter and the readiness probe. The arq worker opens its
own pool from ``WorkerSettings.redis_settings``.
"""

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

_client: Redis | None = None


async def init_redis(url: str, max_connections: int = 20) -> None:
    global _client  # noqa: PLW0603
    _client = from_url(url, encoding="utf-8", decode_responses=True, max_connections=max_connections)


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> Redis:
    """Return the client; RuntimeError until ``init_redis`` has run."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


async def redis_status() -> str:
    """Return "ok" when Redis answers PING, otherwise the error text."""
    try:
        await get_redis().ping()
    except (RuntimeError, RedisError, OSError) as exc:
        return f"error: {exc}"
    return "ok"
