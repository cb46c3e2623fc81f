"""Redis pool for the rate limiter and the points_update publisher.

Redis is optional. With no URL configured the pool stays empty, the rate
limiter lets every request through and ledger writes skip the broadcast.
"""

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str | None, max_connections: int = 20) -> None:
    """Create the pool, or leave Redis disabled when url is empty."""
    global _pool  # noqa: PLW0603
    if not url:
        _pool = None
        return
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Get the Redis client. Raises RuntimeError when Redis is disabled."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


def get_redis_or_none() -> redis.Redis | None:
    """Get the Redis client, or None when Redis is not configured."""
    return _pool


async def redis_status() -> str:
    """Readiness value for Redis: "ok", "not_configured" or "error: ..."."""
    if _pool is None:
        return "not_configured"
    try:
        await _pool.ping()
    except Exception as exc:  # noqa: BLE001
        return f"error: {exc}"
    return "ok"
