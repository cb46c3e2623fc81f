"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from routinely.redis_client import get_redis_or_none


async def get_redis_dep() -> AsyncGenerator[object, None]:
    """Yield the Redis client, or None when it is not initialized.

    Ledger writes never depend on Redis; a missing client only skips the
    points_update broadcast.
    """
    yield get_redis_or_none()
