"""Health endpoint tests."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from routinely import redis_client


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    """GET /health returns 200 with healthy status."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_readiness_without_redis(client: AsyncClient) -> None:
    """GET /ready is ready on the database alone when Redis is not configured."""
    response = await client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"database": "ok", "redis": "not_configured"}


@pytest.mark.asyncio
async def test_readiness_with_unreachable_redis(client: AsyncClient, monkeypatch) -> None:
    """A configured Redis that fails its ping degrades readiness."""
    pool = AsyncMock()
    pool.ping.side_effect = ConnectionError("refused")
    monkeypatch.setattr(redis_client, "_pool", pool)

    response = await client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["checks"]["redis"] == "error: refused"


@pytest.mark.asyncio
async def test_init_redis_without_url_stays_disabled() -> None:
    await redis_client.init_redis("")
    assert redis_client.get_redis_or_none() is None
    assert await redis_client.redis_status() == "not_configured"


@pytest.mark.asyncio
async def test_version(client: AsyncClient) -> None:
    """GET /version returns version, environment and calendar settings."""
    response = await client.get("/version")
    assert response.status_code == 200
    data = response.json()
    assert data["version"] == "0.1.0"
    assert "environment" in data
    assert data["timezone"] == "UTC"
    assert data["habit_reversal_policy"] == "snapshot"
