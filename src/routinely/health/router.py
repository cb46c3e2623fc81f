"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.config import get_settings
from routinely.database import get_session
from routinely.db.models import PointsTransaction
from routinely.redis_client import redis_status

router = APIRouter()

# Redis only carries broadcasts and rate limits
_OPTIONAL_OK = frozenset({"ok", "not_configured"})


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> JSONResponse:
    """Readiness probe: the ledger table must answer, Redis may be absent."""
    checks: dict[str, str] = {}

    try:
        await db.execute(select(func.count()).select_from(PointsTransaction).limit(1))
        checks["database"] = "ok"
    except Exception as exc:  # noqa: BLE001
        checks["database"] = f"error: {exc}"

    checks["redis"] = await redis_status()

    if checks["database"] != "ok":
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "code": "database_unavailable", "checks": checks},
        )
    status = "ready" if checks["redis"] in _OPTIONAL_OK else "degraded"
    return JSONResponse(status_code=200, content={"status": status, "checks": checks})


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version, environment and the ledger's calendar settings."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
        "timezone": settings.timezone,
        "habit_reversal_policy": settings.habit_reversal_policy,
    }
