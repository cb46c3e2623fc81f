"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from routinely.behaviors.router import router as behaviors_router
from routinely.config import get_settings
from routinely.database import close_db, init_db
from routinely.habits.router import router as habits_router
from routinely.health.router import router as health_router
from routinely.middleware import setup_middleware
from routinely.points.router import router as points_router
from routinely.redis_client import close_redis, init_redis
from routinely.rewards.router import router as rewards_router
from routinely.routines.router import router as routines_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url, settings.redis_max_connections)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Routinely API",
        description="Routines, habits and the points economy for children with ADHD",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(points_router)
    app.include_router(habits_router)
    app.include_router(behaviors_router)
    app.include_router(rewards_router)
    app.include_router(routines_router)

    return app


app = create_app()
