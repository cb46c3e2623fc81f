"""Shared test fixtures.

Tests run against a throwaway SQLite file through aiosqlite. Every
transaction starts with BEGIN IMMEDIATE, so concurrent sessions queue on the
database write lock the way they queue on the child row lock in PostgreSQL.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from routinely.auth.jwt import create_access_token, reset_keys
from routinely.config import get_settings
from routinely.database import close_db, get_engine, get_session_factory, init_db
from routinely.db.base import Base
from routinely.db.models import (
    Behavior,
    Child,
    Habit,
    ProfessionalAccess,
    Reward,
    Routine,
    RoutineHabit,
    User,
)
from routinely.main import create_app
from routinely.points.ledger_service import record_transaction


@pytest.fixture(scope="session", autouse=True)
def jwt_keys(tmp_path_factory: pytest.TempPathFactory) -> tuple[Path, Path]:
    """Generate an RSA key pair once and point the settings at it."""
    key_dir = tmp_path_factory.mktemp("keys")
    private_path = key_dir / "jwt_private.pem"
    public_path = key_dir / "jwt_public.pem"

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    public_path.write_bytes(
        key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )

    os.environ["ROUTINELY_JWT_PRIVATE_KEY_PATH"] = str(private_path)
    os.environ["ROUTINELY_JWT_PUBLIC_KEY_PATH"] = str(public_path)
    os.environ["ROUTINELY_LOG_FORMAT"] = "console"
    return private_path, public_path


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings and keys around each test so monkeypatched env applies."""
    get_settings.cache_clear()
    reset_keys()
    yield
    get_settings.cache_clear()
    reset_keys()


def _serialize_sqlite(engine: AsyncEngine) -> None:
    """Take the write lock at BEGIN so concurrent units of work run one at a time."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Fresh schema in a temporary SQLite file."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'routinely.db'}")
    engine = get_engine()
    _serialize_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for setup and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the ASGI app. Redis is left uninitialized."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest.fixture
def auth():
    """Bearer headers for a seeded user."""
    return auth_headers


class Seed:
    """Builds rows for a test. Every method commits."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._n = 0

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def user(self, role: str = "parent") -> User:
        self._n += 1
        return await self._save(User(email=f"{role}{self._n}@example.com", role=role))

    async def child(self, parent: User, points: int = 0, name: str = "Alex") -> Child:
        child = await self._save(Child(parent_id=parent.id, name=name))
        if points:
            await record_transaction(self.db, child.id, "ADJUSTMENT", None, points, "Starting balance")
            await self.db.commit()
        return child

    async def habit(self, child: Child, title: str = "Brush teeth", points_value: int = 0) -> Habit:
        return await self._save(Habit(child_id=child.id, title=title, points_value=points_value))

    async def routine(
        self,
        child: Child,
        title: str = "Morning",
        completion_threshold: int = 100,
        days: list[int] | None = None,
        bonus_points: int = 0,
    ) -> Routine:
        return await self._save(Routine(
            child_id=child.id,
            title=title,
            completion_threshold=completion_threshold,
            days=list(range(7)) if days is None else days,
            bonus_points=bonus_points,
        ))

    async def link(
        self, routine: Routine, habit: Habit, points_value: int = 10, is_required: bool = True
    ) -> RoutineHabit:
        return await self._save(RoutineHabit(
            routine_id=routine.id,
            habit_id=habit.id,
            points_value=points_value,
            is_required=is_required,
        ))

    async def reward(
        self, child: Child, points_required: int = 50, title: str = "Ice cream", is_active: bool = True
    ) -> Reward:
        return await self._save(Reward(
            child_id=child.id, title=title, points_required=points_required, is_active=is_active
        ))

    async def behavior(
        self, child: Child, type: str = "POSITIVE", points: int = 5, title: str = "Shared toys"
    ) -> Behavior:
        return await self._save(Behavior(child_id=child.id, title=title, type=type, points=points))

    async def grant(
        self,
        child: Child,
        professional: User,
        status: str = "active",
        permissions: list[str] | None = None,
    ) -> ProfessionalAccess:
        return await self._save(ProfessionalAccess(
            child_id=child.id,
            professional_id=professional.id,
            professional_email=professional.email,
            status=status,
            permissions=["view_progress"] if permissions is None else permissions,
        ))


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession) -> Seed:
    return Seed(db_session)


@pytest_asyncio.fixture
async def family(seed: Seed) -> tuple[User, Child]:
    """A parent with one child at balance 0."""
    parent = await seed.user()
    child = await seed.child(parent)
    return parent, child
