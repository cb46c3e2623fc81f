"""Points ledger: the single chokepoint for every balance change.

record_transaction() is the only code that writes children.points_balance.
It runs inside the caller's database transaction:
1. Lock the child row (SELECT ... FOR UPDATE)
2. Append a points_transactions row carrying the running total
3. Update the cached balance on the child

The child row lock serializes concurrent writers for one child and never
blocks other children. The (child_id, sequence) unique constraint rejects
any writer that slipped past the lock.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.access import require_parent
from routinely.config import get_settings
from routinely.database import atomic
from routinely.db.models import TRANSACTION_TYPES, Child, PointsTransaction, User
from routinely.errors import InsufficientPoints, NotFound, ValidationError
from routinely.points.events import publish_points_update

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdjustmentResult:
    transaction_id: uuid.UUID
    new_balance: int
    transaction: PointsTransaction


async def lock_child(db: AsyncSession, child_id: uuid.UUID) -> Child:
    """Load the child row with a write lock held until commit.

    populate_existing refreshes a copy already in the identity map so the
    balance we read is the one the lock protects.
    """
    result = await db.execute(
        select(Child)
        .where(Child.id == child_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    child = result.scalar_one_or_none()
    if child is None:
        raise NotFound("Child not found")
    return child


async def _last_sequence(db: AsyncSession, child_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.coalesce(func.max(PointsTransaction.sequence), 0)).where(
            PointsTransaction.child_id == child_id
        )
    )
    return int(result.scalar_one())


async def record_transaction(
    db: AsyncSession,
    child_id: uuid.UUID,
    transaction_type: str,
    related_id: uuid.UUID | None,
    points: int,
    description: str | None,
    *,
    allow_negative: bool = True,
) -> PointsTransaction:
    """Append a ledger entry and move the cached balance in lockstep.

    Does not commit: the caller's unit of work decides. Raises NotFound for
    an unknown child, InsufficientPoints when allow_negative is False and
    the entry would take the balance below zero.
    """
    if transaction_type not in TRANSACTION_TYPES:
        msg = f"Unknown transaction type '{transaction_type}'"
        raise ValidationError(msg)

    child = await lock_child(db, child_id)
    new_balance = child.points_balance + points
    if new_balance < 0 and not allow_negative:
        raise InsufficientPoints("Balance cannot go below zero")

    now = datetime.now(timezone.utc)
    entry = PointsTransaction(
        child_id=child_id,
        sequence=await _last_sequence(db, child_id) + 1,
        transaction_type=transaction_type,
        related_id=related_id,
        points=points,
        description=description,
        balance_after=new_balance,
        created_at=now,
    )
    db.add(entry)

    child.points_balance = new_balance
    child.updated_at = now
    await db.flush()

    logger.info(
        "Ledger entry child=%s seq=%d type=%s points=%+d balance=%d",
        child_id, entry.sequence, transaction_type, points, new_balance,
    )
    return entry


async def adjust_points(
    db: AsyncSession,
    user: User,
    child_id: uuid.UUID,
    points: int,
    description: str | None = None,
    redis: object = None,
) -> AdjustmentResult:
    """Manual parent adjustment, recorded as an ADJUSTMENT entry."""
    settings = get_settings()
    if not settings.adjustment_min_points <= points <= settings.adjustment_max_points:
        msg = (
            f"Adjustment must be between {settings.adjustment_min_points} "
            f"and {settings.adjustment_max_points} points"
        )
        raise ValidationError(msg)

    async with atomic(db):
        await require_parent(db, user, child_id)
        entry = await record_transaction(
            db,
            child_id,
            "ADJUSTMENT",
            None,
            points,
            description or "Manual points adjustment",
            allow_negative=settings.allow_negative_balance,
        )

    await publish_points_update(redis, entry)
    return AdjustmentResult(transaction_id=entry.id, new_balance=entry.balance_after, transaction=entry)
