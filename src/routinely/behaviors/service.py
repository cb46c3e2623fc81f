"""Behavior records: each one moves the balance by the behavior's points."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.access import require_parent
from routinely.config import get_settings
from routinely.database import atomic
from routinely.dates import local_today
from routinely.db.models import Behavior, BehaviorRecord, PointsTransaction, User
from routinely.errors import Forbidden, NotFound
from routinely.points.events import publish_points_update
from routinely.points.ledger_service import record_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BehaviorResult:
    record: BehaviorRecord
    behavior: Behavior
    transaction: PointsTransaction
    new_balance: int


def signed_points(behavior: Behavior) -> int:
    """POSITIVE behaviors add their points, NEGATIVE ones subtract them."""
    return behavior.points if behavior.type == "POSITIVE" else -behavior.points


async def record_behavior(
    db: AsyncSession,
    user: User,
    behavior_id: uuid.UUID,
    child_id: uuid.UUID,
    day: date | None = None,
    notes: str | None = None,
    redis: object = None,
) -> BehaviorResult:
    settings = get_settings()
    if day is None:
        day = local_today(settings.timezone)

    async with atomic(db):
        await require_parent(db, user, child_id)
        behavior = await db.get(Behavior, behavior_id)
        if behavior is None:
            raise NotFound("Behavior not found")
        if behavior.child_id != child_id:
            raise Forbidden("Behavior does not belong to this child")

        points = signed_points(behavior)
        record = BehaviorRecord(behavior_id=behavior.id, date=day, notes=notes, points_applied=points)
        db.add(record)
        await db.flush()

        entry = await record_transaction(
            db,
            child_id,
            "BEHAVIOR",
            record.id,
            points,
            f"Behavior: {behavior.title}"[:255],
            allow_negative=settings.allow_negative_balance,
        )

    logger.info("Behavior recorded child=%s behavior=%s points=%+d", child_id, behavior.id, points)
    await publish_points_update(redis, entry)
    return BehaviorResult(record=record, behavior=behavior, transaction=entry, new_balance=entry.balance_after)
