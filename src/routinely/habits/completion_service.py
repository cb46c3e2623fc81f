"""Habit completion toggling.

A habit_records row for (habit, date) means "completed". Completing awards
the sum of the habit's points_value across every routine it belongs to;
uncompleting deletes the row and reverses the award. Both directions are
idempotent: completing twice awards once, uncompleting a missing record is
a no-op. Everything runs under the child row lock in one unit of work,
together with the routine completion refresh.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.access import require_parent
from routinely.config import get_settings
from routinely.database import atomic
from routinely.dates import local_today
from routinely.db.models import Habit, HabitRecord, PointsTransaction, RoutineHabit, User
from routinely.errors import Forbidden, NotFound
from routinely.points.events import publish_points_update
from routinely.points.ledger_service import lock_child, record_transaction
from routinely.routines.aggregator import RoutineRefresh, refresh_routine_completions

logger = logging.getLogger(__name__)

DEFAULT_NOTES = "Completed from today view"


@dataclass
class ToggleResult:
    action: str  # created | updated | deleted | none
    habit: Habit
    date: date
    record: HabitRecord | None = None
    points_earned: int | None = None
    points_lost: int | None = None
    new_balance: int = 0
    transactions: list[PointsTransaction] = field(default_factory=list)
    routines: list[RoutineRefresh] = field(default_factory=list)


async def routine_points_for_habit(db: AsyncSession, habit_id: uuid.UUID) -> int:
    """Points a completion is worth: the habit's value summed over all its routines."""
    result = await db.execute(
        select(func.coalesce(func.sum(RoutineHabit.points_value), 0)).where(
            RoutineHabit.habit_id == habit_id
        )
    )
    return int(result.scalar_one())


async def _get_record(db: AsyncSession, habit_id: uuid.UUID, day: date) -> HabitRecord | None:
    result = await db.execute(
        select(HabitRecord)
        .where(HabitRecord.habit_id == habit_id, HabitRecord.date == day)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _complete(
    db: AsyncSession, habit: Habit, day: date, notes: str | None, result: ToggleResult
) -> None:
    record = await _get_record(db, habit.id, day)
    now = datetime.now(timezone.utc)

    if record is not None:
        # Re-marking never awards twice.
        record.value = 1
        record.notes = notes or DEFAULT_NOTES
        record.updated_at = now
        result.action = "updated"
        result.record = record
        return

    points = await routine_points_for_habit(db, habit.id)
    record = HabitRecord(
        habit_id=habit.id,
        date=day,
        value=1,
        notes=notes or DEFAULT_NOTES,
        points_awarded=points,
        created_at=now,
        updated_at=now,
    )
    db.add(record)
    await db.flush()

    if points:
        entry = await record_transaction(
            db, habit.child_id, "HABIT", habit.id, points, f"Habit completed: {habit.title}"[:255]
        )
        result.transactions.append(entry)

    result.action = "created"
    result.record = record
    result.points_earned = points


async def _uncomplete(db: AsyncSession, habit: Habit, day: date, result: ToggleResult) -> None:
    record = await _get_record(db, habit.id, day)
    if record is None:
        result.action = "none"
        return

    if get_settings().habit_reversal_policy == "live":
        points = await routine_points_for_habit(db, habit.id)
    else:
        points = record.points_awarded

    await db.delete(record)
    await db.flush()

    if points:
        entry = await record_transaction(
            db,
            habit.child_id,
            "HABIT",
            habit.id,
            -points,
            f"Habit unmarked: {habit.title}"[:255],
            allow_negative=get_settings().allow_negative_balance,
        )
        result.transactions.append(entry)

    result.action = "deleted"
    result.points_lost = points


async def set_habit_completion(
    db: AsyncSession,
    user: User,
    habit_id: uuid.UUID,
    child_id: uuid.UUID,
    completed: bool,
    day: date | None = None,
    notes: str | None = None,
    redis: object = None,
) -> ToggleResult:
    """Mark a habit done or not done for a date (default: today).

    Raises NotFound for an unknown child or habit and Forbidden when the
    caller is not the parent or the habit belongs to another child.
    """
    settings = get_settings()
    if day is None:
        day = local_today(settings.timezone)

    async with atomic(db):
        await require_parent(db, user, child_id)
        habit = await db.get(Habit, habit_id)
        if habit is None:
            raise NotFound("Habit not found")
        if habit.child_id != child_id:
            raise Forbidden("Habit does not belong to this child")

        child = await lock_child(db, child_id)
        result = ToggleResult(action="none", habit=habit, date=day)

        if completed:
            await _complete(db, habit, day, notes, result)
        else:
            await _uncomplete(db, habit, day, result)

        if result.action in ("created", "deleted"):
            result.routines = await refresh_routine_completions(db, habit.id, child_id, day)
            result.transactions.extend(r.transaction for r in result.routines if r.transaction)

        result.new_balance = child.points_balance

    logger.info(
        "Habit toggle child=%s habit=%s date=%s action=%s balance=%d",
        child_id, habit_id, day, result.action, result.new_balance,
    )
    for entry in result.transactions:
        await publish_points_update(redis, entry)
    return result
