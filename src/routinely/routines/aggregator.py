"""Routine completion and streaks, derived from habit_records.

compute_completion() and compute_streak() are pure. The database helpers
only gather inputs for them: which habits a routine holds and which of those
have a record on a given date. The routine_completions table is a cache
written by refresh_routine_completions() and never read back here.

Percentages use the required habits as the denominator. A routine with no
required habits falls back to all of its habits; a routine with no habits
never meets its threshold.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from routinely.auth.access import require_reader
from routinely.config import get_settings
from routinely.dates import days_back, local_today
from routinely.db.models import (
    HabitRecord,
    PointsTransaction,
    Routine,
    RoutineCompletion,
    RoutineHabit,
    User,
)
from routinely.errors import Forbidden, NotFound, ValidationError
from routinely.points.ledger_service import record_transaction

logger = logging.getLogger(__name__)

MAX_STATS_DAYS = 90


@dataclass(frozen=True)
class CompletionSnapshot:
    completion_percentage: int
    completed_habits: int
    total_habits: int
    completed_required: int
    total_required: int
    points_earned: int
    threshold_met: bool


@dataclass(frozen=True)
class RoutineRefresh:
    routine_id: uuid.UUID
    snapshot: CompletionSnapshot
    bonus_delta: int = 0
    transaction: PointsTransaction | None = None


def compute_completion(
    routine_habits: Iterable[RoutineHabit],
    completed_ids: set[uuid.UUID],
    threshold: int,
) -> CompletionSnapshot:
    links = list(routine_habits)
    required = [rh for rh in links if rh.is_required] or links

    completed = [rh for rh in links if rh.habit_id in completed_ids]
    completed_required = sum(1 for rh in required if rh.habit_id in completed_ids)
    total_required = len(required)

    if total_required:
        percentage = completed_required * 100 // total_required
        met = completed_required * 100 >= threshold * total_required
    else:
        percentage = 0
        met = False

    return CompletionSnapshot(
        completion_percentage=percentage,
        completed_habits=len(completed),
        total_habits=len(links),
        completed_required=completed_required,
        total_required=total_required,
        points_earned=sum(rh.points_value for rh in completed),
        threshold_met=met,
    )


def is_scheduled(days: Iterable[int] | None, day: date) -> bool:
    """Weekday check, 0=Mon..6=Sun. A missing schedule means every day."""
    if days is None:
        return True
    return day.weekday() in days


def compute_streak(
    met: Callable[[date], bool],
    scheduled: Callable[[date], bool],
    today: date,
    max_lookback: int,
) -> int:
    """Consecutive scheduled days meeting the threshold, ending today or yesterday.

    Today adds to the streak only once met; an unmet today does not break it.
    Unscheduled days are skipped without counting or breaking.
    """
    streak = 0
    if scheduled(today) and met(today):
        streak += 1

    day = today
    for _ in range(max_lookback):
        day -= timedelta(days=1)
        if not scheduled(day):
            continue
        if not met(day):
            break
        streak += 1
    return streak


# ---------------------------------------------------------------------------
# Database inputs
# ---------------------------------------------------------------------------


async def load_routine(db: AsyncSession, routine_id: uuid.UUID) -> Routine:
    result = await db.execute(
        select(Routine)
        .where(Routine.id == routine_id)
        .options(selectinload(Routine.routine_habits).selectinload(RoutineHabit.habit))
    )
    routine = result.scalar_one_or_none()
    if routine is None:
        raise NotFound("Routine not found")
    return routine


async def _load_child_routine(
    db: AsyncSession, user: User, routine_id: uuid.UUID, child_id: uuid.UUID
) -> Routine:
    await require_reader(db, user, child_id)
    routine = await load_routine(db, routine_id)
    if routine.child_id != child_id:
        raise Forbidden("Routine does not belong to this child")
    return routine


async def completed_by_date(
    db: AsyncSession, habit_ids: list[uuid.UUID], start: date, end: date
) -> dict[date, set[uuid.UUID]]:
    """Habit ids with a record on each date in [start, end]."""
    if not habit_ids:
        return {}
    result = await db.execute(
        select(HabitRecord.date, HabitRecord.habit_id).where(
            HabitRecord.habit_id.in_(habit_ids),
            HabitRecord.date >= start,
            HabitRecord.date <= end,
        )
    )
    by_date: dict[date, set[uuid.UUID]] = defaultdict(set)
    for day, habit_id in result:
        by_date[day].add(habit_id)
    return by_date


async def derive_completion(db: AsyncSession, routine: Routine, day: date) -> CompletionSnapshot:
    habit_ids = [rh.habit_id for rh in routine.routine_habits]
    done = await completed_by_date(db, habit_ids, day, day)
    return compute_completion(routine.routine_habits, done.get(day, set()), routine.completion_threshold)


def _today(today: date | None) -> date:
    return today if today is not None else local_today(get_settings().timezone)


# ---------------------------------------------------------------------------
# Cache refresh (runs inside the habit toggle's unit of work)
# ---------------------------------------------------------------------------


async def _completion_row(
    db: AsyncSession, routine_id: uuid.UUID, child_id: uuid.UUID, day: date
) -> RoutineCompletion:
    result = await db.execute(
        select(RoutineCompletion).where(
            RoutineCompletion.routine_id == routine_id,
            RoutineCompletion.child_id == child_id,
            RoutineCompletion.completion_date == day,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = RoutineCompletion(routine_id=routine_id, child_id=child_id, completion_date=day)
        db.add(row)
    return row


async def refresh_routine_completions(
    db: AsyncSession, habit_id: uuid.UUID, child_id: uuid.UUID, day: date
) -> list[RoutineRefresh]:
    """Re-derive the cached completion of every routine holding habit_id.

    Also settles the routine bonus: +bonus_points once when a scheduled,
    active routine meets its threshold, and exactly the held amount back
    when it stops meeting it. Must run inside the caller's unit of work with
    the child row locked.
    """
    result = await db.execute(
        select(RoutineHabit.routine_id).where(RoutineHabit.habit_id == habit_id)
    )
    routine_ids = list(dict.fromkeys(result.scalars().all()))

    refreshed = []
    for routine_id in routine_ids:
        routine = await load_routine(db, routine_id)
        snapshot = await derive_completion(db, routine, day)

        row = await _completion_row(db, routine.id, child_id, day)
        row.completion_percentage = snapshot.completion_percentage
        row.completed_habits = snapshot.completed_habits
        row.total_habits = snapshot.total_habits
        row.points_earned = snapshot.points_earned
        row.updated_at = datetime.now(timezone.utc)
        held = row.bonus_points_awarded or 0

        bonus_delta = 0
        entry = None
        if (
            snapshot.threshold_met
            and not held
            and routine.is_active
            and routine.bonus_points > 0
            and is_scheduled(routine.days, day)
        ):
            bonus_delta = routine.bonus_points
        elif not snapshot.threshold_met and held:
            bonus_delta = -held

        if bonus_delta:
            verb = "completed" if bonus_delta > 0 else "no longer completed"
            entry = await record_transaction(
                db,
                child_id,
                "ROUTINE",
                routine.id,
                bonus_delta,
                f"Routine {verb}: {routine.title}"[:255],
            )
            row.bonus_points_awarded = held + bonus_delta
            logger.info(
                "Routine bonus child=%s routine=%s date=%s delta=%+d",
                child_id, routine.id, day, bonus_delta,
            )

        await db.flush()
        refreshed.append(RoutineRefresh(routine.id, snapshot, bonus_delta, entry))

    return refreshed


# ---------------------------------------------------------------------------
# Read operations
# ---------------------------------------------------------------------------


async def routine_completion(
    db: AsyncSession,
    user: User,
    routine_id: uuid.UUID,
    child_id: uuid.UUID,
    day: date | None = None,
) -> dict[str, Any]:
    routine = await _load_child_routine(db, user, routine_id, child_id)
    day = _today(day)
    snapshot = await derive_completion(db, routine, day)
    return {
        "routine_id": routine.id,
        "date": day,
        "scheduled": is_scheduled(routine.days, day),
        "completion_threshold": routine.completion_threshold,
        **asdict(snapshot),
    }


async def streak_for_routine(db: AsyncSession, routine: Routine, today: date) -> int:
    lookback = get_settings().streak_max_lookback_days
    habit_ids = [rh.habit_id for rh in routine.routine_habits]
    done = await completed_by_date(db, habit_ids, today - timedelta(days=lookback), today)

    def met(day: date) -> bool:
        return compute_completion(
            routine.routine_habits, done.get(day, set()), routine.completion_threshold
        ).threshold_met

    return compute_streak(met, lambda d: is_scheduled(routine.days, d), today, lookback)


async def routine_streak(
    db: AsyncSession,
    user: User,
    routine_id: uuid.UUID,
    child_id: uuid.UUID,
    today: date | None = None,
) -> dict[str, Any]:
    routine = await _load_child_routine(db, user, routine_id, child_id)
    today = _today(today)
    return {
        "routine_id": routine.id,
        "child_id": child_id,
        "as_of": today,
        "completion_threshold": routine.completion_threshold,
        "streak": await streak_for_routine(db, routine, today),
    }


async def _active_routines(db: AsyncSession, child_id: uuid.UUID) -> list[Routine]:
    result = await db.execute(
        select(Routine)
        .where(Routine.child_id == child_id, Routine.is_active.is_(True))
        .options(selectinload(Routine.routine_habits).selectinload(RoutineHabit.habit))
        .order_by(Routine.scheduled_time.asc(), Routine.created_at.asc())
    )
    return list(result.scalars().all())


async def routine_stats(
    db: AsyncSession,
    user: User,
    child_id: uuid.UUID,
    routine_id: uuid.UUID | None = None,
    days: int = 7,
    today: date | None = None,
) -> dict[str, Any]:
    """Completion over the last N days, derived from habit records."""
    if not 1 <= days <= MAX_STATS_DAYS:
        msg = f"days must be between 1 and {MAX_STATS_DAYS}"
        raise ValidationError(msg)

    await require_reader(db, user, child_id)
    today = _today(today)

    active = await _active_routines(db, child_id)
    if routine_id is not None:
        selected = [await _load_child_routine(db, user, routine_id, child_id)]
    else:
        selected = active

    window = days_back(today, days)
    habit_ids = list({rh.habit_id for r in selected for rh in r.routine_habits})
    done = await completed_by_date(db, habit_ids, window[0], today)

    completions = []
    for day in reversed(window):
        for routine in selected:
            if not is_scheduled(routine.days, day):
                continue
            snapshot = compute_completion(
                routine.routine_habits, done.get(day, set()), routine.completion_threshold
            )
            completions.append({"routine_id": routine.id, "date": day, **asdict(snapshot)})

    today_rows = [c for c in completions if c["date"] == today]
    average = (
        round(sum(c["completion_percentage"] for c in completions) / len(completions))
        if completions
        else 0
    )

    stats: dict[str, Any] = {
        "child_id": child_id,
        "days": days,
        "streak": None,
        "completions": completions,
        "total_routines": len(active),
        "completed_today": sum(1 for c in today_rows if c["threshold_met"]),
        "average_completion": average,
    }
    if routine_id is not None:
        stats["streak"] = await streak_for_routine(db, selected[0], today)
    return stats


async def today_routines(
    db: AsyncSession,
    user: User,
    child_id: uuid.UUID,
    day: date | None = None,
) -> dict[str, Any]:
    """Routines scheduled on the date with their habits and completion."""
    await require_reader(db, user, child_id)
    day = _today(day)

    scheduled = [r for r in await _active_routines(db, child_id) if is_scheduled(r.days, day)]
    habit_ids = list({rh.habit_id for r in scheduled for rh in r.routine_habits})
    done = (await completed_by_date(db, habit_ids, day, day)).get(day, set())

    items = []
    for routine in scheduled:
        snapshot = compute_completion(routine.routine_habits, done, routine.completion_threshold)
        items.append({
            "id": routine.id,
            "title": routine.title,
            "scheduled_time": routine.scheduled_time,
            "days": routine.days,
            "completion_threshold": routine.completion_threshold,
            "bonus_points": routine.bonus_points,
            "habits": [
                {
                    "habit_id": rh.habit_id,
                    "title": rh.habit.title,
                    "points_value": rh.points_value,
                    "is_required": rh.is_required,
                    "completed": rh.habit_id in done,
                }
                for rh in routine.routine_habits
            ],
            "completion": asdict(snapshot),
            "is_completed": snapshot.threshold_met,
        })

    return {"child_id": child_id, "date": day, "routines": items}
