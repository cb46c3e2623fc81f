"""Habit completion endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.dependencies import get_current_user
from routinely.database import get_session
from routinely.db.models import User
from routinely.dependencies import get_redis_dep
from routinely.habits.completion_service import set_habit_completion
from routinely.habits.schemas import (
    HabitRecordResponse,
    HabitRef,
    RoutineProgress,
    ToggleHabitRequest,
    ToggleHabitResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Habits"])


@router.post("/habits/toggle", response_model=ToggleHabitResponse)
async def toggle_habit(
    body: ToggleHabitRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Mark a habit done or undone for a day. Safe to retry."""
    result = await set_habit_completion(
        db,
        user,
        body.habit_id,
        body.child_id,
        body.completed,
        day=body.date,
        notes=body.notes,
        redis=redis,
    )

    record = None
    if result.record is not None and result.action != "deleted":
        record = HabitRecordResponse(
            id=result.record.id,
            habit_id=result.record.habit_id,
            date=result.record.date,
            value=result.record.value,
            notes=result.record.notes,
            points_awarded=result.record.points_awarded,
            updated_at=result.record.updated_at,
        )

    return ToggleHabitResponse(
        action=result.action,
        habit=HabitRef(id=result.habit.id, title=result.habit.title),
        date=result.date,
        record=record,
        points_earned=result.points_earned,
        points_lost=result.points_lost,
        new_balance=result.new_balance,
        routines=[
            RoutineProgress(
                routine_id=r.routine_id,
                completion_percentage=r.snapshot.completion_percentage,
                threshold_met=r.snapshot.threshold_met,
                bonus_points=r.bonus_delta,
            )
            for r in result.routines
        ],
    )
