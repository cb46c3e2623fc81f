"""Routine completion, streak and stats endpoints."""

from __future__ import annotations

import datetime as dt
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.dependencies import get_current_user
from routinely.database import get_session
from routinely.db.models import User
from routinely.routines.aggregator import (
    MAX_STATS_DAYS,
    routine_completion,
    routine_stats,
    routine_streak,
    today_routines,
)
from routinely.routines.schemas import (
    RoutineCompletionResponse,
    RoutineStatsResponse,
    StreakResponse,
    TodayRoutinesResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Routines"])


@router.get("/routines/stats", response_model=RoutineStatsResponse)
async def stats(
    child_id: uuid.UUID,
    routine_id: uuid.UUID | None = None,
    days: int = Query(7, ge=1, le=MAX_STATS_DAYS),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Completion for the last N days, plus the streak when a routine is given."""
    return await routine_stats(db, user, child_id, routine_id=routine_id, days=days)


@router.get("/routines/today", response_model=TodayRoutinesResponse)
async def today(
    child_id: uuid.UUID,
    date: dt.date | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Routines scheduled for the day with their habits and progress."""
    return await today_routines(db, user, child_id, day=date)


@router.get("/routines/{routine_id}/streak", response_model=StreakResponse)
async def streak(
    routine_id: uuid.UUID,
    child_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return await routine_streak(db, user, routine_id, child_id)


@router.get("/routines/{routine_id}/completion", response_model=RoutineCompletionResponse)
async def completion(
    routine_id: uuid.UUID,
    child_id: uuid.UUID,
    date: dt.date | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return await routine_completion(db, user, routine_id, child_id, day=date)
