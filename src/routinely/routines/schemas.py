"""Pydantic response models for routine endpoints."""

from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel


class CompletionResponse(BaseModel):
    completion_percentage: int
    completed_habits: int
    total_habits: int
    completed_required: int
    total_required: int
    points_earned: int
    threshold_met: bool


class RoutineCompletionResponse(CompletionResponse):
    routine_id: uuid.UUID
    date: dt.date
    scheduled: bool
    completion_threshold: int


class StreakResponse(BaseModel):
    routine_id: uuid.UUID
    child_id: uuid.UUID
    as_of: dt.date
    completion_threshold: int
    streak: int


class DailyCompletion(CompletionResponse):
    routine_id: uuid.UUID
    date: dt.date


class RoutineStatsResponse(BaseModel):
    child_id: uuid.UUID
    days: int
    streak: int | None = None
    completions: list[DailyCompletion]
    total_routines: int
    completed_today: int
    average_completion: int


# --- Today ---


class TodayHabit(BaseModel):
    habit_id: uuid.UUID
    title: str
    points_value: int
    is_required: bool
    completed: bool


class TodayRoutine(BaseModel):
    id: uuid.UUID
    title: str
    scheduled_time: dt.time | None = None
    days: list[int]
    completion_threshold: int
    bonus_points: int
    habits: list[TodayHabit]
    completion: CompletionResponse
    is_completed: bool


class TodayRoutinesResponse(BaseModel):
    child_id: uuid.UUID
    date: dt.date
    routines: list[TodayRoutine]
