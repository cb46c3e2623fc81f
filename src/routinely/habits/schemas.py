"""Pydantic request/response models for the habit toggle."""

from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel


class ToggleHabitRequest(BaseModel):
    habit_id: uuid.UUID
    child_id: uuid.UUID
    completed: bool
    date: dt.date | None = None
    notes: str | None = None


class HabitRef(BaseModel):
    id: uuid.UUID
    title: str


class HabitRecordResponse(BaseModel):
    id: uuid.UUID
    habit_id: uuid.UUID
    date: dt.date
    value: int
    notes: str | None = None
    points_awarded: int
    updated_at: dt.datetime


class RoutineProgress(BaseModel):
    routine_id: uuid.UUID
    completion_percentage: int
    threshold_met: bool
    bonus_points: int = 0


class ToggleHabitResponse(BaseModel):
    action: str
    habit: HabitRef
    date: dt.date
    record: HabitRecordResponse | None = None
    points_earned: int | None = None
    points_lost: int | None = None
    new_balance: int
    routines: list[RoutineProgress] = []
