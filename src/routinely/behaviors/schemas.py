"""Pydantic request/response models for behavior records."""

from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel


class RecordBehaviorRequest(BaseModel):
    child_id: uuid.UUID
    date: dt.date | None = None
    notes: str | None = None


class BehaviorRecordResponse(BaseModel):
    id: uuid.UUID
    behavior_id: uuid.UUID
    date: dt.date
    notes: str | None = None
    points_applied: int


class RecordBehaviorResponse(BaseModel):
    record: BehaviorRecordResponse
    behavior_type: str
    transaction_id: uuid.UUID
    new_balance: int
