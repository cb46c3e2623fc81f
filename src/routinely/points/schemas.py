"""Pydantic request/response models for points endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from routinely.rewards.schemas import AchievableRewardResponse, ChildRef


# --- Adjust ---


class AdjustPointsRequest(BaseModel):
    child_id: uuid.UUID
    points: int
    description: str | None = Field(default=None, min_length=3, max_length=255)


class TransactionResponse(BaseModel):
    id: uuid.UUID
    sequence: int
    transaction_type: str
    related_id: uuid.UUID | None = None
    related_type: str | None = None
    points: int
    description: str | None = None
    balance_after: int
    created_at: datetime


class AdjustPointsResponse(BaseModel):
    transaction_id: uuid.UUID
    new_balance: int
    transaction: TransactionResponse


class BalanceResponse(BaseModel):
    child_id: uuid.UUID
    balance: int


# --- History ---


class HistoryStats(BaseModel):
    total_earned: int
    total_spent: int
    current_balance: int
    transactions_count: int
    habits_completed: int
    behaviors_recorded: int
    rewards_claimed: int


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int
    has_more: bool


class PointsHistoryResponse(BaseModel):
    child: ChildRef
    balance: int
    stats: HistoryStats
    transactions: list[TransactionResponse]
    pagination: Pagination


# --- Stats ---


class TypeBreakdown(BaseModel):
    count: int
    points: int


class DailyBreakdown(BaseModel):
    date: str
    earned: int
    spent: int
    net: int


class PeriodStats(BaseModel):
    total_earned: int
    total_spent: int
    net_gain: int
    transactions_count: int
    by_type: dict[str, TypeBreakdown]
    daily_breakdown: list[DailyBreakdown]


class Trends(BaseModel):
    earned_change: int
    spent_change: int
    earned_percentage: float
    spent_percentage: float


class DateRange(BaseModel):
    start: datetime
    end: datetime


class PointsStatsResponse(BaseModel):
    child: ChildRef
    period: str
    date_range: DateRange
    general: HistoryStats
    period_stats: PeriodStats
    trends: Trends | None = None
    available_rewards: list[AchievableRewardResponse]


# --- Reconcile ---


class ReconcileRequest(BaseModel):
    child_id: uuid.UUID
    repair: bool = True


class ReconcileResponse(BaseModel):
    child_id: uuid.UUID
    cached_balance: int
    ledger_balance: int
    drift: int
    transaction_count: int
    broken_sequences: list[int] = []
    consistent: bool
    repaired: bool
