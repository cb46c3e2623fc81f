"""Pydantic request/response models for reward endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class RewardResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: str | None = None
    points_required: int
    is_active: bool
    has_been_claimed: bool
    points_needed: int
    can_redeem: bool


class AchievableRewardResponse(RewardResponse):
    pass


class ChildRef(BaseModel):
    id: uuid.UUID
    name: str


class RewardListResponse(BaseModel):
    child: ChildRef
    balance: int
    rewards: list[RewardResponse]


# --- Claims ---


class ClaimRewardRequest(BaseModel):
    reward_id: uuid.UUID
    child_id: uuid.UUID | None = None
    notes: str | None = None


class ClaimedRewardRef(BaseModel):
    id: uuid.UUID
    title: str
    description: str | None = None
    points_required: int
    is_active: bool = True


class ClaimResponse(BaseModel):
    id: uuid.UUID
    reward_id: uuid.UUID
    claimed_at: datetime
    notes: str | None = None
    reward: ClaimedRewardRef


class ClaimRewardResponse(BaseModel):
    claim: ClaimResponse
    new_balance: int


class ClaimListResponse(BaseModel):
    child: ChildRef
    claims: list[ClaimResponse]
