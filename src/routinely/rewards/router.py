"""Reward and reward-claim API endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.dependencies import get_current_user
from routinely.database import get_session
from routinely.db.models import User
from routinely.dependencies import get_redis_dep
from routinely.rewards.redemption_service import (
    claim_reward,
    get_achievable_rewards,
    list_claims,
    list_rewards,
)
from routinely.rewards.schemas import (
    ClaimedRewardRef,
    ClaimListResponse,
    ClaimResponse,
    ClaimRewardRequest,
    ClaimRewardResponse,
    RewardListResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Rewards"])


@router.get("/rewards", response_model=RewardListResponse)
async def rewards(
    child_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Active rewards for a child, cheapest first."""
    return await list_rewards(db, user, child_id)


@router.get("/rewards/achievable", response_model=RewardListResponse)
async def achievable_rewards(
    child_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Unclaimed rewards with how many points are still missing."""
    return await get_achievable_rewards(db, user, child_id)


@router.post("/reward-claims", response_model=ClaimRewardResponse, status_code=201)
async def create_claim(
    body: ClaimRewardRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Claim a reward: 400 insufficient_points, 409 already_claimed."""
    result = await claim_reward(
        db, user, body.reward_id, child_id=body.child_id, notes=body.notes, redis=redis
    )
    return ClaimRewardResponse(
        claim=ClaimResponse(
            id=result.claim.id,
            reward_id=result.claim.reward_id,
            claimed_at=result.claim.claimed_at,
            notes=result.claim.notes,
            reward=ClaimedRewardRef(
                id=result.reward.id,
                title=result.reward.title,
                description=result.reward.description,
                points_required=result.reward.points_required,
                is_active=result.reward.is_active,
            ),
        ),
        new_balance=result.new_balance,
    )


@router.get("/reward-claims", response_model=ClaimListResponse)
async def claims(
    child_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Claims for a child's rewards, newest first."""
    return await list_claims(db, user, child_id)
