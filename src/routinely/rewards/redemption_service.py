"""Reward redemption: check funds, check exclusivity, insert the claim, deduct.

All four steps run in one unit of work under the child row lock. Checks
happen after the lock is taken, so two claims racing for the same reward see
each other's commit, and two claims for different rewards of the same child
see each other's deduction. The unique constraint on reward_claims.reward_id
backs the exclusivity check.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.access import require_parent, require_reader
from routinely.database import atomic
from routinely.db.models import Child, PointsTransaction, Reward, RewardClaim, User
from routinely.errors import AlreadyClaimed, Forbidden, InsufficientPoints, NotFound, ValidationError
from routinely.points.events import publish_points_update
from routinely.points.ledger_service import lock_child, record_transaction

logger = logging.getLogger(__name__)

ACHIEVABLE_LIMIT = 5


@dataclass(frozen=True)
class ClaimResult:
    claim: RewardClaim
    reward: Reward
    transaction: PointsTransaction
    new_balance: int


async def _claim_exists(db: AsyncSession, reward_id: uuid.UUID) -> bool:
    result = await db.execute(select(RewardClaim.id).where(RewardClaim.reward_id == reward_id))
    return result.first() is not None


async def claim_reward(
    db: AsyncSession,
    user: User,
    reward_id: uuid.UUID,
    *,
    child_id: uuid.UUID | None = None,
    notes: str | None = None,
    redis: object = None,
) -> ClaimResult:
    """Redeem a reward once.

    Raises NotFound (unknown reward or child), Forbidden (not the parent, or
    child_id given and not the reward's owner), ValidationError (inactive
    reward), AlreadyClaimed, InsufficientPoints. Nothing is written on failure.
    """
    async with atomic(db):
        reward = await db.get(Reward, reward_id)
        if reward is None:
            raise NotFound("Reward not found")
        if child_id is not None and reward.child_id != child_id:
            raise Forbidden("Reward does not belong to this child")

        await require_parent(db, user, reward.child_id)
        if not reward.is_active:
            raise ValidationError("Reward is not active")

        child = await lock_child(db, reward.child_id)

        if await _claim_exists(db, reward.id):
            raise AlreadyClaimed
        if child.points_balance < reward.points_required:
            logger.info(
                "Claim rejected child=%s reward=%s balance=%d required=%d",
                child.id, reward.id, child.points_balance, reward.points_required,
            )
            raise InsufficientPoints

        claim = RewardClaim(reward_id=reward.id, child_id=child.id, notes=notes)
        db.add(claim)
        await db.flush()

        entry = await record_transaction(
            db,
            child.id,
            "REWARD_REDEMPTION",
            reward.id,
            -reward.points_required,
            f"Reward claimed: {reward.title}"[:255],
            allow_negative=False,
        )

    logger.info("Reward claimed child=%s reward=%s balance=%d", child.id, reward.id, entry.balance_after)
    await publish_points_update(redis, entry)
    return ClaimResult(claim=claim, reward=reward, transaction=entry, new_balance=entry.balance_after)


async def _rewards_with_claim_state(
    db: AsyncSession, child_id: uuid.UUID
) -> list[tuple[Reward, bool]]:
    result = await db.execute(
        select(Reward, RewardClaim.id.label("claim_id"))
        .outerjoin(RewardClaim, RewardClaim.reward_id == Reward.id)
        .where(Reward.child_id == child_id, Reward.is_active.is_(True))
        .order_by(Reward.points_required.asc(), Reward.created_at.asc())
    )
    return [(row.Reward, row.claim_id is not None) for row in result]


def _reward_dict(reward: Reward, claimed: bool, balance: int) -> dict[str, Any]:
    return {
        "id": reward.id,
        "title": reward.title,
        "description": reward.description,
        "points_required": reward.points_required,
        "is_active": reward.is_active,
        "has_been_claimed": claimed,
        "points_needed": max(0, reward.points_required - balance),
        "can_redeem": not claimed and balance >= reward.points_required,
    }


async def list_rewards(db: AsyncSession, user: User, child_id: uuid.UUID) -> dict[str, Any]:
    """Active rewards, cheapest first, with claim and affordability flags."""
    child = await require_reader(db, user, child_id)
    rows = await _rewards_with_claim_state(db, child_id)
    return {
        "child": {"id": child.id, "name": child.name},
        "balance": child.points_balance,
        "rewards": [_reward_dict(r, claimed, child.points_balance) for r, claimed in rows],
    }


async def next_achievable_rewards(
    db: AsyncSession, child: Child, limit: int = ACHIEVABLE_LIMIT
) -> list[dict[str, Any]]:
    """Unclaimed active rewards the child is saving towards, cheapest first."""
    rows = await _rewards_with_claim_state(db, child.id)
    return [
        _reward_dict(r, False, child.points_balance)
        for r, claimed in rows
        if not claimed
    ][:limit]


async def get_achievable_rewards(db: AsyncSession, user: User, child_id: uuid.UUID) -> dict[str, Any]:
    child = await require_reader(db, user, child_id)
    return {
        "child": {"id": child.id, "name": child.name},
        "balance": child.points_balance,
        "rewards": await next_achievable_rewards(db, child),
    }


async def list_claims(db: AsyncSession, user: User, child_id: uuid.UUID) -> dict[str, Any]:
    """Claims on the child's rewards, newest first."""
    child = await require_reader(db, user, child_id)
    result = await db.execute(
        select(RewardClaim, Reward)
        .join(Reward, RewardClaim.reward_id == Reward.id)
        .where(Reward.child_id == child_id)
        .order_by(RewardClaim.claimed_at.desc())
    )
    return {
        "child": {"id": child.id, "name": child.name},
        "claims": [
            {
                "id": row.RewardClaim.id,
                "reward_id": row.RewardClaim.reward_id,
                "claimed_at": row.RewardClaim.claimed_at,
                "notes": row.RewardClaim.notes,
                "reward": {
                    "id": row.Reward.id,
                    "title": row.Reward.title,
                    "description": row.Reward.description,
                    "points_required": row.Reward.points_required,
                    "is_active": row.Reward.is_active,
                },
            }
            for row in result
        ],
    }
