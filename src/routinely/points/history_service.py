"""Read-only views over the ledger: paginated history and period statistics."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.access import require_reader
from routinely.config import get_settings
from routinely.dates import PERIODS, period_start, previous_period_start, utc_date
from routinely.db.models import PointsTransaction, User
from routinely.errors import ValidationError
from routinely.rewards.redemption_service import next_achievable_rewards

RELATED_TYPE_LABELS = {
    "BEHAVIOR": "Behavior",
    "HABIT": "Habit",
    "ROUTINE": "Routine",
    "REWARD_REDEMPTION": "Reward",
    "ADJUSTMENT": "Adjustment",
}


def serialize_transaction(entry: PointsTransaction) -> dict[str, Any]:
    return {
        "id": entry.id,
        "sequence": entry.sequence,
        "transaction_type": entry.transaction_type,
        "related_id": entry.related_id,
        "related_type": RELATED_TYPE_LABELS.get(entry.transaction_type, "Transaction"),
        "points": entry.points,
        "description": entry.description,
        "balance_after": entry.balance_after,
        "created_at": entry.created_at,
    }


async def general_stats(db: AsyncSession, child_id: uuid.UUID) -> dict[str, int]:
    """Lifetime totals for the child, aggregated in SQL over the whole ledger."""
    pt = PointsTransaction

    def count_type(transaction_type: str, *extra):
        return func.coalesce(
            func.sum(case((and_(pt.transaction_type == transaction_type, *extra), 1), else_=0)), 0
        )

    result = await db.execute(
        select(
            func.coalesce(func.sum(case((pt.points > 0, pt.points), else_=0)), 0),
            func.coalesce(func.sum(case((pt.points < 0, -pt.points), else_=0)), 0),
            func.count(pt.id),
            count_type("HABIT", pt.points > 0),
            count_type("BEHAVIOR"),
            count_type("REWARD_REDEMPTION"),
        ).where(pt.child_id == child_id)
    )
    earned, spent, count, habits, behaviors, rewards = result.one()
    return {
        "total_earned": int(earned),
        "total_spent": int(spent),
        "transactions_count": int(count),
        "habits_completed": int(habits),
        "behaviors_recorded": int(behaviors),
        "rewards_claimed": int(rewards),
    }


async def get_points_history(
    db: AsyncSession,
    user: User,
    child_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """Balance, lifetime stats, and one page of the ledger, newest first."""
    max_limit = get_settings().history_max_limit
    if not 1 <= limit <= max_limit:
        msg = f"limit must be between 1 and {max_limit}"
        raise ValidationError(msg)
    if offset < 0:
        raise ValidationError("offset must not be negative")

    child = await require_reader(db, user, child_id)

    stats = await general_stats(db, child_id)
    stats["current_balance"] = child.points_balance

    result = await db.execute(
        select(PointsTransaction)
        .where(PointsTransaction.child_id == child_id)
        .order_by(PointsTransaction.sequence.desc())
        .offset(offset)
        .limit(limit)
    )
    entries = result.scalars().all()
    total = stats["transactions_count"]

    return {
        "child": {"id": child.id, "name": child.name},
        "balance": child.points_balance,
        "stats": stats,
        "transactions": [serialize_transaction(e) for e in entries],
        "pagination": {
            "limit": limit,
            "offset": offset,
            "total": total,
            "has_more": offset + len(entries) < total,
        },
    }


def summarize_period(entries: Iterable[PointsTransaction]) -> dict[str, Any]:
    """Totals, per-type breakdown and per-day breakdown for a window of entries."""
    earned = 0
    spent = 0
    count = 0
    by_type: dict[str, dict[str, int]] = {}
    daily: dict[str, dict[str, int]] = {}

    for entry in entries:
        count += 1
        bucket = by_type.setdefault(entry.transaction_type, {"count": 0, "points": 0})
        bucket["count"] += 1
        bucket["points"] += entry.points

        day = daily.setdefault(utc_date(entry.created_at).isoformat(), {"earned": 0, "spent": 0})
        if entry.points > 0:
            earned += entry.points
            day["earned"] += entry.points
        else:
            spent += -entry.points
            day["spent"] += -entry.points

    return {
        "total_earned": earned,
        "total_spent": spent,
        "net_gain": earned - spent,
        "transactions_count": count,
        "by_type": by_type,
        "daily_breakdown": [
            {"date": d, "earned": v["earned"], "spent": v["spent"], "net": v["earned"] - v["spent"]}
            for d, v in sorted(daily.items())
        ],
    }


def compute_trends(current: dict[str, Any], previous_points: list[int]) -> dict[str, float] | None:
    """Change against the previous window. None when that window is empty."""
    if not previous_points:
        return None

    prev_earned = sum(p for p in previous_points if p > 0)
    prev_spent = -sum(p for p in previous_points if p < 0)

    def pct(now: int, before: int) -> float:
        return (now - before) / before * 100 if before > 0 else 0.0

    return {
        "earned_change": current["total_earned"] - prev_earned,
        "spent_change": current["total_spent"] - prev_spent,
        "earned_percentage": round(pct(current["total_earned"], prev_earned), 2),
        "spent_percentage": round(pct(current["total_spent"], prev_spent), 2),
    }


async def get_points_stats(
    db: AsyncSession,
    user: User,
    child_id: uuid.UUID,
    period: str = "month",
    now: datetime | None = None,
) -> dict[str, Any]:
    if period not in PERIODS:
        msg = f"period must be one of {', '.join(PERIODS)}"
        raise ValidationError(msg)
    if now is None:
        now = datetime.now(timezone.utc)

    child = await require_reader(db, user, child_id)

    start = period_start(now, period)
    prev_start = previous_period_start(start, period)

    window = await db.execute(
        select(PointsTransaction)
        .where(
            PointsTransaction.child_id == child_id,
            PointsTransaction.created_at >= start,
            PointsTransaction.created_at <= now,
        )
        .order_by(PointsTransaction.sequence.asc())
    )
    period_stats = summarize_period(window.scalars().all())

    previous = await db.execute(
        select(PointsTransaction.points).where(
            PointsTransaction.child_id == child_id,
            PointsTransaction.created_at >= prev_start,
            PointsTransaction.created_at < start,
        )
    )

    general = await general_stats(db, child_id)
    general["current_balance"] = child.points_balance

    return {
        "child": {"id": child.id, "name": child.name},
        "period": period,
        "date_range": {"start": start, "end": now},
        "general": general,
        "period_stats": period_stats,
        "trends": compute_trends(period_stats, list(previous.scalars().all())),
        "available_rewards": await next_achievable_rewards(db, child),
    }
