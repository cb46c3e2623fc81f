"""Broadcast committed ledger changes over Redis pub/sub."""

from __future__ import annotations

import json
import logging

from routinely.db.models import PointsTransaction

logger = logging.getLogger(__name__)

POINTS_CHANNEL = "pubsub:points_update"


async def publish_points_update(redis: object, entry: PointsTransaction) -> None:
    """Publish one committed ledger entry. Never fails the caller."""
    if redis is None:
        return
    try:
        await redis.publish(  # type: ignore[attr-defined]
            POINTS_CHANNEL,
            json.dumps({
                "child_id": str(entry.child_id),
                "transaction_id": str(entry.id),
                "transaction_type": entry.transaction_type,
                "points": entry.points,
                "balance": entry.balance_after,
            }),
        )
    except Exception:
        logger.warning("Failed to publish points_update", exc_info=True)
