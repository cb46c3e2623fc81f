"""Balance projection and ledger reconciliation.

The cached children.points_balance serves O(1) reads. recompute_balance()
folds the ledger instead, and reconcile_balance() compares the two under the
child row lock, where any difference is an integrity error rather than an
in-flight write.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.database import atomic
from routinely.db.models import Child, PointsTransaction
from routinely.errors import NotFound
from routinely.points.ledger_service import lock_child

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    child_id: uuid.UUID
    cached_balance: int
    ledger_balance: int
    transaction_count: int
    broken_sequences: list[int] = field(default_factory=list)
    repaired: bool = False

    @property
    def drift(self) -> int:
        return self.ledger_balance - self.cached_balance

    @property
    def consistent(self) -> bool:
        return self.drift == 0 and not self.broken_sequences


def audit_running_totals(entries: Iterable[PointsTransaction]) -> tuple[int, int, list[int]]:
    """Fold entries in sequence order.

    Returns (sum, count, broken) where broken lists the sequences whose
    balance_after does not equal the running sum, or that skip a position.
    """
    running = 0
    count = 0
    broken: list[int] = []
    for expected_seq, entry in enumerate(entries, start=1):
        running += entry.points
        count += 1
        if entry.sequence != expected_seq or entry.balance_after != running:
            broken.append(entry.sequence)
    return running, count, broken


async def current_balance(db: AsyncSession, child_id: uuid.UUID) -> int:
    """Cached balance. O(1)."""
    result = await db.execute(select(Child.points_balance).where(Child.id == child_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise NotFound("Child not found")
    return balance


async def recompute_balance(db: AsyncSession, child_id: uuid.UUID) -> int:
    """Sum of every ledger entry for the child."""
    result = await db.execute(
        select(func.coalesce(func.sum(PointsTransaction.points), 0)).where(
            PointsTransaction.child_id == child_id
        )
    )
    return int(result.scalar_one())


async def _ledger_entries(db: AsyncSession, child_id: uuid.UUID) -> list[PointsTransaction]:
    result = await db.execute(
        select(PointsTransaction)
        .where(PointsTransaction.child_id == child_id)
        .order_by(PointsTransaction.sequence.asc())
    )
    return list(result.scalars().all())


async def reconcile_balance(
    db: AsyncSession,
    child_id: uuid.UUID,
    *,
    repair: bool = False,
) -> ReconcileReport:
    """Compare the cached balance against the ledger, optionally repairing the cache.

    Repair only rewrites the cache. Broken running totals are reported, never
    rewritten: ledger rows are immutable.
    """
    async with atomic(db):
        child = await lock_child(db, child_id)
        ledger_balance, count, broken = audit_running_totals(await _ledger_entries(db, child_id))
        report = ReconcileReport(
            child_id=child_id,
            cached_balance=child.points_balance,
            ledger_balance=ledger_balance,
            transaction_count=count,
            broken_sequences=broken,
        )

        if report.drift:
            logger.error(
                "Ledger drift child=%s cached=%d ledger=%d drift=%+d",
                child_id, report.cached_balance, report.ledger_balance, report.drift,
            )
            if repair:
                child.points_balance = ledger_balance
                report.repaired = True
        if broken:
            logger.error("Broken running totals child=%s sequences=%s", child_id, broken)

    return report


async def reconcile_all(db: AsyncSession, *, repair: bool = False) -> list[ReconcileReport]:
    """Reconcile every child, one lock at a time."""
    result = await db.execute(select(Child.id).order_by(Child.created_at))
    child_ids = list(result.scalars().all())
    await db.rollback()

    reports = []
    for child_id in child_ids:
        reports.append(await reconcile_balance(db, child_id, repair=repair))
    return reports
