"""Standalone runner for the ledger consistency sweep.

Compares every child's cached points_balance with the sum of its ledger and
audits the balance_after running totals. Drift is logged at ERROR. With
--repair the cached balance is rewritten from the ledger.

Usage: python -m routinely.workers.reconcile_runner [--repair] [--child CHILD_ID]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid

from routinely.config import get_settings
from routinely.database import close_db, get_session_factory, init_db
from routinely.points.balance_service import ReconcileReport, reconcile_all, reconcile_balance

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="reconcile_runner", description=__doc__.splitlines()[0])
    parser.add_argument("--repair", action="store_true", help="rewrite drifted cached balances")
    parser.add_argument("--child", type=uuid.UUID, default=None, help="only reconcile this child")
    return parser.parse_args(argv)


def summarize(reports: list[ReconcileReport]) -> int:
    """Log a summary and return the number of inconsistent children."""
    inconsistent = [r for r in reports if not r.consistent]
    repaired = sum(1 for r in reports if r.repaired)
    logger.info(
        "Reconciled %d children: %d inconsistent, %d repaired",
        len(reports), len(inconsistent), repaired,
    )
    return len(inconsistent)


async def run(repair: bool = False, child_id: uuid.UUID | None = None) -> list[ReconcileReport]:
    async with get_session_factory()() as db:
        if child_id is not None:
            return [await reconcile_balance(db, child_id, repair=repair)]
        return await reconcile_all(db, repair=repair)


async def main(argv: list[str] | None = None) -> int:
    """Run one sweep. Exit status is 1 when any unrepaired inconsistency remains."""
    args = parse_args(argv)
    settings = get_settings()
    await init_db(settings.database_url)

    logger.info("Starting ledger reconciliation (repair=%s)", args.repair)
    try:
        reports = await run(repair=args.repair, child_id=args.child)
    finally:
        await close_db()

    summarize(reports)
    unresolved = [r for r in reports if not r.consistent and not (r.repaired and not r.broken_sequences)]
    return 1 if unresolved else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
