"""Tests for the ledger reconciliation runner."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import update

from routinely.db.models import Child
from routinely.points.balance_service import ReconcileReport, current_balance
from routinely.workers.reconcile_runner import parse_args, run, summarize


def _report(**overrides):
    values = {
        "child_id": uuid.uuid4(),
        "cached_balance": 10,
        "ledger_balance": 10,
        "transaction_count": 1,
        "broken_sequences": [],
        "repaired": False,
    }
    values.update(overrides)
    return ReconcileReport(**values)


class TestParseArgs:

    def test_defaults(self):
        args = parse_args([])
        assert not args.repair
        assert args.child is None

    def test_child_and_repair(self):
        child_id = uuid.uuid4()
        args = parse_args(["--repair", "--child", str(child_id)])
        assert args.repair
        assert args.child == child_id


class TestSummarize:

    def test_counts_inconsistent(self):
        reports = [_report(), _report(cached_balance=3), _report(broken_sequences=[2])]
        assert summarize(reports) == 2

    def test_all_clean(self):
        assert summarize([_report(), _report()]) == 0


class TestRun:

    @pytest.mark.asyncio
    async def test_sweep_repairs(self, db_session, seed):
        parent = await seed.user()
        child = await seed.child(parent, points=25)
        await db_session.execute(update(Child).where(Child.id == child.id).values(points_balance=1))
        await db_session.commit()

        reports = await run(repair=True)

        assert len(reports) == 1
        assert reports[0].repaired
        assert await current_balance(db_session, child.id) == 25

    @pytest.mark.asyncio
    async def test_single_child(self, db_session, seed):
        parent = await seed.user()
        child = await seed.child(parent, points=5)
        await seed.child(parent, points=7, name="Sam")

        reports = await run(child_id=child.id)
        assert [r.child_id for r in reports] == [child.id]
        assert reports[0].consistent
