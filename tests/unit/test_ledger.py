"""Tests for the points ledger, manual adjustments and balance reconciliation."""

from __future__ import annotations

import asyncio
import uuid
from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select, update

from routinely.database import atomic, get_session_factory
from routinely.db.models import Child, HabitRecord, PointsTransaction
from routinely.errors import ConstraintViolation, Forbidden, InsufficientPoints, NotFound, ValidationError
from routinely.points.balance_service import (
    audit_running_totals,
    current_balance,
    reconcile_all,
    reconcile_balance,
    recompute_balance,
)
from routinely.points.events import POINTS_CHANNEL, publish_points_update
from routinely.points.ledger_service import adjust_points, record_transaction


async def _ledger(db, child_id):
    result = await db.execute(
        select(PointsTransaction)
        .where(PointsTransaction.child_id == child_id)
        .order_by(PointsTransaction.sequence)
    )
    return result.scalars().all()


class TestRecordTransaction:

    @pytest.mark.asyncio
    async def test_appends_entry_and_moves_balance(self, db_session, family):
        _, child = family
        entry = await record_transaction(db_session, child.id, "BEHAVIOR", None, 15, "Helped out")
        await db_session.commit()

        assert entry.sequence == 1
        assert entry.balance_after == 15
        assert await current_balance(db_session, child.id) == 15

    @pytest.mark.asyncio
    async def test_running_total_across_entries(self, db_session, family):
        _, child = family
        for points in (10, -4, 7):
            await record_transaction(db_session, child.id, "ADJUSTMENT", None, points, None)
        await db_session.commit()

        entries = await _ledger(db_session, child.id)
        assert [e.sequence for e in entries] == [1, 2, 3]
        assert [e.balance_after for e in entries] == [10, 6, 13]

    @pytest.mark.asyncio
    async def test_unknown_child(self, db_session, database):
        with pytest.raises(NotFound):
            await record_transaction(db_session, uuid.uuid4(), "ADJUSTMENT", None, 5, None)

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, db_session, family):
        _, child = family
        with pytest.raises(ValidationError):
            await record_transaction(db_session, child.id, "BONUS", None, 5, None)

    @pytest.mark.asyncio
    async def test_negative_blocked_when_disallowed(self, db_session, family):
        _, child = family
        with pytest.raises(InsufficientPoints):
            await record_transaction(db_session, child.id, "ADJUSTMENT", None, -1, None, allow_negative=False)

    @pytest.mark.asyncio
    async def test_concurrent_writers_serialize(self, seed, family):
        """Ten concurrent +1 entries produce a gapless running total."""
        _, child = family

        async def add_one():
            async with get_session_factory()() as db:
                await record_transaction(db, child.id, "BEHAVIOR", None, 1, None)
                await db.commit()

        await asyncio.gather(*(add_one() for _ in range(10)))

        async with get_session_factory()() as db:
            entries = await _ledger(db, child.id)
            assert [e.balance_after for e in entries] == list(range(1, 11))
            assert await current_balance(db, child.id) == 10
            assert await recompute_balance(db, child.id) == 10


class TestAtomic:

    @pytest.mark.asyncio
    async def test_duplicate_habit_record_rolls_back_ledger(self, db_session, seed, family):
        """A unique violation mid-write leaves neither the entry nor the balance move."""
        _, child = family
        habit = await seed.habit(child)
        db_session.add(HabitRecord(habit_id=habit.id, date=date(2024, 1, 1)))
        await db_session.commit()
        child_id, habit_id = child.id, habit.id

        with pytest.raises(ConstraintViolation) as exc:
            async with atomic(db_session):
                await record_transaction(db_session, child_id, "HABIT", habit_id, 10, None)
                db_session.add(HabitRecord(habit_id=habit_id, date=date(2024, 1, 1)))
                await db_session.flush()

        assert exc.value.status_code == 409
        assert await current_balance(db_session, child_id) == 0
        assert await _ledger(db_session, child_id) == []

    @pytest.mark.asyncio
    async def test_commits_on_success(self, db_session, family):
        _, child = family
        child_id = child.id

        async with atomic(db_session):
            await record_transaction(db_session, child_id, "BEHAVIOR", None, 3, None)

        assert await current_balance(db_session, child_id) == 3


class TestAdjustPoints:

    @pytest.mark.asyncio
    async def test_adjustment(self, db_session, family):
        parent, child = family
        result = await adjust_points(db_session, parent, child.id, 25, "Good week")

        assert result.new_balance == 25
        assert result.transaction.transaction_type == "ADJUSTMENT"
        assert result.transaction.description == "Good week"

    @pytest.mark.asyncio
    async def test_default_description(self, db_session, family):
        parent, child = family
        result = await adjust_points(db_session, parent, child.id, 5)
        assert result.transaction.description == "Manual points adjustment"

    @pytest.mark.asyncio
    async def test_negative_balance_allowed_by_default(self, db_session, family):
        parent, child = family
        result = await adjust_points(db_session, parent, child.id, -30)
        assert result.new_balance == -30

    @pytest.mark.asyncio
    async def test_negative_balance_can_be_disabled(self, db_session, family, monkeypatch):
        monkeypatch.setenv("ROUTINELY_ALLOW_NEGATIVE_BALANCE", "false")
        parent, child = family
        child_id = child.id
        with pytest.raises(InsufficientPoints):
            await adjust_points(db_session, parent, child_id, -30)
        assert await recompute_balance(db_session, child_id) == 0
        assert await current_balance(db_session, child_id) == 0

    @pytest.mark.asyncio
    async def test_out_of_range(self, db_session, family):
        parent, child = family
        with pytest.raises(ValidationError):
            await adjust_points(db_session, parent, child.id, 101)
        with pytest.raises(ValidationError):
            await adjust_points(db_session, parent, child.id, -101)

    @pytest.mark.asyncio
    async def test_other_parent_forbidden(self, db_session, seed, family):
        _, child = family
        stranger = await seed.user()
        child_id = child.id
        with pytest.raises(Forbidden):
            await adjust_points(db_session, stranger, child_id, 5)
        assert await _ledger(db_session, child_id) == []

    @pytest.mark.asyncio
    async def test_professional_cannot_adjust(self, db_session, seed, family):
        _, child = family
        pro = await seed.user(role="professional")
        await seed.grant(child, pro)
        with pytest.raises(Forbidden):
            await adjust_points(db_session, pro, child.id, 5)

    @pytest.mark.asyncio
    async def test_publishes_after_commit(self, db_session, family):
        parent, child = family
        redis = AsyncMock()
        await adjust_points(db_session, parent, child.id, 3, redis=redis)
        redis.publish.assert_awaited_once()
        assert redis.publish.await_args.args[0] == POINTS_CHANNEL


class TestPublish:

    @pytest.mark.asyncio
    async def test_no_redis_is_noop(self):
        await publish_points_update(None, PointsTransaction())

    @pytest.mark.asyncio
    async def test_publish_failure_swallowed(self, db_session, family):
        _, child = family
        entry = await record_transaction(db_session, child.id, "ADJUSTMENT", None, 1, None)
        redis = AsyncMock()
        redis.publish.side_effect = ConnectionError("down")
        await publish_points_update(redis, entry)


class TestReconcile:

    @pytest.mark.asyncio
    async def test_consistent_ledger(self, db_session, seed):
        parent = await seed.user()
        child = await seed.child(parent, points=40)

        report = await reconcile_balance(db_session, child.id)
        assert report.consistent
        assert report.cached_balance == report.ledger_balance == 40
        assert report.transaction_count == 1

    @pytest.mark.asyncio
    async def test_drift_detected_without_repair(self, db_session, seed):
        parent = await seed.user()
        child = await seed.child(parent, points=40)
        await db_session.execute(update(Child).where(Child.id == child.id).values(points_balance=55))
        await db_session.commit()

        report = await reconcile_balance(db_session, child.id)
        assert report.drift == -15
        assert not report.consistent
        assert not report.repaired
        assert await current_balance(db_session, child.id) == 55

    @pytest.mark.asyncio
    async def test_repair_rewrites_cache(self, db_session, seed):
        parent = await seed.user()
        child = await seed.child(parent, points=40)
        await db_session.execute(update(Child).where(Child.id == child.id).values(points_balance=0))
        await db_session.commit()

        report = await reconcile_balance(db_session, child.id, repair=True)
        assert report.repaired
        assert await current_balance(db_session, child.id) == 40
        assert (await reconcile_balance(db_session, child.id)).consistent

    @pytest.mark.asyncio
    async def test_reconcile_all(self, db_session, seed):
        parent = await seed.user()
        a = await seed.child(parent, points=10, name="A")
        b = await seed.child(parent, points=20, name="B")
        await db_session.execute(update(Child).where(Child.id == b.id).values(points_balance=0))
        await db_session.commit()

        reports = {r.child_id: r for r in await reconcile_all(db_session, repair=True)}
        assert reports[a.id].consistent
        assert reports[b.id].repaired
        assert await current_balance(db_session, b.id) == 20

    @pytest.mark.asyncio
    async def test_unknown_child(self, db_session, database):
        with pytest.raises(NotFound):
            await reconcile_balance(db_session, uuid.uuid4())


class TestAuditRunningTotals:

    def _entry(self, seq, points, after):
        return PointsTransaction(sequence=seq, points=points, balance_after=after)

    def test_clean_chain(self):
        entries = [self._entry(1, 5, 5), self._entry(2, -2, 3)]
        assert audit_running_totals(entries) == (3, 2, [])

    def test_wrong_balance_after(self):
        entries = [self._entry(1, 5, 5), self._entry(2, -2, 4)]
        assert audit_running_totals(entries)[2] == [2]

    def test_sequence_gap(self):
        entries = [self._entry(1, 5, 5), self._entry(3, 1, 6)]
        assert audit_running_totals(entries)[2] == [3]
