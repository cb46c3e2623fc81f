"""ORM models for the routines, habits and points ledger schema.

Column types are dialect-neutral so the same models drive PostgreSQL in
production and SQLite in tests. Uniqueness constraints on habit_records,
reward_claims and points_transactions are load-bearing: they turn lost races
into rejected inserts.
"""

from __future__ import annotations

import datetime as dt
import uuid
from datetime import datetime, time, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from routinely.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


TRANSACTION_TYPES = ("BEHAVIOR", "HABIT", "ROUTINE", "REWARD_REDEMPTION", "ADJUSTMENT")

ALL_WEEKDAYS = [0, 1, 2, 3, 4, 5, 6]


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class User(Base):
    """A parent or professional account. Identity comes from the bearer token."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="parent")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    children: Mapped[list[Child]] = relationship("Child", back_populates="parent")


class Child(Base):
    """A child profile. points_balance is a cache of the ledger sum, written only by the ledger."""

    __tablename__ = "children"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    parent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    birth_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    adhd_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    points_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    parent: Mapped[User] = relationship("User", back_populates="children")


class ProfessionalAccess(Base):
    """Read-only reporting grant from a parent to a clinician for one child."""

    __tablename__ = "professional_patient_access"
    __table_args__ = (
        UniqueConstraint("child_id", "professional_email", name="uq_professional_access_child_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True
    )
    professional_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    professional_email: Mapped[str] = mapped_column(String(320), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=lambda: ["view_progress"])
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Points ledger
# ---------------------------------------------------------------------------


class PointsTransaction(Base):
    """Append-only ledger row. sequence is the 1-based position in the child's ledger."""

    __tablename__ = "points_transactions"
    __table_args__ = (
        UniqueConstraint("child_id", "sequence", name="uq_points_transactions_child_sequence"),
        CheckConstraint(
            "transaction_type IN ('BEHAVIOR', 'HABIT', 'ROUTINE', 'REWARD_REDEMPTION', 'ADJUSTMENT')",
            name="ck_points_transactions_type",
        ),
        Index("idx_points_transactions_child_created", "child_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("children.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    related_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Habits and routines
# ---------------------------------------------------------------------------


class Habit(Base):
    __tablename__ = "habits"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(16), nullable=True)
    target_frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit: Mapped[str] = mapped_column(String(32), nullable=False, default="times")
    points_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Routine(Base):
    """A time-of-day bundle of habits scheduled on a set of weekdays (0=Mon..6=Sun)."""

    __tablename__ = "routines"
    __table_args__ = (
        CheckConstraint(
            "completion_threshold BETWEEN 1 AND 100", name="ck_routines_completion_threshold"
        ),
        CheckConstraint("bonus_points >= 0", name="ck_routines_bonus_points"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    scheduled_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    days: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=lambda: list(ALL_WEEKDAYS))
    completion_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    bonus_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    routine_habits: Mapped[list[RoutineHabit]] = relationship("RoutineHabit", back_populates="routine")


class RoutineHabit(Base):
    """A habit placed into a routine with a routine-specific point value."""

    __tablename__ = "routine_habits"
    __table_args__ = (
        UniqueConstraint("routine_id", "habit_id", name="uq_routine_habits_routine_habit"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    routine_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("routines.id", ondelete="CASCADE"), nullable=False, index=True
    )
    habit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False, index=True
    )
    points_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    routine: Mapped[Routine] = relationship("Routine", back_populates="routine_habits")
    habit: Mapped[Habit] = relationship("Habit")


class HabitRecord(Base):
    """Completion of a habit on a date. Presence means completed."""

    __tablename__ = "habit_records"
    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="uq_habit_records_habit_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    habit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class RoutineCompletion(Base):
    """Per-day cache of a routine's completion. Always re-derivable from habit_records."""

    __tablename__ = "routine_completions"
    __table_args__ = (
        UniqueConstraint(
            "routine_id", "child_id", "completion_date", name="uq_routine_completions_routine_child_date"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    routine_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("routines.id", ondelete="CASCADE"), nullable=False
    )
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True
    )
    completion_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_habits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_habits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Behaviors
# ---------------------------------------------------------------------------


class Behavior(Base):
    __tablename__ = "behaviors"
    __table_args__ = (
        CheckConstraint("type IN ('POSITIVE', 'NEGATIVE')", name="ck_behaviors_type"),
        CheckConstraint("points > 0", name="ck_behaviors_points"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class BehaviorRecord(Base):
    __tablename__ = "behavior_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    behavior_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("behaviors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    points_applied: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


class Reward(Base):
    __tablename__ = "rewards"
    __table_args__ = (
        CheckConstraint("points_required > 0", name="ck_rewards_points_required"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    points_required: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class RewardClaim(Base):
    """A reward is claimed at most once: reward_id is unique."""

    __tablename__ = "reward_claims"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reward_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("rewards.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("children.id", ondelete="CASCADE"), nullable=False, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    reward: Mapped[Reward] = relationship("Reward")


