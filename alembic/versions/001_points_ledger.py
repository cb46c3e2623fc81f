"""Baseline: accounts, habits, routines, behaviors, rewards and the points ledger.

Unique constraints on habit_records(habit_id, date), reward_claims(reward_id)
and points_transactions(child_id, sequence) reject the loser of a race.

Revision ID: 001_points_ledger
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_points_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Accounts ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY,
            email VARCHAR(320) UNIQUE NOT NULL,
            display_name VARCHAR(128),
            role VARCHAR(16) NOT NULL DEFAULT 'parent',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS children (
            id UUID PRIMARY KEY,
            parent_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name VARCHAR(100) NOT NULL,
            birth_date DATE,
            adhd_type VARCHAR(16),
            points_balance INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_children_parent_id ON children(parent_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS professional_patient_access (
            id UUID PRIMARY KEY,
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            professional_id UUID REFERENCES users(id) ON DELETE SET NULL,
            professional_email VARCHAR(320) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            permissions JSONB NOT NULL DEFAULT '["view_progress"]',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_professional_access_child_email UNIQUE (child_id, professional_email)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_professional_patient_access_child_id
        ON professional_patient_access(child_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_professional_patient_access_professional_id
        ON professional_patient_access(professional_id)
    """)

    # --- Points ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS points_transactions (
            id UUID PRIMARY KEY,
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            sequence INTEGER NOT NULL,
            transaction_type VARCHAR(32) NOT NULL,
            related_id UUID,
            points INTEGER NOT NULL,
            description VARCHAR(255),
            balance_after INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_points_transactions_child_sequence UNIQUE (child_id, sequence),
            CONSTRAINT ck_points_transactions_type CHECK (
                transaction_type IN ('BEHAVIOR', 'HABIT', 'ROUTINE', 'REWARD_REDEMPTION', 'ADJUSTMENT')
            )
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_points_transactions_child_created
        ON points_transactions(child_id, created_at)
    """)

    # --- Habits and routines ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS habits (
            id UUID PRIMARY KEY,
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            title VARCHAR(100) NOT NULL,
            description TEXT,
            category VARCHAR(16),
            target_frequency INTEGER NOT NULL DEFAULT 1,
            unit VARCHAR(32) NOT NULL DEFAULT 'times',
            points_value INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_habits_child_id ON habits(child_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS routines (
            id UUID PRIMARY KEY,
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            title VARCHAR(100) NOT NULL,
            scheduled_time TIME,
            days JSONB NOT NULL DEFAULT '[0, 1, 2, 3, 4, 5, 6]',
            completion_threshold INTEGER NOT NULL DEFAULT 100,
            bonus_points INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_routines_completion_threshold CHECK (completion_threshold BETWEEN 1 AND 100),
            CONSTRAINT ck_routines_bonus_points CHECK (bonus_points >= 0)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_routines_child_id ON routines(child_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS routine_habits (
            id UUID PRIMARY KEY,
            routine_id UUID NOT NULL REFERENCES routines(id) ON DELETE CASCADE,
            habit_id UUID NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            points_value INTEGER NOT NULL DEFAULT 0,
            is_required BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_routine_habits_routine_habit UNIQUE (routine_id, habit_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_routine_habits_routine_id ON routine_habits(routine_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_routine_habits_habit_id ON routine_habits(habit_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS habit_records (
            id UUID PRIMARY KEY,
            habit_id UUID NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            date DATE NOT NULL,
            value INTEGER NOT NULL DEFAULT 1,
            notes TEXT,
            points_awarded INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_habit_records_habit_date UNIQUE (habit_id, date)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_habit_records_date ON habit_records(date)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS routine_completions (
            id UUID PRIMARY KEY,
            routine_id UUID NOT NULL REFERENCES routines(id) ON DELETE CASCADE,
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            completion_date DATE NOT NULL,
            completion_percentage INTEGER NOT NULL DEFAULT 0,
            completed_habits INTEGER NOT NULL DEFAULT 0,
            total_habits INTEGER NOT NULL DEFAULT 0,
            points_earned INTEGER NOT NULL DEFAULT 0,
            bonus_points_awarded INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_routine_completions_routine_child_date UNIQUE (routine_id, child_id, completion_date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_routine_completions_child_id
        ON routine_completions(child_id)
    """)

    # --- Behaviors ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS behaviors (
            id UUID PRIMARY KEY,
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            title VARCHAR(100) NOT NULL,
            description TEXT,
            type VARCHAR(16) NOT NULL,
            points INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_behaviors_type CHECK (type IN ('POSITIVE', 'NEGATIVE')),
            CONSTRAINT ck_behaviors_points CHECK (points > 0)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_behaviors_child_id ON behaviors(child_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS behavior_records (
            id UUID PRIMARY KEY,
            behavior_id UUID NOT NULL REFERENCES behaviors(id) ON DELETE CASCADE,
            date DATE NOT NULL,
            notes TEXT,
            points_applied INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_behavior_records_behavior_id ON behavior_records(behavior_id)")

    # --- Rewards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS rewards (
            id UUID PRIMARY KEY,
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            title VARCHAR(100) NOT NULL,
            description VARCHAR(255),
            points_required INTEGER NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_rewards_points_required CHECK (points_required > 0)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_rewards_child_id ON rewards(child_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS reward_claims (
            id UUID PRIMARY KEY,
            reward_id UUID UNIQUE NOT NULL REFERENCES rewards(id) ON DELETE CASCADE,
            child_id UUID NOT NULL REFERENCES children(id) ON DELETE CASCADE,
            notes TEXT,
            claimed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_reward_claims_child_id ON reward_claims(child_id)")

    # Ledger rows are append-only
    op.execute("""
        CREATE OR REPLACE FUNCTION points_transactions_immutable() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'points_transactions rows are append-only';
        END;
        $$ LANGUAGE plpgsql
    """)
    # Rows only leave through the ON DELETE CASCADE from children.
    op.execute("""
        CREATE TRIGGER trg_points_transactions_immutable
        BEFORE UPDATE ON points_transactions
        FOR EACH ROW EXECUTE FUNCTION points_transactions_immutable()
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_points_transactions_immutable ON points_transactions")
    op.execute("DROP FUNCTION IF EXISTS points_transactions_immutable()")
    op.execute("DROP TABLE IF EXISTS reward_claims CASCADE")
    op.execute("DROP TABLE IF EXISTS rewards CASCADE")
    op.execute("DROP TABLE IF EXISTS behavior_records CASCADE")
    op.execute("DROP TABLE IF EXISTS behaviors CASCADE")
    op.execute("DROP TABLE IF EXISTS routine_completions CASCADE")
    op.execute("DROP TABLE IF EXISTS habit_records CASCADE")
    op.execute("DROP TABLE IF EXISTS routine_habits CASCADE")
    op.execute("DROP TABLE IF EXISTS routines CASCADE")
    op.execute("DROP TABLE IF EXISTS habits CASCADE")
    op.execute("DROP TABLE IF EXISTS points_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS professional_patient_access CASCADE")
    op.execute("DROP TABLE IF EXISTS children CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
