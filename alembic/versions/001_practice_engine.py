"""Practice engine schema.

Creates profiles, practice_logs, daily_practice_totals, xp_ledger,
progress_counters, medals, user_medals, the challenge tables, the weekly
league tables, invites and notifications.

Revision ID: 001_practice_engine
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_practice_engine"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Profiles (written by the auth service) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id BIGSERIAL PRIMARY KEY,
            first_name VARCHAR(64),
            last_name VARCHAR(64),
            instrument VARCHAR(64),
            level VARCHAR(16),
            tz VARCHAR(64),
            is_premium BOOLEAN NOT NULL DEFAULT false,
            subscription_expires_at TIMESTAMPTZ,
            notifications_enabled BOOLEAN NOT NULL DEFAULT true,
            invite_code VARCHAR(16) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Practice log ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS practice_logs (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            minutes INTEGER NOT NULL CHECK (minutes BETWEEN 5 AND 240),
            note TEXT,
            local_date DATE NOT NULL,
            idempotency_key VARCHAR(128) NOT NULL,
            result JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT practice_logs_user_idempotency_key UNIQUE (user_id, idempotency_key)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_practice_logs_user_date
        ON practice_logs(user_id, local_date)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_practice_totals (
            user_id BIGINT NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            local_date DATE NOT NULL,
            logs_count INTEGER NOT NULL DEFAULT 0,
            minutes INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (user_id, local_date)
        )
    """)

    # --- XP ledger + counters ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            delta INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            local_date DATE,
            linked_event_id BIGINT REFERENCES practice_logs(id) ON DELETE SET NULL,
            description VARCHAR(256),
            idempotency_key VARCHAR(256) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_ledger_user_date
        ON xp_ledger(user_id, local_date)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS progress_counters (
            user_id BIGINT PRIMARY KEY REFERENCES profiles(id) ON DELETE CASCADE,
            total_xp BIGINT NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            best_streak INTEGER NOT NULL DEFAULT 0,
            last_active_date DATE,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_progress_counters_total_xp
        ON progress_counters(total_xp DESC)
    """)

    # --- Medals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS medals (
            id SERIAL PRIMARY KEY,
            code VARCHAR(64) UNIQUE NOT NULL,
            title VARCHAR(128) NOT NULL,
            description TEXT,
            kind VARCHAR(16) NOT NULL DEFAULT 'permanent'
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_medals (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            medal_id INTEGER NOT NULL REFERENCES medals(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_medals_user_medal_key UNIQUE (user_id, medal_id)
        )
    """)

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_definitions (
            id SERIAL PRIMARY KEY,
            code VARCHAR(64) UNIQUE NOT NULL,
            title VARCHAR(128) NOT NULL,
            kind VARCHAR(16) NOT NULL DEFAULT 'periodic',
            challenge_type VARCHAR(32) NOT NULL,
            period VARCHAR(16),
            conditions JSONB NOT NULL DEFAULT '{}',
            reward JSONB NOT NULL DEFAULT '{}',
            auto_enroll BOOLEAN NOT NULL DEFAULT true,
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            sort_order INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_instances (
            id BIGSERIAL PRIMARY KEY,
            challenge_code VARCHAR(64) NOT NULL REFERENCES challenge_definitions(code) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            window_start DATE NOT NULL,
            window_end DATE,
            status VARCHAR(16) NOT NULL DEFAULT 'open',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT challenge_instances_code_user_window_key UNIQUE (challenge_code, user_id, window_start)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_challenge_instances_user_status
        ON challenge_instances(user_id, status)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_challenge_progress (
            id BIGSERIAL PRIMARY KEY,
            instance_id BIGINT UNIQUE NOT NULL REFERENCES challenge_instances(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            progress JSONB NOT NULL DEFAULT '{}',
            is_completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            is_claimable BOOLEAN NOT NULL DEFAULT false,
            claimed_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Weekly leagues ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS weekly_leagues (
            id BIGSERIAL PRIMARY KEY,
            week_start DATE NOT NULL,
            week_end DATE NOT NULL,
            bucket_tier VARCHAR(16) NOT NULL,
            capacity INTEGER NOT NULL CHECK (capacity BETWEEN 10 AND 15),
            member_count INTEGER NOT NULL DEFAULT 0 CHECK (member_count <= capacity),
            status VARCHAR(16) NOT NULL DEFAULT 'open',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            finalized_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_weekly_leagues_week_tier_status
        ON weekly_leagues(week_start, bucket_tier, status)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS league_members (
            id BIGSERIAL PRIMARY KEY,
            league_id BIGINT NOT NULL REFERENCES weekly_leagues(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            week_start DATE NOT NULL,
            weekly_xp INTEGER NOT NULL DEFAULT 0,
            score_reached_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            rank INTEGER,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT league_members_league_user_key UNIQUE (league_id, user_id),
            CONSTRAINT league_members_user_week_key UNIQUE (user_id, week_start)
        )
    """)

    # --- Social ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS invites (
            id BIGSERIAL PRIMARY KEY,
            inviter_id BIGINT NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            invitee_id BIGINT UNIQUE NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            accepted_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            subtype VARCHAR(32) NOT NULL,
            title VARCHAR(128) NOT NULL,
            description TEXT,
            payload JSONB NOT NULL DEFAULT '{}',
            dedupe_key VARCHAR(128) UNIQUE,
            status VARCHAR(16) NOT NULL DEFAULT 'queued',
            is_read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_created
        ON notifications(user_id, created_at DESC)
    """)


def downgrade() -> None:
    for table in (
        "notifications",
        "invites",
        "league_members",
        "weekly_leagues",
        "user_challenge_progress",
        "challenge_instances",
        "challenge_definitions",
        "user_medals",
        "medals",
        "progress_counters",
        "xp_ledger",
        "daily_practice_totals",
        "practice_logs",
        "profiles",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
