"""Habitz core schema: profiles, check-in ledger, achievements, challenges, social.

Revision ID: 001_habitz_core
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_habitz_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Profiles ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id VARCHAR(64) PRIMARY KEY,
            username VARCHAR(64),
            full_name VARCHAR(128),
            email VARCHAR(320),
            avatar_url TEXT,
            streak INTEGER NOT NULL DEFAULT 0,
            streak_blocks INTEGER NOT NULL DEFAULT 2,
            last_activity_date DATE,
            last_streak_update DATE,
            last_block_reset TIMESTAMPTZ,
            xp INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_profiles_streak_non_negative CHECK (streak >= 0),
            CONSTRAINT ck_profiles_blocks_non_negative CHECK (streak_blocks >= 0)
        )
    """)

    # --- Activity types ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS activity_types (
            id SERIAL PRIMARY KEY,
            name VARCHAR(64) UNIQUE NOT NULL,
            icon VARCHAR(64),
            is_habit_forming BOOLEAN NOT NULL DEFAULT true
        )
    """)

    # --- Check-in ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_checkins (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            type VARCHAR(16) NOT NULL,
            activity_type_id INTEGER REFERENCES activity_types(id),
            image_url TEXT,
            checkin_date DATE NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_checkins_user_type_day UNIQUE (user_id, type, checkin_date),
            CONSTRAINT ck_user_checkins_type CHECK (type IN ('activity', 'nutrition')),
            CONSTRAINT ck_user_checkins_activity_type CHECK (
                (type = 'activity' AND activity_type_id IS NOT NULL)
                OR (type = 'nutrition' AND activity_type_id IS NULL)
            )
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_checkins_user_created
        ON user_checkins(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_checkins_activity_date
        ON user_checkins(activity_type_id, checkin_date)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_activity_points (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            activity_type_id INTEGER NOT NULL REFERENCES activity_types(id),
            points INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_activity_points_user_type UNIQUE (user_id, activity_type_id)
        )
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            icon VARCHAR(64),
            category VARCHAR(16) NOT NULL,
            tier VARCHAR(16) NOT NULL DEFAULT 'bronze',
            is_generic BOOLEAN NOT NULL DEFAULT false,
            required_points INTEGER NOT NULL,
            xp_points INTEGER NOT NULL DEFAULT 0,
            sort_order INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT ck_achievements_required_positive CHECK (required_points > 0)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievement_activities (
            achievement_id INTEGER NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
            activity_type_id INTEGER NOT NULL REFERENCES activity_types(id) ON DELETE CASCADE,
            PRIMARY KEY (achievement_id, activity_type_id)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievement_points (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            achievement_id INTEGER NOT NULL REFERENCES achievements(id),
            current_points INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_achievement_points_pair UNIQUE (user_id, achievement_id)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            achievement_id INTEGER NOT NULL REFERENCES achievements(id),
            unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_achievements_pair UNIQUE (user_id, achievement_id)
        )
    """)

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id BIGSERIAL PRIMARY KEY,
            creator_id VARCHAR(64) NOT NULL REFERENCES profiles(id),
            title VARCHAR(128) NOT NULL,
            description TEXT,
            activity_type_id INTEGER REFERENCES activity_types(id),
            start_date DATE NOT NULL,
            end_date DATE NOT NULL,
            has_bet BOOLEAN NOT NULL DEFAULT false,
            bet_amount NUMERIC(12, 2),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_challenges_date_range CHECK (start_date <= end_date),
            CONSTRAINT ck_challenges_bet CHECK (
                (has_bet AND bet_amount > 0) OR (NOT has_bet AND bet_amount IS NULL)
            )
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_participants (
            id BIGSERIAL PRIMARY KEY,
            challenge_id BIGINT NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(id),
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            responded_at TIMESTAMPTZ,
            final_points INTEGER,
            net_amount NUMERIC(12, 2),
            CONSTRAINT uq_challenge_participants_pair UNIQUE (challenge_id, user_id),
            CONSTRAINT ck_challenge_participants_status CHECK (status IN ('pending', 'accepted', 'declined'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_challenge_participants_user
        ON challenge_participants(user_id, status)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_summaries (
            id BIGSERIAL PRIMARY KEY,
            challenge_id BIGINT UNIQUE NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            winner_user_id VARCHAR(64),
            total_participants INTEGER NOT NULL,
            winner_points INTEGER NOT NULL DEFAULT 0,
            total_bet_pool NUMERIC(12, 2),
            completion_type VARCHAR(16) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Social ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS friend_requests (
            id BIGSERIAL PRIMARY KEY,
            sender_id VARCHAR(64) NOT NULL REFERENCES profiles(id),
            receiver_id VARCHAR(64) NOT NULL REFERENCES profiles(id),
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_friend_requests_pair UNIQUE (sender_id, receiver_id),
            CONSTRAINT ck_friend_requests_not_self CHECK (sender_id <> receiver_id)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS friendships (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(id),
            friend_id VARCHAR(64) NOT NULL REFERENCES profiles(id),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_friendships_pair UNIQUE (user_id, friend_id)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            subtype VARCHAR(64) NOT NULL,
            title VARCHAR(256) NOT NULL,
            description TEXT,
            action_url VARCHAR(512),
            metadata JSONB NOT NULL DEFAULT '{}',
            read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_unread
        ON notifications(user_id, read, created_at DESC)
    """)


def downgrade() -> None:
    for table in (
        "notifications",
        "friendships",
        "friend_requests",
        "challenge_summaries",
        "challenge_participants",
        "challenges",
        "user_achievements",
        "user_achievement_points",
        "achievement_activities",
        "achievements",
        "user_activity_points",
        "user_checkins",
        "activity_types",
        "profiles",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
