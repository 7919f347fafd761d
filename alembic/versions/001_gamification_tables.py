"""Gamification tables.

Creates gamification_config, user_gamification, user_badges,
user_achievements, gamification_events, admin_point_adjustments,
gamification_notifications and user_daily_goals. The retail tables
(profiles, sales, user_monthly_stats) are created only if the host
database does not already have them.

Revision ID: 001_gamification_tables
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_gamification_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Retail application tables (read by the SQL providers) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(128) NOT NULL DEFAULT '',
            role VARCHAR(16) NOT NULL DEFAULT 'seller',
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS sales (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            total_amount NUMERIC(14,2) NOT NULL DEFAULT 0,
            product_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_sales_user_created
        ON sales(user_id, created_at)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_monthly_stats (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            month VARCHAR(7) NOT NULL,
            total_sales INTEGER NOT NULL DEFAULT 0,
            total_amount DOUBLE PRECISION NOT NULL DEFAULT 0,
            rank INTEGER NOT NULL DEFAULT 0,
            is_top_seller BOOLEAN NOT NULL DEFAULT false,
            is_best_seller BOOLEAN NOT NULL DEFAULT false,
            updated_at TIMESTAMPTZ,
            CONSTRAINT uq_user_monthly_stats_user_month UNIQUE(user_id, month)
        )
    """)

    # --- Ruleset revisions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS gamification_config (
            id BIGSERIAL PRIMARY KEY,
            version INTEGER UNIQUE NOT NULL,
            ruleset JSONB NOT NULL,
            updated_by VARCHAR(64),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Per-user aggregate ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_gamification (
            user_id VARCHAR(64) PRIMARY KEY,
            total_points INTEGER NOT NULL DEFAULT 0 CHECK (total_points >= 0),
            current_level INTEGER NOT NULL DEFAULT 1 CHECK (current_level >= 1),
            current_avatar_url VARCHAR(256),
            consecutive_best_seller_count INTEGER NOT NULL DEFAULT 0
                CHECK (consecutive_best_seller_count >= 0),
            last_best_seller_month VARCHAR(7),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_gamification_points
        ON user_gamification(total_points DESC)
    """)

    # --- Badges and trophies ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            badge_type VARCHAR(64) NOT NULL,
            badge_name VARCHAR(128) NOT NULL,
            is_manager_only BOOLEAN NOT NULL DEFAULT false,
            is_active BOOLEAN NOT NULL DEFAULT true,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_badges_user_type UNIQUE(user_id, badge_type)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_badges_user_id
        ON user_badges(user_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            achievement_name VARCHAR(128) NOT NULL,
            points_earned INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_achievements_user_name UNIQUE(user_id, achievement_name)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_achievements_user_id
        ON user_achievements(user_id)
    """)

    # --- Audit log ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS gamification_events (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            event_type VARCHAR(32) NOT NULL,
            event_data JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_gamification_events_user_type_created
        ON gamification_events(user_id, event_type, created_at)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS admin_point_adjustments (
            id BIGSERIAL PRIMARY KEY,
            admin_id VARCHAR(64) NOT NULL,
            user_id VARCHAR(64) NOT NULL,
            points_adjusted INTEGER NOT NULL,
            reason VARCHAR(256) NOT NULL,
            adjustment_type VARCHAR(16) NOT NULL CHECK (adjustment_type IN ('add', 'subtract')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_admin_adjustments_admin_user_created
        ON admin_point_adjustments(admin_id, user_id, created_at)
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS gamification_notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            message TEXT NOT NULL,
            points INTEGER,
            icon_url VARCHAR(256),
            is_read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_gamification_notifications_user_read
        ON gamification_notifications(user_id, is_read)
    """)

    # --- Daily goals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_daily_goals (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            goal_date DATE NOT NULL,
            goal_type VARCHAR(32) NOT NULL,
            target_value DOUBLE PRECISION NOT NULL,
            current_value DOUBLE PRECISION NOT NULL DEFAULT 0,
            is_completed BOOLEAN NOT NULL DEFAULT false,
            points_earned INTEGER NOT NULL DEFAULT 0,
            completed_at TIMESTAMPTZ,
            CONSTRAINT uq_user_daily_goals_user_date_type UNIQUE(user_id, goal_date, goal_type)
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_daily_goals CASCADE")
    op.execute("DROP TABLE IF EXISTS gamification_notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS admin_point_adjustments CASCADE")
    op.execute("DROP TABLE IF EXISTS gamification_events CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS user_gamification CASCADE")
    op.execute("DROP TABLE IF EXISTS gamification_config CASCADE")
