"""initial_meal_plan_jobs

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates the meal plan generation job store and the tables it reads/writes:

1. users - mirror of Supabase auth.users
2. user_preferences - shopping day, lead time and diet per user
3. meal_plans - only the columns draft promotion touches
4. meal_plan_generation_jobs - job store with optimistic-concurrency fields
5. user_inbox_notifications - in-app notifications
6. cron_ticks - audit log of cron invocations

User-owned tables get RLS policies keyed on app_user_id(). The cron tick
runs on the direct (service role) connection, which bypasses RLS.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1c2e3f4b5d6"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

USER_OWNED_TABLES = (
    "user_preferences",
    "meal_plans",
    "meal_plan_generation_jobs",
    "user_inbox_notifications",
)
UPDATED_AT_TABLES = ("user_preferences", "meal_plans", "meal_plan_generation_jobs")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
    ]


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        sa.Uuid(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    # =========================================================================
    # HELPER FUNCTIONS
    # =========================================================================
    # Note: Each statement must be in a separate op.execute() for asyncpg compatibility
    op.execute("""
        CREATE OR REPLACE FUNCTION app_user_id()
        RETURNS UUID AS $$
            SELECT NULLIF(current_setting('app.current_user_id', true), '')::uuid;
        $$ LANGUAGE sql STABLE
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """)

    # =========================================================================
    # TABLES
    # =========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_id", "users", ["id"])

    op.create_table(
        "user_preferences",
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("shopping_day", sa.Integer(), nullable=True),
        sa.Column("meal_plan_lead_time_hours", sa.Integer(), nullable=True),
        sa.Column("diet_key", sa.String(length=64), nullable=True),
        sa.Column(
            "favorite_meal_ids",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "shopping_day IS NULL OR shopping_day BETWEEN 0 AND 6",
            name="ck_user_preferences_shopping_day",
        ),
        sa.CheckConstraint(
            "meal_plan_lead_time_hours IS NULL OR meal_plan_lead_time_hours IN (24, 48, 72)",
            name="ck_user_preferences_lead_time",
        ),
    )

    op.create_table(
        "meal_plans",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        _user_fk(),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("plan_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("draft_plan_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("draft_created_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_meal_plans_id", "meal_plans", ["id"])
    op.create_index("ix_meal_plans_user_id", "meal_plans", ["user_id"])

    op.create_table(
        "meal_plan_generation_jobs",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        _user_fk(),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempt", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("max_attempts", sa.Integer(), server_default=sa.text("3"), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(length=64), nullable=True),
        sa.Column("last_error_code", sa.String(length=64), nullable=True),
        sa.Column("last_error_message", sa.String(length=500), nullable=True),
        sa.Column("request_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("meal_plan_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('scheduled', 'running', 'succeeded', 'failed', 'cancelled')",
            name="ck_meal_plan_generation_jobs_status",
        ),
        sa.CheckConstraint("attempt >= 0", name="ck_meal_plan_generation_jobs_attempt"),
        sa.CheckConstraint("max_attempts >= 1", name="ck_meal_plan_generation_jobs_max_attempts"),
        sa.CheckConstraint(
            "(locked_at IS NULL AND locked_by IS NULL) "
            "OR (locked_at IS NOT NULL AND locked_by IS NOT NULL)",
            name="ck_meal_plan_generation_jobs_lock_pair",
        ),
    )
    op.create_index("ix_meal_plan_generation_jobs_id", "meal_plan_generation_jobs", ["id"])
    op.create_index(
        "ix_meal_plan_generation_jobs_user_id", "meal_plan_generation_jobs", ["user_id"]
    )
    op.create_index(
        "ix_meal_plan_generation_jobs_due",
        "meal_plan_generation_jobs",
        ["status", "scheduled_for"],
        postgresql_where=sa.text("status = 'scheduled'"),
    )
    op.create_index(
        "ix_meal_plan_generation_jobs_user_scheduled",
        "meal_plan_generation_jobs",
        ["user_id", "scheduled_for"],
    )
    # At most one scheduled job per user and week
    op.execute("""
        CREATE UNIQUE INDEX uq_meal_plan_generation_jobs_user_week_scheduled
            ON meal_plan_generation_jobs (user_id, (request_snapshot ->> 'week_start'))
            WHERE request_snapshot IS NOT NULL AND status = 'scheduled'
    """)

    op.create_table(
        "user_inbox_notifications",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        _user_fk(),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("message", sa.String(length=500), nullable=False),
        sa.Column(
            "details", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False
        ),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_inbox_notifications_id", "user_inbox_notifications", ["id"])
    op.create_index(
        "ix_user_inbox_notifications_user_id", "user_inbox_notifications", ["user_id"]
    )
    op.create_index(
        "ix_user_inbox_notifications_user_created",
        "user_inbox_notifications",
        ["user_id", "created_at"],
    )

    op.create_table(
        "cron_ticks",
        sa.Column("id", sa.Uuid(), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("cron_name", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("outcome", sa.String(length=32), nullable=True),
        sa.Column("job_id", sa.Uuid(), nullable=True),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("meal_plan_id", sa.Uuid(), nullable=True),
        sa.Column("error_code", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cron_ticks_id", "cron_ticks", ["id"])
    op.create_index("ix_cron_ticks_name_created", "cron_ticks", ["cron_name", "created_at"])

    # =========================================================================
    # TRIGGERS
    # =========================================================================
    for table in UPDATED_AT_TABLES:
        op.execute(f"""
            CREATE TRIGGER {table}_set_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW
                EXECUTE FUNCTION set_updated_at()
        """)

    # =========================================================================
    # ROW-LEVEL SECURITY
    # =========================================================================
    # Users see and change only their own rows. Jobs are created and moved
    # through their states by the API on the user's behalf, so the job table
    # gets the same owner policy.
    op.execute("ALTER TABLE users ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY users_self ON users
            FOR ALL
            USING (id = app_user_id())
            WITH CHECK (id = app_user_id())
    """)

    for table in USER_OWNED_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"""
            CREATE POLICY {table}_owner ON {table}
                FOR ALL
                USING (user_id = app_user_id())
                WITH CHECK (user_id = app_user_id())
        """)

    # cron_ticks is service-only: RLS on, no policies
    op.execute("ALTER TABLE cron_ticks ENABLE ROW LEVEL SECURITY")


def downgrade() -> None:
    for table in USER_OWNED_TABLES:
        op.execute(f"DROP POLICY IF EXISTS {table}_owner ON {table}")
    op.execute("DROP POLICY IF EXISTS users_self ON users")

    for table in UPDATED_AT_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_set_updated_at ON {table}")

    op.drop_table("cron_ticks")
    op.drop_table("user_inbox_notifications")
    op.execute("DROP INDEX IF EXISTS uq_meal_plan_generation_jobs_user_week_scheduled")
    op.drop_table("meal_plan_generation_jobs")
    op.drop_table("meal_plans")
    op.drop_table("user_preferences")
    op.drop_table("users")

    op.execute("DROP FUNCTION IF EXISTS set_updated_at()")
    op.execute("DROP FUNCTION IF EXISTS app_user_id()")
