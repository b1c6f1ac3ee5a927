"""Root conftest: test infrastructure for all backend tests.

Provides:
- Safety guard: DB integration tests only run with MEALPLANNER_DB_TESTS=1
- Transaction-rollback db_session fixture on the direct connection
- Test user fixture
- Mock session factory for unit tests
- Autouse mock for the external plan builder
"""

from __future__ import annotations

import os
import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from app.config.settings import settings

DB_TESTS_ENABLED = os.getenv("MEALPLANNER_DB_TESTS") == "1"

# ─────────────────────────────────────────────────────────────────────────────
# Safety Guard
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config: pytest.Config) -> None:
    """Register markers and refuse to touch Supabase without explicit opt-in.

    Unit and API tests (pure mocks) run without any database. Integration
    tests that touch the database require MEALPLANNER_DB_TESTS=1.
    """
    config.addinivalue_line("markers", "integration: DB integration tests (transaction rollback)")

    if DB_TESTS_ENABLED and "supabase" in settings.database_url_direct:
        if not os.getenv("MEALPLANNER_ALLOW_SUPABASE"):
            pytest.exit(
                "SAFETY: Set MEALPLANNER_ALLOW_SUPABASE=1 to confirm running tests "
                "against a Supabase database.",
                returncode=1,
            )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless the database has been opted in."""
    if DB_TESTS_ENABLED:
        return
    skip_db = pytest.mark.skip(reason="set MEALPLANNER_DB_TESTS=1 to run DB integration tests")
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(skip_db)


# ─────────────────────────────────────────────────────────────────────────────
# Transaction-Rollback Engine (uses DIRECT connection, not pooler)
# ─────────────────────────────────────────────────────────────────────────────

# PgBouncer transaction pooling (port 6543) breaks SAVEPOINTs because it
# may multiplex connections across transactions. Use direct (port 5432).
TEST_ENGINE = create_async_engine(
    settings.database_url_direct,
    echo=False,
    pool_pre_ping=True,
    pool_size=3,
    max_overflow=2,
    connect_args={
        "command_timeout": 30,
    },
)


@pytest.fixture
async def db_session():
    """Database session wrapped in a transaction that is ALWAYS rolled back.

    Uses SAVEPOINT so the job services can call commit() after every
    transition without actually committing; the outer transaction absorbs it.
    """
    async with TEST_ENGINE.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)
        await conn.begin_nested()

        @event.listens_for(session.sync_session, "after_transaction_end")
        def restart_savepoint(session_sync, transaction):
            """Restart SAVEPOINT after each nested transaction ends."""
            if transaction.nested and not transaction._parent.nested:
                session_sync.begin_nested()

        try:
            yield session
        finally:
            await session.close()
            await trans.rollback()


@pytest.fixture
async def test_user(db_session: AsyncSession):
    """A test user inside the rolled-back transaction."""
    from app.models.user import User

    user = User(
        id=uuid.uuid4(),
        email=f"__test_{uuid.uuid4().hex[:8]}@example.com",
        display_name="Test User",
        created_at=datetime.now(UTC),
    )
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


# ─────────────────────────────────────────────────────────────────────────────
# External Service Mocks
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def mock_plan_builder():
    """SAFETY: Never call the real plan builder from tests.

    Patched where it is looked up, so tests can set return values or
    side effects on ``create_plan_for_user``.
    """
    builder = AsyncMock()
    builder.create_plan_for_user = AsyncMock(return_value=uuid.uuid4())
    with (
        patch("app.services.meal_plan_jobs.runner.plan_builder", builder),
        patch("app.services.meal_plan_jobs.system_tick.plan_builder", builder),
    ):
        yield builder
