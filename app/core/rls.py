"""Row-Level Security (RLS) context management.

User-scoped routes run with ``app.current_user_id`` set so the RLS policies
on ``meal_plan_generation_jobs`` and ``user_preferences`` only expose the
caller's rows. The system tick never sets it and runs with service-level
access.

Key concepts:
- set_config(..., is_local => true) is transaction-scoped (works with PgBouncer pooling)
- The job services commit after every state transition, so the setting is
  re-applied whenever the session begins a new transaction
"""

from uuid import UUID

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession

_SET_USER_SQL = text("SELECT set_config('app.current_user_id', :user_id, true)")


async def set_rls_user_context(session: AsyncSession, user_id: UUID) -> None:
    """
    Set the current user context for RLS policies.

    Applies the setting to the current transaction and registers an
    ``after_begin`` listener so every later transaction on this session
    carries it too.

    Args:
        session: The async database session
        user_id: The authenticated user's UUID
    """
    uid = str(user_id)

    @event.listens_for(session.sync_session, "after_begin")
    def _reapply_user_context(_session, _transaction, connection):
        connection.execute(_SET_USER_SQL, {"user_id": uid})

    await session.execute(_SET_USER_SQL, {"user_id": uid})


async def get_current_rls_user_id(session: AsyncSession) -> UUID | None:
    """Return the RLS user id currently set on the session, if any."""
    result = await session.execute(
        text("SELECT NULLIF(current_setting('app.current_user_id', true), '')::uuid")
    )
    return result.scalar_one_or_none()
