import uuid as uuid_pkg

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utc_now
from app.models.user_preferences import UserPreferences


class PreferencesOperations:
    """Operations for UserPreferences model."""

    async def get_by_user_id(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
    ) -> UserPreferences | None:
        """Get preferences by user ID."""
        statement = select(UserPreferences).where(UserPreferences.user_id == user_id)  # type: ignore[arg-type]
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def upsert_schedule(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        obj_in: dict,
    ) -> UserPreferences:
        """Create or update the schedule-related preference fields.

        Keys with a None value are left untouched on update.
        """
        values = {k: v for k, v in obj_in.items() if v is not None}
        now = utc_now()
        stmt = (
            insert(UserPreferences)
            .values(user_id=user_id, created_at=now, updated_at=now, **values)
            .on_conflict_do_update(
                index_elements=["user_id"],
                set_={**values, "updated_at": now},
            )
            .returning(UserPreferences)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        await db.flush()
        return result.scalar_one()

    async def list_scheduled_user_ids(self, db: AsyncSession) -> list[uuid_pkg.UUID]:
        """IDs of users who have a preferences row (targets of the weekly sweep)."""
        result = await db.execute(select(UserPreferences.user_id))
        return list(result.scalars().all())


preferences_ops = PreferencesOperations()
