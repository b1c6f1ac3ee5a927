import uuid as uuid_pkg

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.cron_tick import CronTick


class CronTickOperations:
    """Operations for CronTick model."""

    async def record(
        self,
        db: AsyncSession,
        cron_name: str,
        status: str,
        outcome: str | None = None,
        job_id: uuid_pkg.UUID | None = None,
        user_id: uuid_pkg.UUID | None = None,
        meal_plan_id: uuid_pkg.UUID | None = None,
        error_code: str | None = None,
    ) -> CronTick:
        tick = CronTick(
            cron_name=cron_name,
            status=status,
            outcome=outcome,
            job_id=job_id,
            user_id=user_id,
            meal_plan_id=meal_plan_id,
            error_code=error_code[:64] if error_code else None,
        )
        db.add(tick)
        await db.flush()
        return tick


cron_tick_ops = CronTickOperations()
