"""Internal task scheduler using APScheduler.

Runs the meal plan job tick and the weekly schedule sweep within the
FastAPI process. The sweep uses a PostgreSQL advisory lock so only one
instance runs it when several are up (e.g., Fly.io auto-scaling); the tick
needs no lock because job claims are compare-and-swap.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import text

from app.config import settings
from app.core.database import async_session_maker, direct_session_maker

logger = logging.getLogger(__name__)

# Advisory lock IDs (arbitrary unique integers, one per job)
SCHEDULE_SWEEP_LOCK_ID = 891250


@asynccontextmanager
async def advisory_lock(lock_id: int) -> AsyncIterator[bool]:
    """
    Acquire a PostgreSQL advisory lock for the duration of the context.

    Advisory locks are session-level and automatically released when the
    session ends. We use pg_try_advisory_lock() which returns immediately
    (non-blocking); if the lock is held by another process, we skip.
    """
    async with async_session_maker() as session:
        result = await session.execute(
            text("SELECT pg_try_advisory_lock(:lock_id)"),
            {"lock_id": lock_id},
        )
        acquired = result.scalar()

        if not acquired:
            yield False
            return

        try:
            yield True
        finally:
            await session.execute(
                text("SELECT pg_advisory_unlock(:lock_id)"),
                {"lock_id": lock_id},
            )
            await session.commit()


async def run_meal_plan_tick() -> dict[str, Any] | None:
    """
    Run one due meal plan job, if any.

    Returns the outcome dict, or None if the tick itself failed.
    """
    try:
        from app.services.meal_plan_jobs import run_one_due_job_privileged

        async with direct_session_maker() as db:
            outcome = await run_one_due_job_privileged(db)

        if outcome.outcome != "no_due_job":
            logger.info(
                f"[scheduler] Meal-plan-tick: {outcome.outcome} "
                f"(job {outcome.job_id}, error {outcome.error_code})"
            )
        return outcome.model_dump(mode="json")

    except Exception as e:
        logger.exception(f"[scheduler] Meal-plan-tick: failed with error: {e}")
        return None


async def run_schedule_sweep() -> dict[str, Any] | None:
    """
    (Re)schedule next week's job for every user, with advisory lock protection.

    Returns the report dict if executed, None if skipped (lock held by another instance).
    """
    async with advisory_lock(SCHEDULE_SWEEP_LOCK_ID) as acquired:
        if not acquired:
            logger.info("[scheduler] Schedule-sweep: skipped (another instance is running)")
            return None

        logger.info("[scheduler] Schedule-sweep: starting")

        try:
            from app.services.meal_plan_jobs import schedule_for_all_users

            async with direct_session_maker() as db:
                report = await schedule_for_all_users(db)
                await db.commit()

            logger.info(
                f"[scheduler] Schedule-sweep: completed "
                f"({report.users_scheduled} scheduled, {report.users_failed} failed)"
            )
            return asdict(report)

        except Exception as e:
            logger.exception(f"[scheduler] Schedule-sweep: failed with error: {e}")
            return None


class Scheduler:
    """Manages the APScheduler instance and job registration."""

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None

    def start(self) -> None:
        """Start the scheduler and register jobs."""
        if not settings.scheduler_enabled:
            logger.info("[scheduler] Disabled via SCHEDULER_ENABLED=false")
            return

        self._scheduler = AsyncIOScheduler()

        # Meal plan tick: one due job per interval; the cron endpoint may also drive it
        self._scheduler.add_job(
            run_meal_plan_tick,
            trigger=IntervalTrigger(minutes=settings.meal_plan_tick_interval_minutes),
            id="meal_plan_tick",
            name="Meal Plan Job Tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        # Schedule sweep: daily at configured hour (UTC)
        self._scheduler.add_job(
            run_schedule_sweep,
            trigger=CronTrigger(hour=settings.schedule_sweep_hour, minute=0),
            id="schedule_sweep",
            name="Weekly Meal Plan Schedule Sweep",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            f"[scheduler] Started with meal-plan-tick every "
            f"{settings.meal_plan_tick_interval_minutes} min, "
            f"schedule-sweep at {settings.schedule_sweep_hour:02d}:00 UTC"
        )

    def stop(self) -> None:
        """Gracefully shut down the scheduler."""
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            logger.info("[scheduler] Stopped")

    async def trigger_now(self, job_id: str) -> dict[str, Any] | None:
        """
        Manually trigger a job immediately (for testing/debugging).

        Returns the job result or None if job not found.
        """
        if job_id == "meal_plan_tick":
            return await run_meal_plan_tick()
        if job_id == "schedule_sweep":
            return await run_schedule_sweep()
        return None


scheduler = Scheduler()
