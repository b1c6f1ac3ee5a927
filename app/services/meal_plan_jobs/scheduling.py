"""Scheduling of next week's meal plan generation job."""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.domain.meal_plan_job_operations import meal_plan_job_ops
from app.domain.preferences_operations import preferences_ops
from app.models.meal_plan_job import JobStatus, MealPlanGenerationJob
from app.schemas.meal_plan_jobs import RequestSnapshot, ScheduleResult
from app.services.meal_plan_jobs.errors import (
    MealPlanJobError,
    MealPlanJobErrorCode,
    storage_errors,
)
from app.services.meal_plan_jobs.next_run import compute_next_run, resolve_schedule_preferences

logger = logging.getLogger(__name__)


async def schedule_next_run(
    db: AsyncSession,
    owner_id: uuid_pkg.UUID,
    now: datetime | None = None,
) -> ScheduleResult:
    """
    Make sure the user has a job for next week, due before their shopping moment.

    Idempotent per week: a still-scheduled job is moved to the newly
    computed time, a job that already ran (or is running) is returned
    unchanged, and otherwise a new job is inserted.

    Raises:
        MealPlanJobError: DB_ERROR on storage failure.
    """
    now = now or datetime.now(UTC)

    async with storage_errors(db, "load schedule preferences"):
        prefs_row = await preferences_ops.get_by_user_id(db, owner_id)
    prefs = resolve_schedule_preferences(prefs_row)
    next_run = compute_next_run(now, prefs)

    try:
        snapshot = RequestSnapshot(
            week_start=next_run.week_start,
            shopping_day=prefs.shopping_day,
            lead_time_hours=prefs.lead_time_hours,  # type: ignore[arg-type]
            diet_key=prefs.diet_key,
        )
    except ValidationError as e:
        raise MealPlanJobError(
            MealPlanJobErrorCode.VALIDATION_ERROR, "Invalid schedule preferences"
        ) from e

    async with storage_errors(db, "schedule meal plan job"):
        job = await _upsert_week_job(db, owner_id, next_run.scheduled_for, snapshot, now)
        await db.commit()

    logger.info(
        f"[meal-plan-jobs] Job {job.id} for user {owner_id} week {next_run.week_start} "
        f"({job.status}) due {job.scheduled_for.isoformat()}"
    )
    return ScheduleResult(
        job_id=job.id,
        scheduled_for=job.scheduled_for,
        week_start=next_run.week_start,
    )


async def _upsert_week_job(
    db: AsyncSession,
    owner_id: uuid_pkg.UUID,
    scheduled_for: datetime,
    snapshot: RequestSnapshot,
    now: datetime,
) -> MealPlanGenerationJob:
    week_key = snapshot.week_start.isoformat()

    existing = await meal_plan_job_ops.find_for_week(db, owner_id, week_key)
    if existing is not None and existing.status == JobStatus.SCHEDULED.value:
        moved = await meal_plan_job_ops.reschedule_in_place(db, existing.id, scheduled_for, now)
        if moved is not None:
            return moved
        # Claimed between the read and the update; report it as it is now
        existing = await meal_plan_job_ops.find_for_week(db, owner_id, week_key)

    if existing is not None:
        return existing

    inserted = await meal_plan_job_ops.insert_scheduled(
        db,
        user_id=owner_id,
        scheduled_for=scheduled_for,
        request_snapshot=snapshot.to_json(),
        max_attempts=settings.job_max_attempts,
        now=now,
    )
    if inserted is not None:
        return inserted

    # A concurrent scheduler inserted the same week first
    winner = await meal_plan_job_ops.find_for_week(db, owner_id, week_key)
    if winner is None:
        raise MealPlanJobError(MealPlanJobErrorCode.DB_ERROR, "Could not schedule meal plan job")
    return winner


@dataclass
class ScheduleSweepReport:
    users_scheduled: int = 0
    users_failed: int = 0
    failed_user_ids: list[uuid_pkg.UUID] = field(default_factory=list)


async def schedule_for_all_users(
    db: AsyncSession,
    now: datetime | None = None,
) -> ScheduleSweepReport:
    """(Re)schedule next week's job for every user with preferences.

    One user's failure is logged and does not stop the sweep.
    """
    now = now or datetime.now(UTC)
    report = ScheduleSweepReport()

    async with storage_errors(db, "list users to schedule"):
        user_ids = await preferences_ops.list_scheduled_user_ids(db)

    for user_id in user_ids:
        try:
            await schedule_next_run(db, user_id, now=now)
            report.users_scheduled += 1
        except MealPlanJobError as e:
            logger.warning(f"[meal-plan-jobs] Could not schedule user {user_id}: {e.code.value}")
            report.users_failed += 1
            report.failed_user_ids.append(user_id)

    return report
