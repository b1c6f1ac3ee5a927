"""Job runner: complete, fail and execute claimed meal plan jobs.

Every state transition is committed on its own so other workers see it
immediately; a claim is therefore durable before generation starts.
"""

import logging
import uuid as uuid_pkg
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.meal_plan_job_operations import meal_plan_job_ops
from app.models.meal_plan_job import JobStatus, MealPlanGenerationJob
from app.schemas.meal_plan_jobs import (
    DEFAULT_PLAN_DAYS,
    JobStatusResult,
    PlanRequest,
    RunOutcome,
    RunSuccess,
)
from app.services.meal_plan_jobs import notifications
from app.services.meal_plan_jobs.claims import (
    claim_due_job,
    claim_specific_job,
    new_lock_token,
    validate_lock_token,
)
from app.services.meal_plan_jobs.errors import (
    MealPlanJobError,
    MealPlanJobErrorCode,
    storage_errors,
    truncate_error,
)
from app.services.plan_builder import PlanBuilderError, plan_builder

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 50

# Codes a job run can end with that still count as a (recorded) job failure
RUN_FAILURE_CODES = (MealPlanJobErrorCode.JOB_RUN_FAILED, MealPlanJobErrorCode.INVALID_STATE)


def plan_request_from_snapshot(snapshot: dict[str, Any] | None) -> PlanRequest:
    """
    Build the plan builder request from a job's stored snapshot.

    ``days`` falls back to a week; a snapshot that is not an object, or has
    no parseable ``week_start``, cannot be run at all.

    Raises:
        MealPlanJobError: MEAL_PLAN_JOB_INVALID_STATE
    """
    if snapshot is None:
        snapshot = {}
    if not isinstance(snapshot, dict):
        raise MealPlanJobError(
            MealPlanJobErrorCode.INVALID_STATE,
            "Job snapshot is not an object",
        )
    week_start = snapshot.get("week_start")
    if not week_start:
        raise MealPlanJobError(
            MealPlanJobErrorCode.INVALID_STATE,
            "Job snapshot has no week_start",
        )
    days = snapshot.get("days")
    try:
        return PlanRequest(
            week_start=week_start,
            days=days if isinstance(days, int) and days > 0 else DEFAULT_PLAN_DAYS,
            settings={
                k: snapshot[k]
                for k in ("shopping_day", "lead_time_hours", "diet_key")
                if k in snapshot
            },
        )
    except ValidationError as e:
        raise MealPlanJobError(
            MealPlanJobErrorCode.INVALID_STATE,
            "Job snapshot has an invalid week_start",
        ) from e


def describe_generation_error(exc: Exception) -> tuple[str, str]:
    """Code and safe message to record for a failed generation."""
    if isinstance(exc, PlanBuilderError):
        return truncate_error(exc.code, exc.message)
    if isinstance(exc, MealPlanJobError):
        return truncate_error(exc.code.value, exc.message)
    return truncate_error("UNKNOWN", "Meal plan generation failed")


async def complete_job(
    db: AsyncSession,
    job_id: uuid_pkg.UUID,
    lock_token: str,
    result_plan_id: uuid_pkg.UUID | None,
    now: datetime | None = None,
) -> JobStatusResult:
    """
    Mark a running job as succeeded and release its lock.

    Raises:
        MealPlanJobError: NOT_FOUND_OR_LOCK_MISMATCH unless the job is
            running under ``lock_token``.
    """
    validate_lock_token(lock_token)
    now = now or datetime.now(UTC)

    async with storage_errors(db, "complete meal plan job"):
        job = await meal_plan_job_ops.cas_complete(db, job_id, lock_token, result_plan_id, now)
        await db.commit()

    if job is None:
        raise MealPlanJobError(
            MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH,
            "Job not found or lock mismatch",
        )

    logger.info(f"[meal-plan-jobs] Job {job_id} succeeded (plan {result_plan_id})")
    return JobStatusResult(status="succeeded")


async def fail_job(
    db: AsyncSession,
    job_id: uuid_pkg.UUID,
    lock_token: str,
    error_code: str,
    error_message: str,
    now: datetime | None = None,
) -> JobStatusResult:
    """
    Record a failed attempt and release the lock.

    The job goes back to scheduled while it has attempts left and to
    failed otherwise; a terminal failure also notifies the user.

    Raises:
        MealPlanJobError: NOT_FOUND_OR_LOCK_MISMATCH unless the job is
            running under ``lock_token``.
    """
    validate_lock_token(lock_token)
    now = now or datetime.now(UTC)
    code, message = truncate_error(error_code, error_message)

    async with storage_errors(db, "fail meal plan job"):
        job = await meal_plan_job_ops.cas_fail(db, job_id, lock_token, code, message, now)
        await db.commit()

    if job is None:
        raise MealPlanJobError(
            MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH,
            "Job not found or lock mismatch",
        )

    if job.status == JobStatus.FAILED.value:
        logger.warning(
            f"[meal-plan-jobs] Job {job_id} failed permanently after "
            f"{job.attempt}/{job.max_attempts} attempts: {code}"
        )
        await notifications.notify_generation_failed(db, job.user_id, job.id, code)
        return JobStatusResult(status="failed")

    logger.info(
        f"[meal-plan-jobs] Job {job_id} attempt {job.attempt}/{job.max_attempts} failed "
        f"({code}), rescheduled"
    )
    return JobStatusResult(status="scheduled")


async def run_claimed_job(
    db: AsyncSession,
    job_id: uuid_pkg.UUID,
    lock_token: str,
    owner_id: uuid_pkg.UUID,
    now: datetime | None = None,
) -> RunSuccess:
    """
    Generate the plan for a job the caller has claimed, then complete it.

    Raises:
        MealPlanJobError: NOT_FOUND_OR_LOCK_MISMATCH if the job is not
            running under ``lock_token``; MEAL_PLAN_JOB_INVALID_STATE for an
            unusable snapshot and JOB_RUN_FAILED when generation fails (the
            job is failed in both cases).
    """
    validate_lock_token(lock_token)

    async with storage_errors(db, "load meal plan job"):
        job = await meal_plan_job_ops.get_running(db, job_id, lock_token, user_id=owner_id)
    if job is None:
        raise MealPlanJobError(
            MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH,
            "Job not found or lock mismatch",
        )

    job_user_id = job.user_id
    try:
        request = plan_request_from_snapshot(job.request_snapshot)
    except MealPlanJobError as e:
        await fail_job(db, job_id, lock_token, e.code.value, e.message, now=now)
        e.cause_code = e.code.value
        raise

    plan_id = await _generate_or_fail(db, job_id, job_user_id, lock_token, request, now)
    await complete_job(db, job_id, lock_token, plan_id, now=now)
    return RunSuccess(meal_plan_id=plan_id)


async def _generate_or_fail(
    db: AsyncSession,
    job_id: uuid_pkg.UUID,
    user_id: uuid_pkg.UUID,
    lock_token: str,
    request: PlanRequest,
    now: datetime | None,
) -> uuid_pkg.UUID:
    try:
        return await plan_builder.create_plan_for_user(db, user_id, request)
    except Exception as e:
        code, message = describe_generation_error(e)
        logger.warning(f"[meal-plan-jobs] Generation for job {job_id} failed: {code}")
        await db.rollback()
        await fail_job(db, job_id, lock_token, code, message, now=now)
        raise MealPlanJobError(MealPlanJobErrorCode.JOB_RUN_FAILED, message, cause_code=code) from e


async def run_job_now(
    db: AsyncSession,
    job_id: uuid_pkg.UUID,
    owner_id: uuid_pkg.UUID,
    now: datetime | None = None,
) -> RunSuccess:
    """Claim one of the user's jobs with a fresh lock token and run it."""
    lock_token = new_lock_token()
    claimed = await claim_specific_job(db, job_id, lock_token, owner_id, now=now)
    return await run_claimed_job(db, claimed.id, lock_token, owner_id, now=now)


async def run_one_due_job(
    db: AsyncSession,
    owner_id: uuid_pkg.UUID,
    now: datetime | None = None,
) -> RunOutcome:
    """
    Claim and run the user's oldest due job.

    A failed generation is reported as a ``failed`` outcome; only storage
    and lock errors raise.
    """
    lock_token = new_lock_token()
    claimed = await claim_due_job(db, lock_token, owner_id=owner_id, now=now)
    if claimed is None:
        return RunOutcome(outcome="no_due_job")

    try:
        result = await run_claimed_job(db, claimed.id, lock_token, owner_id, now=now)
    except MealPlanJobError as e:
        if e.code not in RUN_FAILURE_CODES:
            raise
        return RunOutcome(
            outcome="failed",
            job_id=claimed.id,
            error_code=e.cause_code or e.code.value,
        )

    return RunOutcome(outcome="succeeded", job_id=claimed.id, meal_plan_id=result.meal_plan_id)


async def list_jobs(
    db: AsyncSession,
    owner_id: uuid_pkg.UUID,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[MealPlanGenerationJob]:
    """The user's jobs, most recently scheduled first."""
    if not 1 <= limit <= MAX_LIST_LIMIT:
        raise MealPlanJobError(
            MealPlanJobErrorCode.VALIDATION_ERROR,
            f"limit must be between 1 and {MAX_LIST_LIMIT}",
        )
    async with storage_errors(db, "list meal plan jobs"):
        return await meal_plan_job_ops.list_for_user(db, owner_id, limit)
