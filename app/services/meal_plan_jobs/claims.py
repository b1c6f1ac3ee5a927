"""Claim protocol: move a job to running under a caller-supplied lock token.

Claims scan a bounded window of due candidates and then compare-and-swap
one of them. Losing the race to another worker is a normal outcome and
returns None; only storage failures and bad input raise.
"""

import logging
import uuid as uuid_pkg
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.domain.meal_plan_job_operations import meal_plan_job_ops
from app.models.meal_plan_job import MANUALLY_CLAIMABLE_STATUSES
from app.schemas.meal_plan_jobs import ClaimedJob
from app.services.meal_plan_jobs.errors import (
    MealPlanJobError,
    MealPlanJobErrorCode,
    storage_errors,
)

logger = logging.getLogger(__name__)

MIN_LOCK_TOKEN_LENGTH = 8
MAX_LOCK_TOKEN_LENGTH = 64
GENERATED_LOCK_TOKEN_LENGTH = 24


def new_lock_token() -> str:
    """A fresh random lock token."""
    return uuid_pkg.uuid4().hex[:GENERATED_LOCK_TOKEN_LENGTH]


def validate_lock_token(lock_token: str) -> str:
    if not isinstance(lock_token, str) or not (
        MIN_LOCK_TOKEN_LENGTH <= len(lock_token) <= MAX_LOCK_TOKEN_LENGTH
    ):
        raise MealPlanJobError(
            MealPlanJobErrorCode.VALIDATION_ERROR,
            f"Lock token must be {MIN_LOCK_TOKEN_LENGTH}-{MAX_LOCK_TOKEN_LENGTH} characters",
        )
    return lock_token


async def claim_due_job(
    db: AsyncSession,
    lock_token: str,
    owner_id: uuid_pkg.UUID | None = None,
    now: datetime | None = None,
) -> ClaimedJob | None:
    """
    Claim the oldest due job, or return None if there is none to win.

    With ``owner_id`` only that user's jobs are considered; without it the
    scan spans all users (service-level sessions only).

    Raises:
        MealPlanJobError: VALIDATION_ERROR for a bad token, DB_ERROR on
            storage failure.
    """
    validate_lock_token(lock_token)
    now = now or datetime.now(UTC)

    async with storage_errors(db, "claim meal plan job"):
        candidates = await meal_plan_job_ops.list_due_candidates(
            db, now=now, limit=settings.claim_batch_size, user_id=owner_id
        )
        candidate = next((c for c in candidates if c.attempt < c.max_attempts), None)
        if candidate is None:
            return None

        claimed = await meal_plan_job_ops.cas_claim(
            db,
            job_id=candidate.id,
            observed_status=candidate.status,
            observed_attempt=candidate.attempt,
            lock_token=lock_token,
            now=now,
        )
        await db.commit()

    if claimed is None:
        logger.info(f"[meal-plan-jobs] Lost claim race for job {candidate.id}")
        return None

    logger.info(
        f"[meal-plan-jobs] Claimed job {claimed.id} "
        f"(attempt {claimed.attempt}/{claimed.max_attempts})"
    )
    return ClaimedJob.model_validate(claimed)


async def claim_specific_job(
    db: AsyncSession,
    job_id: uuid_pkg.UUID,
    lock_token: str,
    owner_id: uuid_pkg.UUID,
    now: datetime | None = None,
) -> ClaimedJob:
    """
    Claim one of the user's jobs right away, ignoring its due time.

    Used by "run now"; a failed job may be re-run this way as long as it
    has attempts left.

    Raises:
        MealPlanJobError: NOT_FOUND_OR_LOCK_MISMATCH when the job is
            missing, not claimable or claimed by someone else first;
            MEAL_PLAN_JOB_INVALID_STATE when its attempts are used up.
    """
    validate_lock_token(lock_token)
    now = now or datetime.now(UTC)
    claimable = {s.value for s in MANUALLY_CLAIMABLE_STATUSES}

    async with storage_errors(db, "claim meal plan job"):
        job = await meal_plan_job_ops.get_by_id(db, job_id, user_id=owner_id)
        if job is None or job.status not in claimable or job.locked_at is not None:
            raise MealPlanJobError(
                MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH,
                "Job not found or not claimable",
            )
        if job.attempt >= job.max_attempts:
            raise MealPlanJobError(
                MealPlanJobErrorCode.INVALID_STATE,
                "Job has no attempts left",
            )

        claimed = await meal_plan_job_ops.cas_claim(
            db,
            job_id=job.id,
            observed_status=job.status,
            observed_attempt=job.attempt,
            lock_token=lock_token,
            now=now,
        )
        await db.commit()

    if claimed is None:
        raise MealPlanJobError(
            MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH,
            "Job was claimed by another worker",
        )

    logger.info(
        f"[meal-plan-jobs] Manually claimed job {claimed.id} "
        f"(attempt {claimed.attempt}/{claimed.max_attempts})"
    )
    return ClaimedJob.model_validate(claimed)
