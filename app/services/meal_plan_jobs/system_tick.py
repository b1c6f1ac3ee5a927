"""Privileged tick: claim and run one due job across all users.

Called by the cron endpoint and the in-process scheduler with a session
that has no RLS user context. One job's failure is recorded on the job and
reported in the outcome; it never escapes the tick.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.meal_plan_operations import DraftPromotionError, meal_plan_ops
from app.schemas.meal_plan_jobs import ClaimedJob, RunOutcome
from app.services.meal_plan_jobs import notifications
from app.services.meal_plan_jobs.claims import claim_due_job, new_lock_token
from app.services.meal_plan_jobs.errors import (
    MealPlanJobError,
    storage_errors,
    truncate_error,
)
from app.services.meal_plan_jobs.runner import (
    complete_job,
    describe_generation_error,
    fail_job,
    plan_request_from_snapshot,
)
from app.services.plan_builder import plan_builder

logger = logging.getLogger(__name__)

DRAFT_PROMOTION_FAILED = "MEAL_PLAN_DRAFT_FAILED"


async def run_one_due_job_privileged(
    db: AsyncSession,
    now: datetime | None = None,
) -> RunOutcome:
    """
    Claim the oldest due job of any user and run it to completion.

    On success the generated plan is put into draft review, the job is
    completed and the user is notified. On failure the job is failed
    (rescheduled or terminal).
    """
    now = now or datetime.now(UTC)
    lock_token = new_lock_token()

    try:
        claimed = await claim_due_job(db, lock_token, owner_id=None, now=now)
    except MealPlanJobError as e:
        logger.error(f"[system-tick] Claim failed: {e.code.value}")
        return RunOutcome(outcome="no_due_job")

    if claimed is None:
        logger.debug("[system-tick] No due job")
        return RunOutcome(outcome="no_due_job")

    logger.info(f"[system-tick] Running job {claimed.id} for user {claimed.user_id}")

    try:
        request = plan_request_from_snapshot(claimed.request_snapshot)
    except MealPlanJobError as e:
        return await _record_failure(db, claimed, lock_token, e.code.value, e.message, now)

    try:
        plan_id = await plan_builder.create_plan_for_user(db, claimed.user_id, request)
        async with storage_errors(db, "promote meal plan to draft"):
            await meal_plan_ops.ensure_draft(db, plan_id, claimed.user_id, now)
            await db.commit()
    except DraftPromotionError as e:
        await db.rollback()
        code, message = truncate_error(DRAFT_PROMOTION_FAILED, str(e))
        return await _record_failure(db, claimed, lock_token, code, message, now)
    except Exception as e:
        await db.rollback()
        code, message = describe_generation_error(e)
        return await _record_failure(db, claimed, lock_token, code, message, now)

    try:
        await complete_job(db, claimed.id, lock_token, plan_id, now=now)
    except MealPlanJobError as e:
        # The plan exists and is in draft; the job row is left for inspection
        logger.warning(f"[system-tick] Could not complete job {claimed.id}: {e.code.value}")

    await notifications.notify_plan_ready(db, claimed.user_id, plan_id, claimed.id)

    logger.info(f"[system-tick] Job {claimed.id} succeeded with plan {plan_id}")
    return RunOutcome(
        outcome="succeeded",
        job_id=claimed.id,
        meal_plan_id=plan_id,
        user_id=claimed.user_id,
    )


async def _record_failure(
    db: AsyncSession,
    claimed: ClaimedJob,
    lock_token: str,
    error_code: str,
    error_message: str,
    now: datetime,
) -> RunOutcome:
    logger.warning(f"[system-tick] Job {claimed.id} failed: {error_code}")
    try:
        await fail_job(db, claimed.id, lock_token, error_code, error_message, now=now)
    except MealPlanJobError as e:
        logger.error(f"[system-tick] Could not record failure for job {claimed.id}: {e.code.value}")

    return RunOutcome(
        outcome="failed",
        job_id=claimed.id,
        error_code=error_code[:64],
        user_id=claimed.user_id,
    )

