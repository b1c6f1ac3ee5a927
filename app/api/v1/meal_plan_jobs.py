"""Meal plan generation job endpoints for the signed-in user.

All routes run on an RLS-scoped session; MealPlanJobError is rendered by
the exception handler registered in app.main.
"""

import uuid as uuid_pkg

from fastapi import APIRouter

from app.api.deps import CurrentUser, RlsDbSession
from app.schemas.meal_plan_jobs import (
    ClaimedJob,
    ClaimJobRequest,
    CompleteJobRequest,
    FailJobRequest,
    JobRead,
    JobStatusResult,
    RunClaimedJobRequest,
    RunOutcome,
    RunSuccess,
    ScheduleResult,
)
from app.services import meal_plan_jobs
from app.services.meal_plan_jobs.runner import DEFAULT_LIST_LIMIT

router = APIRouter(prefix="/meal-plan-jobs", tags=["meal-plan-jobs"])


@router.get("", response_model=list[JobRead])
async def list_meal_plan_jobs(
    db: RlsDbSession,
    current_user: CurrentUser,
    limit: int = DEFAULT_LIST_LIMIT,
):
    """List the current user's jobs, most recently scheduled first."""
    return await meal_plan_jobs.list_jobs(db, current_user.id, limit=limit)


@router.post("/schedule", response_model=ScheduleResult)
async def schedule_next_run(
    db: RlsDbSession,
    current_user: CurrentUser,
):
    """Schedule (or reschedule) the job for the coming week."""
    return await meal_plan_jobs.schedule_next_run(db, current_user.id)


@router.post("/claim", response_model=ClaimedJob | None)
async def claim_due_job(
    data: ClaimJobRequest,
    db: RlsDbSession,
    current_user: CurrentUser,
):
    """Claim the user's oldest due job; null when there is nothing to claim."""
    return await meal_plan_jobs.claim_due_job(
        db, data.lock_token, owner_id=current_user.id, now=data.now
    )


@router.post("/run-due", response_model=RunOutcome)
async def run_one_due_job(
    db: RlsDbSession,
    current_user: CurrentUser,
):
    """Claim and run the user's oldest due job."""
    return await meal_plan_jobs.run_one_due_job(db, current_user.id)


@router.post("/{job_id}/complete", response_model=JobStatusResult)
async def complete_job(
    job_id: uuid_pkg.UUID,
    data: CompleteJobRequest,
    db: RlsDbSession,
    _current_user: CurrentUser,
):
    return await meal_plan_jobs.complete_job(db, job_id, data.lock_token, data.meal_plan_id)


@router.post("/{job_id}/fail", response_model=JobStatusResult)
async def fail_job(
    job_id: uuid_pkg.UUID,
    data: FailJobRequest,
    db: RlsDbSession,
    _current_user: CurrentUser,
):
    return await meal_plan_jobs.fail_job(
        db, job_id, data.lock_token, data.error_code, data.error_message
    )


@router.post("/{job_id}/run-claimed", response_model=RunSuccess)
async def run_claimed_job(
    job_id: uuid_pkg.UUID,
    data: RunClaimedJobRequest,
    db: RlsDbSession,
    current_user: CurrentUser,
):
    """Run a job the caller already claimed with ``lock_token``."""
    return await meal_plan_jobs.run_claimed_job(db, job_id, data.lock_token, current_user.id)


@router.post("/{job_id}/run", response_model=RunSuccess)
async def run_job_now(
    job_id: uuid_pkg.UUID,
    db: RlsDbSession,
    current_user: CurrentUser,
):
    """Run one of the user's jobs right now, regardless of its due time."""
    return await meal_plan_jobs.run_job_now(db, job_id, current_user.id)
