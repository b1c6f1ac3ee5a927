"""Meal plan generation jobs: scheduling, claiming and running."""

from app.services.meal_plan_jobs.claims import (
    claim_due_job,
    claim_specific_job,
    new_lock_token,
)
from app.services.meal_plan_jobs.errors import MealPlanJobError, MealPlanJobErrorCode
from app.services.meal_plan_jobs.runner import (
    complete_job,
    fail_job,
    list_jobs,
    run_claimed_job,
    run_job_now,
    run_one_due_job,
)
from app.services.meal_plan_jobs.scheduling import schedule_for_all_users, schedule_next_run
from app.services.meal_plan_jobs.system_tick import run_one_due_job_privileged

__all__ = [
    "MealPlanJobError",
    "MealPlanJobErrorCode",
    "claim_due_job",
    "claim_specific_job",
    "complete_job",
    "fail_job",
    "list_jobs",
    "new_lock_token",
    "run_claimed_job",
    "run_job_now",
    "run_one_due_job",
    "run_one_due_job_privileged",
    "schedule_for_all_users",
    "schedule_next_run",
]
