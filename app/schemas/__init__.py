"""Pydantic schemas for API request/response validation."""

from app.schemas.meal_plan_jobs import (
    ClaimedJob,
    ClaimJobRequest,
    CompleteJobRequest,
    FailJobRequest,
    JobRead,
    JobStatusResult,
    MealPlanScheduleRead,
    MealPlanScheduleUpdate,
    MealPlanScheduleUpdateResponse,
    PlanRequest,
    RequestSnapshot,
    RunClaimedJobRequest,
    RunOutcome,
    RunSuccess,
    ScheduleResult,
)

__all__ = [
    "ClaimJobRequest",
    "ClaimedJob",
    "CompleteJobRequest",
    "FailJobRequest",
    "JobRead",
    "JobStatusResult",
    "MealPlanScheduleRead",
    "MealPlanScheduleUpdate",
    "MealPlanScheduleUpdateResponse",
    "PlanRequest",
    "RequestSnapshot",
    "RunClaimedJobRequest",
    "RunOutcome",
    "RunSuccess",
    "ScheduleResult",
]
