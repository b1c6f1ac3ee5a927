"""Pydantic schemas for meal plan generation jobs."""

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PLAN_DAYS = 7
DEFAULT_DIET_KEY = "balanced"


class RequestSnapshot(BaseModel):
    """Generation inputs captured when a job is scheduled.

    Validated once on write; stored as JSONB and never mutated.
    """

    week_start: date
    days: int = Field(default=DEFAULT_PLAN_DAYS, ge=1, le=14)
    shopping_day: int = Field(ge=0, le=6)
    lead_time_hours: Literal[24, 48, 72]
    diet_key: str = Field(default=DEFAULT_DIET_KEY, min_length=1, max_length=64)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ClaimedJob(BaseModel):
    """A job that was just moved to running under the caller's lock token."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    scheduled_for: datetime
    attempt: int
    max_attempts: int
    request_snapshot: Any = None


class ScheduleResult(BaseModel):
    job_id: UUID
    scheduled_for: datetime
    week_start: date


class JobStatusResult(BaseModel):
    status: Literal["scheduled", "failed", "succeeded"]


class RunSuccess(BaseModel):
    status: Literal["succeeded"] = "succeeded"
    meal_plan_id: UUID


class RunOutcome(BaseModel):
    """Result of running one due job.

    no_due_job carries no ids; succeeded carries job_id and meal_plan_id;
    failed carries job_id and error_code. user_id is only filled in by the
    privileged tick, which runs across users.
    """

    outcome: Literal["no_due_job", "succeeded", "failed"]
    job_id: UUID | None = None
    meal_plan_id: UUID | None = None
    error_code: str | None = None
    user_id: UUID | None = None


class JobRead(BaseModel):
    """Response item for GET /meal-plan-jobs."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    scheduled_for: datetime
    attempt: int
    max_attempts: int
    locked_at: datetime | None = None
    last_error_code: str | None = None
    last_error_message: str | None = None
    request_snapshot: dict[str, Any] | None = None
    meal_plan_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


class PlanRequest(BaseModel):
    """Input handed to the plan builder for one generation."""

    week_start: date
    days: int = DEFAULT_PLAN_DAYS
    settings: dict[str, Any] = Field(default_factory=dict)


# Request bodies


class ClaimJobRequest(BaseModel):
    """Request body for POST /meal-plan-jobs/claim."""

    lock_token: str
    now: datetime | None = None


class CompleteJobRequest(BaseModel):
    """Request body for POST /meal-plan-jobs/{id}/complete."""

    lock_token: str
    meal_plan_id: UUID | None = None


class FailJobRequest(BaseModel):
    """Request body for POST /meal-plan-jobs/{id}/fail."""

    lock_token: str
    error_code: str = Field(min_length=1)
    error_message: str = ""


class RunClaimedJobRequest(BaseModel):
    """Request body for POST /meal-plan-jobs/{id}/run-claimed."""

    lock_token: str


# Schedule preferences


class MealPlanScheduleRead(BaseModel):
    """Response for GET /users/me/meal-plan-schedule."""

    shopping_day: int
    meal_plan_lead_time_hours: int
    diet_key: str
    favorite_meal_ids: list[str] = []


class MealPlanScheduleUpdate(BaseModel):
    """Request body for PUT /users/me/meal-plan-schedule."""

    shopping_day: int = Field(ge=0, le=6)
    meal_plan_lead_time_hours: Literal[24, 48, 72]
    diet_key: str | None = Field(default=None, min_length=1, max_length=64)
    favorite_meal_ids: list[str] | None = Field(default=None, max_length=10)


class MealPlanScheduleUpdateResponse(MealPlanScheduleRead):
    """Saved preferences plus the outcome of the best-effort reschedule."""

    scheduled: bool
    schedule_warning: str | None = None
    job: ScheduleResult | None = None
