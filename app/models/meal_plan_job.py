"""MealPlanGenerationJob model: durable job store for weekly plan generation.

Every state change is a single conditional UPDATE (see
app/domain/meal_plan_job_operations.py); the columns below are the
optimistic-concurrency fields those statements compare against.
"""

import uuid as uuid_pkg
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import CheckConstraint, Column, DateTime, Index, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, UserOwnedMixin, UUIDMixin


class JobStatus(str, Enum):
    """Status of a meal plan generation job."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Statuses a manual "run now" may claim from
MANUALLY_CLAIMABLE_STATUSES = (JobStatus.SCHEDULED, JobStatus.FAILED)

DEFAULT_MAX_ATTEMPTS = 3


class MealPlanGenerationJob(UUIDMixin, UserOwnedMixin, TimestampMixin, SQLModel, table=True):
    """One scheduled generation attempt series for a user's week."""

    __tablename__ = "meal_plan_generation_jobs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('scheduled', 'running', 'succeeded', 'failed', 'cancelled')",
            name="ck_meal_plan_generation_jobs_status",
        ),
        CheckConstraint("attempt >= 0", name="ck_meal_plan_generation_jobs_attempt"),
        CheckConstraint("max_attempts >= 1", name="ck_meal_plan_generation_jobs_max_attempts"),
        CheckConstraint(
            "(locked_at IS NULL AND locked_by IS NULL) "
            "OR (locked_at IS NOT NULL AND locked_by IS NOT NULL)",
            name="ck_meal_plan_generation_jobs_lock_pair",
        ),
        # Due-job scan used by claims
        Index(
            "ix_meal_plan_generation_jobs_due",
            "status",
            "scheduled_for",
            postgresql_where=text("status = 'scheduled'"),
        ),
        Index("ix_meal_plan_generation_jobs_user_scheduled", "user_id", "scheduled_for"),
        # At most one scheduled job per user and week
        Index(
            "uq_meal_plan_generation_jobs_user_week_scheduled",
            "user_id",
            text("(request_snapshot ->> 'week_start')"),
            unique=True,
            postgresql_where=text("request_snapshot IS NOT NULL AND status = 'scheduled'"),
        ),
    )

    status: str = Field(
        default=JobStatus.SCHEDULED.value,
        max_length=20,
        nullable=False,
    )
    scheduled_for: datetime = Field(  # type: ignore[call-overload]
        nullable=False,
        sa_type=DateTime(timezone=True),
    )

    # Retry accounting
    attempt: int = Field(default=0, nullable=False, sa_column_kwargs={"server_default": text("0")})
    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        nullable=False,
        sa_column_kwargs={"server_default": text(str(DEFAULT_MAX_ATTEMPTS))},
    )

    # Lock (both null = claimable, both set = running under locked_by)
    locked_at: datetime | None = Field(  # type: ignore[call-overload]
        default=None,
        sa_type=DateTime(timezone=True),
    )
    locked_by: str | None = Field(default=None, max_length=64)

    # Last failure
    last_error_code: str | None = Field(default=None, max_length=64)
    last_error_message: str | None = Field(default=None, max_length=500)

    # Inputs captured at scheduling time, never mutated afterwards
    request_snapshot: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSONB, nullable=True),
    )

    # Result
    meal_plan_id: uuid_pkg.UUID | None = Field(default=None, nullable=True)
