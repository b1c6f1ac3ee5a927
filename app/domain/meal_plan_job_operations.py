"""Job store operations for meal_plan_generation_jobs.

State-changing writes are single conditional UPDATE ... RETURNING
statements that re-assert the fields the caller observed. Zero rows
returned means another writer got there first; callers decide whether
that is an error.
"""

import uuid as uuid_pkg
from datetime import datetime
from typing import Any

from sqlalchemy import case, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.meal_plan_job import JobStatus, MealPlanGenerationJob

Job = MealPlanGenerationJob


class MealPlanJobOperations:
    """Operations for MealPlanGenerationJob model."""

    def __init__(self) -> None:
        self.model = MealPlanGenerationJob

    async def get_by_id(
        self,
        db: AsyncSession,
        job_id: uuid_pkg.UUID,
        user_id: uuid_pkg.UUID | None = None,
    ) -> MealPlanGenerationJob | None:
        """Get a job by ID, optionally restricted to one owner."""
        statement = select(Job).where(Job.id == job_id)  # type: ignore[arg-type]
        if user_id is not None:
            statement = statement.where(Job.user_id == user_id)  # type: ignore[arg-type]
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_running(
        self,
        db: AsyncSession,
        job_id: uuid_pkg.UUID,
        lock_token: str,
        user_id: uuid_pkg.UUID | None = None,
    ) -> MealPlanGenerationJob | None:
        """Get a job only if it is running under the given lock token."""
        statement = (
            select(Job)
            .where(Job.id == job_id)  # type: ignore[arg-type]
            .where(Job.status == JobStatus.RUNNING.value)  # type: ignore[arg-type]
            .where(Job.locked_by == lock_token)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        if user_id is not None:
            statement = statement.where(Job.user_id == user_id)  # type: ignore[arg-type]
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def list_due_candidates(
        self,
        db: AsyncSession,
        now: datetime,
        limit: int,
        user_id: uuid_pkg.UUID | None = None,
    ) -> list[MealPlanGenerationJob]:
        """Scheduled, unlocked jobs that are due, oldest first."""
        statement = (
            select(Job)
            .where(Job.status == JobStatus.SCHEDULED.value)  # type: ignore[arg-type]
            .where(Job.locked_at.is_(None))  # type: ignore[union-attr]
            .where(Job.scheduled_for <= now)  # type: ignore[arg-type]
            .order_by(Job.scheduled_for.asc())  # type: ignore[attr-defined]
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        if user_id is not None:
            statement = statement.where(Job.user_id == user_id)  # type: ignore[arg-type]
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        limit: int,
    ) -> list[MealPlanGenerationJob]:
        """A user's jobs, most recently scheduled first."""
        statement = (
            select(Job)
            .where(Job.user_id == user_id)  # type: ignore[arg-type]
            .order_by(Job.scheduled_for.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def find_for_week(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        week_start: str,
    ) -> MealPlanGenerationJob | None:
        """Find the job for a user's week, preferring the scheduled one."""
        statement = (
            select(Job)
            .where(Job.user_id == user_id)  # type: ignore[arg-type]
            .where(Job.request_snapshot["week_start"].astext == week_start)  # type: ignore[index]
            .order_by(
                (Job.status == JobStatus.SCHEDULED.value).desc(),  # type: ignore[arg-type]
                Job.created_at.desc(),  # type: ignore[attr-defined]
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def insert_scheduled(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        scheduled_for: datetime,
        request_snapshot: dict[str, Any],
        max_attempts: int,
        now: datetime,
    ) -> MealPlanGenerationJob | None:
        """Insert a scheduled job.

        Returns None when the per-week unique index already holds a
        scheduled job for this user (a concurrent scheduler won).
        """
        stmt = (
            insert(Job)
            .values(
                user_id=user_id,
                status=JobStatus.SCHEDULED.value,
                scheduled_for=scheduled_for,
                attempt=0,
                max_attempts=max_attempts,
                request_snapshot=request_snapshot,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing()
            .returning(Job)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def reschedule_in_place(
        self,
        db: AsyncSession,
        job_id: uuid_pkg.UUID,
        scheduled_for: datetime,
        now: datetime,
    ) -> MealPlanGenerationJob | None:
        """Move a still-scheduled job to a new due time."""
        stmt = (
            update(Job)
            .where(Job.id == job_id)  # type: ignore[arg-type]
            .where(Job.status == JobStatus.SCHEDULED.value)  # type: ignore[arg-type]
            .values(scheduled_for=scheduled_for, updated_at=now)
            .returning(Job)
            .execution_options(synchronize_session="fetch", populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    def claim_statement(
        self,
        job_id: uuid_pkg.UUID,
        observed_status: str,
        observed_attempt: int,
        lock_token: str,
        now: datetime,
    ):
        return (
            update(Job)
            .where(Job.id == job_id)  # type: ignore[arg-type]
            .where(Job.status == observed_status)  # type: ignore[arg-type]
            .where(Job.locked_at.is_(None))  # type: ignore[union-attr]
            .where(Job.attempt == observed_attempt)  # type: ignore[arg-type]
            .values(
                status=JobStatus.RUNNING.value,
                locked_at=now,
                locked_by=lock_token,
                attempt=Job.attempt + 1,
                updated_at=now,
            )
            .returning(Job)
            .execution_options(synchronize_session="fetch", populate_existing=True)
        )

    async def cas_claim(
        self,
        db: AsyncSession,
        job_id: uuid_pkg.UUID,
        observed_status: str,
        observed_attempt: int,
        lock_token: str,
        now: datetime,
    ) -> MealPlanGenerationJob | None:
        """Move a job to running if it still looks the way the caller saw it."""
        result = await db.execute(
            self.claim_statement(job_id, observed_status, observed_attempt, lock_token, now)
        )
        return result.scalar_one_or_none()

    def complete_statement(
        self,
        job_id: uuid_pkg.UUID,
        lock_token: str,
        meal_plan_id: uuid_pkg.UUID | None,
        now: datetime,
    ):
        return (
            update(Job)
            .where(Job.id == job_id)  # type: ignore[arg-type]
            .where(Job.status == JobStatus.RUNNING.value)  # type: ignore[arg-type]
            .where(Job.locked_by == lock_token)  # type: ignore[arg-type]
            .values(
                status=JobStatus.SUCCEEDED.value,
                locked_at=None,
                locked_by=None,
                last_error_code=None,
                last_error_message=None,
                meal_plan_id=meal_plan_id,
                updated_at=now,
            )
            .returning(Job)
            .execution_options(synchronize_session="fetch", populate_existing=True)
        )

    async def cas_complete(
        self,
        db: AsyncSession,
        job_id: uuid_pkg.UUID,
        lock_token: str,
        meal_plan_id: uuid_pkg.UUID | None,
        now: datetime,
    ) -> MealPlanGenerationJob | None:
        result = await db.execute(self.complete_statement(job_id, lock_token, meal_plan_id, now))
        return result.scalar_one_or_none()

    def fail_statement(
        self,
        job_id: uuid_pkg.UUID,
        lock_token: str,
        error_code: str,
        error_message: str,
        now: datetime,
    ):
        # Retry budget is decided in the same statement as the write
        next_status = case(
            (Job.attempt >= Job.max_attempts, JobStatus.FAILED.value),  # type: ignore[operator]
            else_=JobStatus.SCHEDULED.value,
        )
        return (
            update(Job)
            .where(Job.id == job_id)  # type: ignore[arg-type]
            .where(Job.status == JobStatus.RUNNING.value)  # type: ignore[arg-type]
            .where(Job.locked_by == lock_token)  # type: ignore[arg-type]
            .values(
                status=next_status,
                locked_at=None,
                locked_by=None,
                last_error_code=error_code,
                last_error_message=error_message,
                updated_at=now,
            )
            .returning(Job)
            .execution_options(synchronize_session="fetch", populate_existing=True)
        )

    async def cas_fail(
        self,
        db: AsyncSession,
        job_id: uuid_pkg.UUID,
        lock_token: str,
        error_code: str,
        error_message: str,
        now: datetime,
    ) -> MealPlanGenerationJob | None:
        result = await db.execute(
            self.fail_statement(job_id, lock_token, error_code, error_message, now)
        )
        return result.scalar_one_or_none()


meal_plan_job_ops = MealPlanJobOperations()
