"""In-memory stand-in for meal_plan_job_ops.

Mirrors the conditional-update semantics of the real statements so the
job services can be exercised without a database: every CAS re-checks the
observed fields and returns None when they no longer hold, and the
one-scheduled-job-per-week index is enforced on insert.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class FakeJob:
    user_id: uuid.UUID
    scheduled_for: datetime
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    status: str = "scheduled"
    attempt: int = 0
    max_attempts: int = 3
    locked_at: datetime | None = None
    locked_by: str | None = None
    last_error_code: str | None = None
    last_error_message: str | None = None
    request_snapshot: dict[str, Any] | None = None
    meal_plan_id: uuid.UUID | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def _week_of(job: FakeJob):
    # request_snapshot->>'week_start' is NULL for non-object snapshots
    snapshot = job.request_snapshot
    return snapshot.get("week_start") if isinstance(snapshot, dict) else None


class FakeJobStore:
    def __init__(self) -> None:
        self.jobs: dict[uuid.UUID, FakeJob] = {}

    # ─── Seeding / inspection ────────────────────────────────────────────

    def add(self, **fields: Any) -> FakeJob:
        job = FakeJob(**fields)
        self.jobs[job.id] = job
        return copy.deepcopy(job)

    def row(self, job_id: uuid.UUID) -> FakeJob:
        return self.jobs[job_id]

    def _out(self, job: FakeJob | None) -> FakeJob | None:
        return copy.deepcopy(job) if job is not None else None

    # ─── Reads ───────────────────────────────────────────────────────────

    async def get_by_id(self, db, job_id, user_id=None):
        job = self.jobs.get(job_id)
        if job is None or (user_id is not None and job.user_id != user_id):
            return None
        return self._out(job)

    async def get_running(self, db, job_id, lock_token, user_id=None):
        job = self.jobs.get(job_id)
        if (
            job is None
            or job.status != "running"
            or job.locked_by != lock_token
            or (user_id is not None and job.user_id != user_id)
        ):
            return None
        return self._out(job)

    async def list_due_candidates(self, db, now, limit, user_id=None):
        due = [
            j
            for j in self.jobs.values()
            if j.status == "scheduled"
            and j.locked_at is None
            and j.scheduled_for <= now
            and (user_id is None or j.user_id == user_id)
        ]
        due.sort(key=lambda j: j.scheduled_for)
        return [copy.deepcopy(j) for j in due[:limit]]

    async def list_for_user(self, db, user_id, limit):
        jobs = sorted(
            (j for j in self.jobs.values() if j.user_id == user_id),
            key=lambda j: j.scheduled_for,
            reverse=True,
        )
        return [copy.deepcopy(j) for j in jobs[:limit]]

    async def find_for_week(self, db, user_id, week_start):
        matches = [
            j
            for j in self.jobs.values()
            if j.user_id == user_id
            and _week_of(j) == week_start
        ]
        if not matches:
            return None
        matches.sort(key=lambda j: (j.status == "scheduled", j.created_at), reverse=True)
        return self._out(matches[0])

    # ─── Writes ──────────────────────────────────────────────────────────

    async def insert_scheduled(self, db, user_id, scheduled_for, request_snapshot, max_attempts, now):
        week = request_snapshot.get("week_start")
        for j in self.jobs.values():
            if (
                j.user_id == user_id
                and j.status == "scheduled"
                and _week_of(j) == week
            ):
                return None
        job = FakeJob(
            user_id=user_id,
            scheduled_for=scheduled_for,
            max_attempts=max_attempts,
            request_snapshot=copy.deepcopy(request_snapshot),
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        return self._out(job)

    async def reschedule_in_place(self, db, job_id, scheduled_for, now):
        job = self.jobs.get(job_id)
        if job is None or job.status != "scheduled":
            return None
        job.scheduled_for = scheduled_for
        job.updated_at = now
        return self._out(job)

    async def cas_claim(self, db, job_id, observed_status, observed_attempt, lock_token, now):
        job = self.jobs.get(job_id)
        if (
            job is None
            or job.status != observed_status
            or job.locked_at is not None
            or job.attempt != observed_attempt
        ):
            return None
        job.status = "running"
        job.locked_at = now
        job.locked_by = lock_token
        job.attempt += 1
        job.updated_at = now
        return self._out(job)

    async def cas_complete(self, db, job_id, lock_token, meal_plan_id, now):
        job = self.jobs.get(job_id)
        if job is None or job.status != "running" or job.locked_by != lock_token:
            return None
        job.status = "succeeded"
        job.locked_at = None
        job.locked_by = None
        job.last_error_code = None
        job.last_error_message = None
        job.meal_plan_id = meal_plan_id
        job.updated_at = now
        return self._out(job)

    async def cas_fail(self, db, job_id, lock_token, error_code, error_message, now):
        job = self.jobs.get(job_id)
        if job is None or job.status != "running" or job.locked_by != lock_token:
            return None
        job.status = "failed" if job.attempt >= job.max_attempts else "scheduled"
        job.locked_at = None
        job.locked_by = None
        job.last_error_code = error_code
        job.last_error_message = error_message
        job.updated_at = now
        return self._out(job)
