"""Unit tests for the claim protocol: lock tokens, due scans and CAS exclusivity."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from app.services.meal_plan_jobs.claims import (
    GENERATED_LOCK_TOKEN_LENGTH,
    claim_due_job,
    claim_specific_job,
    new_lock_token,
    validate_lock_token,
)
from app.services.meal_plan_jobs.errors import MealPlanJobError, MealPlanJobErrorCode

NOW = datetime(2026, 10, 28, 8, 0, tzinfo=UTC)
TOKEN_A = "token-aaaaaaaa"
TOKEN_B = "token-bbbbbbbb"


def _due(store, user_id, minutes_ago=10, **fields):
    return store.add(
        user_id=user_id,
        scheduled_for=NOW - timedelta(minutes=minutes_ago),
        request_snapshot={"week_start": "2026-11-02"},
        **fields,
    )


# ---------------------------------------------------------------------------
# Lock tokens
# ---------------------------------------------------------------------------


class TestLockTokens:
    def test_new_token_has_expected_length(self):
        assert len(new_lock_token()) == GENERATED_LOCK_TOKEN_LENGTH

    def test_new_tokens_differ(self):
        assert new_lock_token() != new_lock_token()

    @pytest.mark.parametrize("token", ["short", "x" * 65, ""])
    def test_rejects_bad_length(self, token):
        with pytest.raises(MealPlanJobError) as exc_info:
            validate_lock_token(token)
        assert exc_info.value.code == MealPlanJobErrorCode.VALIDATION_ERROR

    @pytest.mark.parametrize("token", ["x" * 8, "x" * 64])
    def test_accepts_bounds(self, token):
        assert validate_lock_token(token) == token


# ---------------------------------------------------------------------------
# claim_due_job
# ---------------------------------------------------------------------------


class TestClaimDueJob:
    def setup_method(self):
        self.user_id = uuid.uuid4()

    async def test_returns_none_when_nothing_due(self, db, job_store):
        job_store.add(user_id=self.user_id, scheduled_for=NOW + timedelta(minutes=1))

        assert await claim_due_job(db, TOKEN_A, now=NOW) is None

    async def test_claims_oldest_due_job(self, db, job_store):
        newer = _due(job_store, self.user_id, minutes_ago=5)
        older = _due(job_store, self.user_id, minutes_ago=60)

        claimed = await claim_due_job(db, TOKEN_A, now=NOW)

        assert claimed.id == older.id
        assert claimed.attempt == 1
        row = job_store.row(older.id)
        assert row.status == "running"
        assert row.locked_by == TOKEN_A
        assert row.locked_at == NOW
        assert job_store.row(newer.id).status == "scheduled"
        db.commit.assert_awaited()

    async def test_job_due_exactly_now_is_claimable(self, db, job_store):
        job = _due(job_store, self.user_id, minutes_ago=0)

        claimed = await claim_due_job(db, TOKEN_A, now=NOW)
        assert claimed.id == job.id

    async def test_skips_candidates_without_attempts_left(self, db, job_store):
        _due(job_store, self.user_id, minutes_ago=60, attempt=3, max_attempts=3)
        usable = _due(job_store, self.user_id, minutes_ago=5)

        claimed = await claim_due_job(db, TOKEN_A, now=NOW)
        assert claimed.id == usable.id

    async def test_owner_scope(self, db, job_store):
        _due(job_store, uuid.uuid4())

        assert await claim_due_job(db, TOKEN_A, owner_id=self.user_id, now=NOW) is None

    async def test_unscoped_claim_spans_users(self, db, job_store):
        other = _due(job_store, uuid.uuid4())

        claimed = await claim_due_job(db, TOKEN_A, now=NOW)
        assert claimed.id == other.id

    async def test_second_claim_does_not_take_running_job(self, db, job_store):
        job = _due(job_store, self.user_id)

        first = await claim_due_job(db, TOKEN_A, now=NOW)
        second = await claim_due_job(db, TOKEN_B, now=NOW)

        assert first.id == job.id
        assert second is None
        assert job_store.row(job.id).locked_by == TOKEN_A

    async def test_lost_race_returns_none(self, db, job_store):
        job = _due(job_store, self.user_id)
        stale = await job_store.list_due_candidates(db, NOW, 10)

        await claim_due_job(db, TOKEN_A, now=NOW)

        # The second worker read the candidate before the first claim landed
        job_store.list_due_candidates = AsyncMock(return_value=stale)
        assert await claim_due_job(db, TOKEN_B, now=NOW) is None

        row = job_store.row(job.id)
        assert row.locked_by == TOKEN_A
        assert row.attempt == 1

    async def test_invalid_token_is_rejected_before_scan(self, db, job_store):
        _due(job_store, self.user_id)

        with pytest.raises(MealPlanJobError) as exc_info:
            await claim_due_job(db, "bad", now=NOW)

        assert exc_info.value.code == MealPlanJobErrorCode.VALIDATION_ERROR
        assert all(j.status == "scheduled" for j in job_store.jobs.values())


# ---------------------------------------------------------------------------
# claim_specific_job
# ---------------------------------------------------------------------------


class TestClaimSpecificJob:
    def setup_method(self):
        self.user_id = uuid.uuid4()

    async def test_claims_future_job(self, db, job_store):
        job = job_store.add(user_id=self.user_id, scheduled_for=NOW + timedelta(days=2))

        claimed = await claim_specific_job(db, job.id, TOKEN_A, self.user_id, now=NOW)

        assert claimed.id == job.id
        assert job_store.row(job.id).status == "running"

    async def test_reclaims_failed_job_with_attempts_left(self, db, job_store):
        job = _due(job_store, self.user_id, status="failed", attempt=1, max_attempts=3)

        claimed = await claim_specific_job(db, job.id, TOKEN_A, self.user_id, now=NOW)

        assert claimed.attempt == 2
        assert job_store.row(job.id).status == "running"

    async def test_failed_job_without_attempts_is_invalid_state(self, db, job_store):
        job = _due(job_store, self.user_id, status="failed", attempt=3, max_attempts=3)

        with pytest.raises(MealPlanJobError) as exc_info:
            await claim_specific_job(db, job.id, TOKEN_A, self.user_id, now=NOW)

        assert exc_info.value.code == MealPlanJobErrorCode.INVALID_STATE
        assert job_store.row(job.id).status == "failed"

    async def test_missing_job(self, db, job_store):
        with pytest.raises(MealPlanJobError) as exc_info:
            await claim_specific_job(db, uuid.uuid4(), TOKEN_A, self.user_id, now=NOW)
        assert exc_info.value.code == MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH

    async def test_other_users_job(self, db, job_store):
        job = _due(job_store, uuid.uuid4())

        with pytest.raises(MealPlanJobError) as exc_info:
            await claim_specific_job(db, job.id, TOKEN_A, self.user_id, now=NOW)
        assert exc_info.value.code == MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH

    @pytest.mark.parametrize("status", ["running", "succeeded", "cancelled"])
    async def test_unclaimable_status(self, db, job_store, status):
        job = _due(job_store, self.user_id, status=status, attempt=1)

        with pytest.raises(MealPlanJobError) as exc_info:
            await claim_specific_job(db, job.id, TOKEN_A, self.user_id, now=NOW)
        assert exc_info.value.code == MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH

    async def test_lost_race_is_lock_mismatch(self, db, job_store):
        job = _due(job_store, self.user_id)
        stale = await job_store.get_by_id(db, job.id)
        await claim_due_job(db, TOKEN_B, now=NOW)

        job_store.get_by_id = AsyncMock(return_value=stale)
        with pytest.raises(MealPlanJobError) as exc_info:
            await claim_specific_job(db, job.id, TOKEN_A, self.user_id, now=NOW)

        assert exc_info.value.code == MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH
        assert job_store.row(job.id).locked_by == TOKEN_B
