"""Job store against PostgreSQL: conditional updates and the per-week unique index."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from app.domain.meal_plan_job_operations import meal_plan_job_ops

NOW = datetime(2026, 10, 28, 8, 0, tzinfo=UTC)
WEEK = {"week_start": "2026-11-02", "days": 7}


async def _insert(db, user, snapshot=WEEK, minutes_ago=5, max_attempts=3):
    return await meal_plan_job_ops.insert_scheduled(
        db,
        user_id=user.id,
        scheduled_for=NOW - timedelta(minutes=minutes_ago),
        request_snapshot=dict(snapshot),
        max_attempts=max_attempts,
        now=NOW,
    )


class TestInsertScheduled:
    @pytest.mark.asyncio
    async def test_second_scheduled_job_for_week_is_ignored(self, db_session, test_user):
        first = await _insert(db_session, test_user)
        second = await _insert(db_session, test_user)

        assert first is not None
        assert second is None

        found = await meal_plan_job_ops.find_for_week(db_session, test_user.id, "2026-11-02")
        assert found.id == first.id

    @pytest.mark.asyncio
    async def test_other_week_is_allowed(self, db_session, test_user):
        await _insert(db_session, test_user)
        other = await _insert(db_session, test_user, snapshot={"week_start": "2026-11-09"})

        assert other is not None


class TestClaimCas:
    @pytest.mark.asyncio
    async def test_only_one_claim_wins(self, db_session, test_user):
        job = await _insert(db_session, test_user)

        first = await meal_plan_job_ops.cas_claim(
            db_session, job.id, "scheduled", 0, "token-first-1", NOW
        )
        second = await meal_plan_job_ops.cas_claim(
            db_session, job.id, "scheduled", 0, "token-second", NOW
        )

        assert first is not None
        assert first.status == "running"
        assert first.attempt == 1
        assert first.locked_by == "token-first-1"
        assert second is None

    @pytest.mark.asyncio
    async def test_due_scan_skips_running_and_future(self, db_session, test_user):
        due = await _insert(db_session, test_user)
        await _insert(
            db_session, test_user, snapshot={"week_start": "2026-11-09"}, minutes_ago=-60
        )

        candidates = await meal_plan_job_ops.list_due_candidates(
            db_session, now=NOW, limit=10, user_id=test_user.id
        )
        assert [c.id for c in candidates] == [due.id]

        await meal_plan_job_ops.cas_claim(db_session, due.id, "scheduled", 0, "token-first-1", NOW)
        candidates = await meal_plan_job_ops.list_due_candidates(
            db_session, now=NOW, limit=10, user_id=test_user.id
        )
        assert candidates == []


class TestFailCas:
    @pytest.mark.asyncio
    async def test_retry_budget_decided_in_statement(self, db_session, test_user):
        job = await _insert(db_session, test_user, max_attempts=1)
        await meal_plan_job_ops.cas_claim(db_session, job.id, "scheduled", 0, "token-first-1", NOW)

        failed = await meal_plan_job_ops.cas_fail(
            db_session, job.id, "token-first-1", "BOOM", "broke", NOW
        )

        assert failed.status == "failed"
        assert failed.locked_at is None
        assert failed.locked_by is None
        assert failed.last_error_code == "BOOM"

    @pytest.mark.asyncio
    async def test_wrong_token_changes_nothing(self, db_session, test_user):
        job = await _insert(db_session, test_user)
        await meal_plan_job_ops.cas_claim(db_session, job.id, "scheduled", 0, "token-first-1", NOW)

        assert (
            await meal_plan_job_ops.cas_fail(db_session, job.id, "token-other", "X", "", NOW)
            is None
        )
        assert (
            await meal_plan_job_ops.cas_complete(db_session, job.id, "token-other", None, NOW)
            is None
        )

        running = await meal_plan_job_ops.get_running(db_session, job.id, "token-first-1")
        assert running is not None
