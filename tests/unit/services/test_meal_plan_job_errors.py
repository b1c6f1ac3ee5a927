"""Unit tests for the job error taxonomy and its HTTP rendering."""

import json
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import meal_plan_job_error_handler
from app.services.meal_plan_jobs.errors import (
    MealPlanJobError,
    MealPlanJobErrorCode,
    storage_errors,
    truncate_error,
)


class TestTruncateError:
    def test_defaults_for_empty_values(self):
        assert truncate_error("", "") == ("UNKNOWN", "Unknown error")

    def test_bounds(self):
        code, message = truncate_error("C" * 70, "m" * 600)
        assert len(code) == 64
        assert len(message) == 500


class TestStorageErrors:
    async def test_wraps_sqlalchemy_errors(self, db):
        with pytest.raises(MealPlanJobError) as exc_info:
            async with storage_errors(db, "claim meal plan job"):
                raise OperationalError("UPDATE", {}, Exception("server closed the connection"))

        assert exc_info.value.code == MealPlanJobErrorCode.DB_ERROR
        assert exc_info.value.message == "Could not claim meal plan job"
        db.rollback.assert_awaited_once()

    async def test_other_errors_pass_through(self, db):
        with pytest.raises(KeyError):
            async with storage_errors(db, "claim meal plan job"):
                raise KeyError("x")

        db.rollback.assert_not_awaited()


class TestErrorHandler:
    @pytest.mark.parametrize(
        "code,status_code",
        [
            (MealPlanJobErrorCode.AUTH_ERROR, 401),
            (MealPlanJobErrorCode.VALIDATION_ERROR, 400),
            (MealPlanJobErrorCode.DB_ERROR, 503),
            (MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH, 409),
            (MealPlanJobErrorCode.INVALID_STATE, 409),
            (MealPlanJobErrorCode.JOB_RUN_FAILED, 502),
        ],
    )
    async def test_status_and_body(self, code, status_code):
        response = await meal_plan_job_error_handler(MagicMock(), MealPlanJobError(code, "nope"))

        assert response.status_code == status_code
        assert json.loads(response.body) == {
            "ok": False,
            "error": {"code": code.value, "message": "nope"},
        }

    def test_registered_for_job_errors(self):
        from app.main import app

        assert app.exception_handlers[MealPlanJobError] is meal_plan_job_error_handler
