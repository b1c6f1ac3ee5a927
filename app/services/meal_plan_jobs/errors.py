"""Error taxonomy for the meal plan job scheduler."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Column bounds for last_error_code / last_error_message
MAX_ERROR_CODE_LENGTH = 64
MAX_ERROR_MESSAGE_LENGTH = 500


class MealPlanJobErrorCode(str, Enum):
    """Structured error codes surfaced to callers of the job services."""

    AUTH_ERROR = "AUTH_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DB_ERROR = "DB_ERROR"
    NOT_FOUND_OR_LOCK_MISMATCH = "NOT_FOUND_OR_LOCK_MISMATCH"
    INVALID_STATE = "MEAL_PLAN_JOB_INVALID_STATE"
    JOB_RUN_FAILED = "JOB_RUN_FAILED"


class MealPlanJobError(Exception):
    """A job operation could not be carried out.

    Lost claim races are not errors; claims return None for those.
    """

    def __init__(
        self,
        code: MealPlanJobErrorCode,
        message: str,
        cause_code: str | None = None,
    ):
        self.code = code
        self.message = message
        # Code recorded on the job when a generation failed (e.g. the plan builder's)
        self.cause_code = cause_code
        super().__init__(message)

    def __repr__(self) -> str:
        return f"MealPlanJobError({self.code.value}, {self.message!r})"


def truncate_error(code: str, message: str) -> tuple[str, str]:
    """Bound an error code/message pair to the job table's column sizes."""
    return (
        (code or "UNKNOWN")[:MAX_ERROR_CODE_LENGTH],
        (message or "Unknown error")[:MAX_ERROR_MESSAGE_LENGTH],
    )


@asynccontextmanager
async def storage_errors(db: AsyncSession, action: str) -> AsyncIterator[None]:
    """Roll back and re-raise database failures as DB_ERROR."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"[meal-plan-jobs] Database error while trying to {action}: {e}")
        await db.rollback()
        raise MealPlanJobError(MealPlanJobErrorCode.DB_ERROR, f"Could not {action}") from e
