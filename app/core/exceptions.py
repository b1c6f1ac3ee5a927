from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.services.meal_plan_jobs.errors import MealPlanJobError, MealPlanJobErrorCode


class AuthenticationError(HTTPException):
    """Raised when the bearer token is missing or cannot be validated."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": MealPlanJobErrorCode.AUTH_ERROR.value, "message": message},
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(HTTPException):
    """Raised when the caller lacks permission to access a resource."""

    def __init__(self, message: str = "Not authorized to access this resource"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=message,
        )


class ServiceUnavailableError(HTTPException):
    """Raised when a required piece of configuration or infrastructure is missing."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=message,
        )


# HTTP status per job error code
JOB_ERROR_STATUS: dict[MealPlanJobErrorCode, int] = {
    MealPlanJobErrorCode.AUTH_ERROR: status.HTTP_401_UNAUTHORIZED,
    MealPlanJobErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    MealPlanJobErrorCode.DB_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    MealPlanJobErrorCode.NOT_FOUND_OR_LOCK_MISMATCH: status.HTTP_409_CONFLICT,
    MealPlanJobErrorCode.INVALID_STATE: status.HTTP_409_CONFLICT,
    MealPlanJobErrorCode.JOB_RUN_FAILED: status.HTTP_502_BAD_GATEWAY,
}


async def meal_plan_job_error_handler(_request: Request, exc: MealPlanJobError) -> JSONResponse:
    """Render a MealPlanJobError as a structured error body."""
    return JSONResponse(
        status_code=JOB_ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={"ok": False, "error": {"code": exc.code.value, "message": exc.message}},
    )
