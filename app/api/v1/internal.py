"""Internal API endpoints, protected by shared secret rather than user auth.

These endpoints are called by cron jobs / external schedulers, not by
human users. They bypass Supabase JWT auth and instead validate a
shared secret via the X-Cron-Secret header.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.core.database import get_direct_db
from app.core.exceptions import ForbiddenError, ServiceUnavailableError
from app.domain.cron_tick_operations import cron_tick_ops
from app.schemas.meal_plan_jobs import RunOutcome
from app.services.meal_plan_jobs import MealPlanJobError, run_one_due_job_privileged

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])

MEAL_PLAN_JOBS_CRON = "meal_plan_jobs"


def _verify_cron_secret(x_cron_secret: str | None) -> None:
    """Validate the X-Cron-Secret header against the configured secret."""
    if not settings.cron_secret:
        raise ServiceUnavailableError("Cron secret not configured")
    if x_cron_secret != settings.cron_secret:
        raise ForbiddenError("Invalid cron secret")


async def _record_tick(db: AsyncSession, tick_status: str, **fields: Any) -> None:
    """Write a cron_ticks audit row; failures are logged and ignored."""
    try:
        await cron_tick_ops.record(db, cron_name=MEAL_PLAN_JOBS_CRON, status=tick_status, **fields)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(f"[cron] Could not record {MEAL_PLAN_JOBS_CRON} tick: {e}")


@router.post("/cron/meal-plan-jobs", response_model=RunOutcome)
async def trigger_meal_plan_jobs(
    x_cron_secret: str | None = Header(default=None),
    db: AsyncSession = Depends(get_direct_db),
) -> Any:
    """
    Run at most one due meal plan job across all users.

    Protected by X-Cron-Secret header. Called by external cron every few
    minutes; each call is recorded in cron_ticks.
    """
    _verify_cron_secret(x_cron_secret)

    try:
        outcome = await run_one_due_job_privileged(db)
    except MealPlanJobError as e:
        logger.error(f"[cron] {MEAL_PLAN_JOBS_CRON} tick failed: {e.code.value}")
        await _record_tick(db, "error", error_code=e.code.value)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "error": {"code": e.code.value, "message": e.message}},
        )

    await _record_tick(
        db,
        "ok",
        outcome=outcome.outcome,
        job_id=outcome.job_id,
        user_id=outcome.user_id,
        meal_plan_id=outcome.meal_plan_id,
        error_code=outcome.error_code,
    )
    return outcome
