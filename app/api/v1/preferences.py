import logging

from fastapi import APIRouter

from app.api.deps import CurrentUser, RlsDbSession
from app.domain.preferences_operations import preferences_ops
from app.schemas.meal_plan_jobs import (
    MealPlanScheduleRead,
    MealPlanScheduleUpdate,
    MealPlanScheduleUpdateResponse,
)
from app.services.meal_plan_jobs import MealPlanJobError, schedule_next_run
from app.services.meal_plan_jobs.next_run import resolve_schedule_preferences

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users/me/meal-plan-schedule", tags=["preferences"])

SCHEDULE_WARNING = "Voorkeuren opgeslagen, maar het weekmenu kon niet worden ingepland."


@router.get("", response_model=MealPlanScheduleRead)
async def get_meal_plan_schedule(
    db: RlsDbSession,
    current_user: CurrentUser,
):
    """Get the current user's schedule preferences (defaults when unset)."""
    prefs = await preferences_ops.get_by_user_id(db, current_user.id)
    resolved = resolve_schedule_preferences(prefs)
    return MealPlanScheduleRead(
        shopping_day=resolved.shopping_day,
        meal_plan_lead_time_hours=resolved.lead_time_hours,
        diet_key=resolved.diet_key,
        favorite_meal_ids=list(prefs.favorite_meal_ids or []) if prefs else [],
    )


@router.put("", response_model=MealPlanScheduleUpdateResponse)
async def update_meal_plan_schedule(
    data: MealPlanScheduleUpdate,
    db: RlsDbSession,
    current_user: CurrentUser,
):
    """
    Save schedule preferences and reschedule next week's job.

    Saving always wins: a failed reschedule is reported through
    ``scheduled``/``schedule_warning`` instead of an error response.
    """
    prefs = await preferences_ops.upsert_schedule(
        db, current_user.id, data.model_dump(exclude_unset=True)
    )
    await db.commit()
    resolved = resolve_schedule_preferences(prefs)

    job = None
    warning = None
    try:
        job = await schedule_next_run(db, current_user.id)
    except MealPlanJobError as e:
        logger.warning(f"[meal-plan-jobs] Reschedule after preference update failed: {e.code.value}")
        warning = SCHEDULE_WARNING

    return MealPlanScheduleUpdateResponse(
        shopping_day=resolved.shopping_day,
        meal_plan_lead_time_hours=resolved.lead_time_hours,
        diet_key=resolved.diet_key,
        favorite_meal_ids=list(prefs.favorite_meal_ids or []),
        scheduled=job is not None,
        schedule_warning=warning,
        job=job,
    )
