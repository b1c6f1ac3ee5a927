"""Best-effort inbox notifications for job outcomes.

A notification failure must never change a job's outcome, so each insert
runs inside a SAVEPOINT and any error is logged and dropped.
"""

import logging
import uuid as uuid_pkg
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.notification_operations import notification_ops
from app.models.inbox_notification import NotificationType

logger = logging.getLogger(__name__)

READY_TITLE = "Nieuw weekmenu klaar (concept)"
READY_MESSAGE = "Je nieuwe weekmenu staat klaar als concept. Bekijk en bevestig het."
FAILED_TITLE = "Weekmenu generatie mislukt"
FAILED_MESSAGE = "Het automatisch genereren van je weekmenu is mislukt. Probeer het opnieuw."


async def notify(
    db: AsyncSession,
    user_id: uuid_pkg.UUID,
    type: NotificationType,
    title: str,
    message: str,
    details: dict[str, Any],
) -> bool:
    """Insert an inbox notification. Returns False (never raises) on failure."""
    try:
        async with db.begin_nested():
            await notification_ops.create(
                db,
                user_id=user_id,
                type=type.value,
                title=title,
                message=message,
                details=details,
            )
        await db.commit()
        return True
    except Exception as e:
        logger.warning(f"[meal-plan-jobs] Notification {type.value} for user {user_id} not sent: {e}")
        return False


async def notify_plan_ready(
    db: AsyncSession,
    user_id: uuid_pkg.UUID,
    plan_id: uuid_pkg.UUID,
    job_id: uuid_pkg.UUID,
) -> bool:
    return await notify(
        db,
        user_id,
        NotificationType.MEAL_PLAN_READY_FOR_REVIEW,
        READY_TITLE,
        READY_MESSAGE,
        {"planId": str(plan_id), "runId": str(job_id)},
    )


async def notify_generation_failed(
    db: AsyncSession,
    user_id: uuid_pkg.UUID,
    job_id: uuid_pkg.UUID,
    error_code: str,
) -> bool:
    return await notify(
        db,
        user_id,
        NotificationType.MEAL_PLAN_GENERATION_FAILED,
        FAILED_TITLE,
        FAILED_MESSAGE,
        {"runId": str(job_id), "errorCode": error_code},
    )
