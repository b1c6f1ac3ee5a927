import logging
import uuid as uuid_pkg
from datetime import datetime
from typing import cast

from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.meal_plan import MealPlan, MealPlanStatus

logger = logging.getLogger(__name__)


class DraftPromotionError(Exception):
    """A generated plan could not be moved into draft review."""


class MealPlanOperations:
    """Operations for MealPlan model (draft promotion only)."""

    async def get_by_id(
        self,
        db: AsyncSession,
        plan_id: uuid_pkg.UUID,
    ) -> MealPlan | None:
        statement = (
            select(MealPlan)
            .where(MealPlan.id == plan_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def ensure_draft(
        self,
        db: AsyncSession,
        plan_id: uuid_pkg.UUID,
        user_id: uuid_pkg.UUID,
        now: datetime,
    ) -> bool:
        """Put a freshly generated plan into draft review.

        Copies plan_snapshot into draft_plan_snapshot and marks the plan
        as draft. A plan that already is a draft with a snapshot is left
        alone. Returns True when a row was updated.

        Raises:
            DraftPromotionError: The plan is missing, belongs to another
                user, or has no plan_snapshot to copy.
        """
        plan = await self.get_by_id(db, plan_id)
        if plan is None or plan.user_id != user_id:
            raise DraftPromotionError(f"Meal plan {plan_id} not found")
        if plan.plan_snapshot is None:
            raise DraftPromotionError(f"Meal plan {plan_id} has no snapshot")
        if plan.status == MealPlanStatus.DRAFT.value and plan.draft_plan_snapshot is not None:
            return False

        stmt = (
            update(MealPlan)
            .where(MealPlan.id == plan_id)  # type: ignore[arg-type]
            .where(
                (MealPlan.status != MealPlanStatus.DRAFT.value)  # type: ignore[arg-type]
                | (MealPlan.status.is_(None))  # type: ignore[union-attr]
                | (MealPlan.draft_plan_snapshot.is_(None))  # type: ignore[union-attr]
            )
            .values(
                status=MealPlanStatus.DRAFT.value,
                draft_plan_snapshot=MealPlan.plan_snapshot,
                draft_created_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        promoted = cast(CursorResult[tuple[()]], result).rowcount > 0
        if promoted:
            logger.info(f"Meal plan {plan_id} promoted to draft")
        return promoted


meal_plan_ops = MealPlanOperations()
