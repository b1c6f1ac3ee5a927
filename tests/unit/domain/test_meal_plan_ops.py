"""Unit tests for MealPlanOperations: draft promotion of generated plans."""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.dialects import postgresql

from app.domain.meal_plan_operations import DraftPromotionError, MealPlanOperations

from tests.helpers.mock_factories import make_mock_meal_plan, mock_rowcount_result

NOW = datetime(2026, 10, 28, 8, 0, tzinfo=UTC)


class TestEnsureDraft:
    def setup_method(self):
        self.ops = MealPlanOperations()
        self.db = AsyncMock()
        self.user_id = uuid.uuid4()
        self.plan_id = uuid.uuid4()

    @pytest.mark.asyncio
    @patch.object(MealPlanOperations, "get_by_id")
    async def test_missing_plan(self, mock_get):
        mock_get.return_value = None

        with pytest.raises(DraftPromotionError):
            await self.ops.ensure_draft(self.db, self.plan_id, self.user_id, NOW)

    @pytest.mark.asyncio
    @patch.object(MealPlanOperations, "get_by_id")
    async def test_other_users_plan(self, mock_get):
        mock_get.return_value = make_mock_meal_plan(id=self.plan_id, user_id=uuid.uuid4())

        with pytest.raises(DraftPromotionError):
            await self.ops.ensure_draft(self.db, self.plan_id, self.user_id, NOW)
        self.db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    @patch.object(MealPlanOperations, "get_by_id")
    async def test_plan_without_snapshot(self, mock_get):
        mock_get.return_value = make_mock_meal_plan(
            id=self.plan_id, user_id=self.user_id, plan_snapshot=None
        )

        with pytest.raises(DraftPromotionError, match="no snapshot"):
            await self.ops.ensure_draft(self.db, self.plan_id, self.user_id, NOW)

    @pytest.mark.asyncio
    @patch.object(MealPlanOperations, "get_by_id")
    async def test_existing_draft_is_left_alone(self, mock_get):
        mock_get.return_value = make_mock_meal_plan(
            id=self.plan_id,
            user_id=self.user_id,
            status="draft",
            draft_plan_snapshot={"days": []},
        )

        assert await self.ops.ensure_draft(self.db, self.plan_id, self.user_id, NOW) is False
        self.db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    @patch.object(MealPlanOperations, "get_by_id")
    async def test_promotes_active_plan(self, mock_get):
        mock_get.return_value = make_mock_meal_plan(id=self.plan_id, user_id=self.user_id)
        self.db.execute.return_value = mock_rowcount_result(1)

        assert await self.ops.ensure_draft(self.db, self.plan_id, self.user_id, NOW) is True

        sql = str(self.db.execute.await_args.args[0].compile(dialect=postgresql.dialect()))
        assert "UPDATE meal_plans" in sql
        assert "draft_plan_snapshot=meal_plans.plan_snapshot" in sql

    @pytest.mark.asyncio
    @patch.object(MealPlanOperations, "get_by_id")
    async def test_concurrent_promotion_updates_nothing(self, mock_get):
        mock_get.return_value = make_mock_meal_plan(id=self.plan_id, user_id=self.user_id)
        self.db.execute.return_value = mock_rowcount_result(0)

        assert await self.ops.ensure_draft(self.db, self.plan_id, self.user_id, NOW) is False
