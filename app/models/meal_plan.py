"""MealPlan model.

Only the columns draft promotion reads and writes are mapped here; the
plan contents themselves are owned by the plan builder service.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Column, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, UserOwnedMixin, UUIDMixin


class MealPlanStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class MealPlan(UUIDMixin, UserOwnedMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "meal_plans"

    status: str | None = Field(default=None, max_length=20)
    plan_snapshot: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSONB, nullable=True),
    )
    draft_plan_snapshot: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSONB, nullable=True),
    )
    draft_created_at: datetime | None = Field(  # type: ignore[call-overload]
        default=None,
        sa_type=DateTime(timezone=True),
    )
