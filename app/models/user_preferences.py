import uuid as uuid_pkg
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlmodel import Field, Relationship, SQLModel

from app.models.base import utc_now

if TYPE_CHECKING:
    from app.models.user import User

# Allowed lead times between plan generation and the shopping moment
LEAD_TIME_HOURS_OPTIONS = (24, 48, 72)
MAX_FAVORITE_MEALS = 10


class UserPreferences(SQLModel, table=True):
    """
    Meal planning preferences for a user.

    One-to-one relationship with User. Created on first update; a missing
    row means the scheduler falls back to its configured defaults.
    """

    __tablename__ = "user_preferences"
    __table_args__ = (
        CheckConstraint(
            "shopping_day IS NULL OR shopping_day BETWEEN 0 AND 6",
            name="ck_user_preferences_shopping_day",
        ),
        CheckConstraint(
            "meal_plan_lead_time_hours IS NULL OR meal_plan_lead_time_hours IN (24, 48, 72)",
            name="ck_user_preferences_lead_time",
        ),
    )

    user_id: uuid_pkg.UUID = Field(
        sa_column=Column(
            PG_UUID(as_uuid=True),
            ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
            nullable=False,
        ),
    )

    # Shopping schedule (0=Sunday … 6=Saturday)
    shopping_day: int | None = Field(default=None)
    meal_plan_lead_time_hours: int | None = Field(default=None)

    # Diet profile key passed through to the plan builder
    diet_key: str | None = Field(default=None, max_length=64)
    favorite_meal_ids: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSONB, nullable=False, server_default=text("'[]'::jsonb")),
    )

    # Timestamps
    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()")},
    )
    updated_at: datetime | None = Field(  # type: ignore[call-overload]
        default=None,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": text("now()")},
    )

    # Relationships
    user: Optional["User"] = Relationship(back_populates="preferences")
