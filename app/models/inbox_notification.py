"""In-app inbox notifications shown to the user."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Column, DateTime, Index, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.models.base import UserOwnedMixin, UUIDMixin, utc_now


class NotificationType(str, Enum):
    MEAL_PLAN_READY_FOR_REVIEW = "meal_plan_ready_for_review"
    MEAL_PLAN_GENERATION_FAILED = "meal_plan_generation_failed"


class InboxNotification(UUIDMixin, UserOwnedMixin, SQLModel, table=True):
    __tablename__ = "user_inbox_notifications"
    __table_args__ = (
        Index("ix_user_inbox_notifications_user_created", "user_id", "created_at"),
    )

    type: str = Field(max_length=64, nullable=False)
    title: str = Field(max_length=120, nullable=False)
    message: str = Field(max_length=500, nullable=False)
    # Identifiers only (planId, runId, errorCode); never personal data
    details: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False, server_default=text("'{}'::jsonb")),
    )
    is_read: bool = Field(default=False, nullable=False)

    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()")},
    )
