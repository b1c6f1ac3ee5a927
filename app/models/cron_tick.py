"""CronTick model: audit log of cron-triggered job runs."""

import uuid as uuid_pkg
from datetime import datetime

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel

from app.models.base import UUIDMixin, utc_now


class CronTick(UUIDMixin, SQLModel, table=True):
    __tablename__ = "cron_ticks"
    __table_args__ = (Index("ix_cron_ticks_name_created", "cron_name", "created_at"),)

    cron_name: str = Field(max_length=64, nullable=False)
    status: str = Field(max_length=10, nullable=False)  # 'ok', 'error'
    outcome: str | None = Field(default=None, max_length=32)
    job_id: uuid_pkg.UUID | None = Field(default=None)
    user_id: uuid_pkg.UUID | None = Field(default=None)
    meal_plan_id: uuid_pkg.UUID | None = Field(default=None)
    error_code: str | None = Field(default=None, max_length=64)

    created_at: datetime = Field(  # type: ignore[call-overload]
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"server_default": text("now()")},
    )
