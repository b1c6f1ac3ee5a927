import uuid as uuid_pkg
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.inbox_notification import InboxNotification


class NotificationOperations:
    """Operations for InboxNotification model."""

    async def create(
        self,
        db: AsyncSession,
        user_id: uuid_pkg.UUID,
        type: str,
        title: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> InboxNotification:
        notification = InboxNotification(
            user_id=user_id,
            type=type,
            title=title[:120],
            message=message[:500],
            details=details or {},
        )
        db.add(notification)
        await db.flush()
        return notification


notification_ops = NotificationOperations()
