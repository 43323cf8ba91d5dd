"""In-app notifications."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from sables.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify_users(
        self,
        user_ids: list[int],
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.SYSTEM,
        related_document_id: str | None = None,
        related_event_id: int | None = None,
    ) -> list[Notification]:
        """Create one notification per user, skipping repeated IDs."""
        notifications = [
            Notification(
                user_id=user_id,
                notification_type=notification_type,
                title=title,
                message=message,
                related_document_id=related_document_id,
                related_event_id=related_event_id,
            )
            for user_id in dict.fromkeys(user_ids)
        ]
        self.db.add_all(notifications)
        await self.db.commit()
        logger.info(f"Created {len(notifications)} notifications: {title}")
        return notifications
