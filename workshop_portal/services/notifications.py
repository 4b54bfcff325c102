"""
Notification sinks.

The inventory service hands notifications to a sink after its write has
committed. The SQL sink persists Notification rows; the memory sink keeps
them in a list for tests.
"""

from typing import Optional, Protocol
import logging

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from workshop_portal.services.change_feed import ChangeFeed
from workshop_portal.services.inventory.types import NotificationType, UTCDateTime
from workshop_portal.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class NotificationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: int
    type: NotificationType
    title: str
    message: str
    read: bool = False
    read_at: Optional[UTCDateTime] = None
    extra_data: Optional[dict] = Field(default=None, serialization_alias="metadata")
    created_at: Optional[UTCDateTime] = None


class NotificationSink(Protocol):
    async def notify(
        self,
        user_id: int,
        type: NotificationType,
        title: str,
        message: str,
        metadata: Optional[dict] = None,
    ) -> NotificationRecord: ...


class MemoryNotificationSink:
    def __init__(self):
        self.sent: list[NotificationRecord] = []

    async def notify(self, user_id, type, title, message, metadata=None) -> NotificationRecord:
        record = NotificationRecord(
            id=str(len(self.sent) + 1),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            extra_data=metadata,
            created_at=utcnow(),
        )
        self.sent.append(record)
        return record

    def for_user(self, user_id: int) -> list[NotificationRecord]:
        return [record for record in self.sent if record.user_id == user_id]


class SqlNotificationSink:
    """Writes Notification rows in their own commit and announces them on the change feed."""

    def __init__(self, session: AsyncSession, feed: Optional[ChangeFeed] = None):
        self.session = session
        self.feed = feed

    async def notify(self, user_id, type, title, message, metadata=None) -> NotificationRecord:
        from workshop_portal.models.notification import Notification

        notification = Notification(
            user_id=user_id,
            type=NotificationType(type).value,
            title=title,
            message=message,
            extra_data=metadata,
            read=False,
            created_at=utcnow(),
        )
        self.session.add(notification)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        record = NotificationRecord.model_validate(notification)
        logger.info(
            f"Notification {record.type.value} sent to user {user_id}",
            extra={"user_id": user_id, "notification_type": record.type.value},
        )
        if self.feed is not None:
            await self.feed.publish("notification", record.id, "created", user_id=user_id)
        return record
