from typing import Optional

from pydantic import BaseModel

from workshop_portal.services.notifications import NotificationRecord


class NotificationListResponse(BaseModel):
    items: list[NotificationRecord]
    total: int
    limit: int
    offset: int


class NotificationStats(BaseModel):
    total: int = 0
    unread: int = 0


class ReadAllResponse(BaseModel):
    success: bool = True
    count: int = 0


class ReadResponse(BaseModel):
    success: bool = True
    notification_id: Optional[str] = None
