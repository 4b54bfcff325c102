"""Notifications API - the caller's own notifications and read toggles."""

from fastapi import APIRouter, Query
from sqlalchemy import select, func, and_, update

from workshop_portal.api.deps import CurrentUser, DbSession, Feed
from workshop_portal.exceptions import NotFoundError
from workshop_portal.models.notification import Notification
from workshop_portal.schemas.notification import (
    NotificationListResponse,
    NotificationStats,
    ReadAllResponse,
    ReadResponse,
)
from workshop_portal.services.notifications import NotificationRecord
from workshop_portal.utils.timestamps import utcnow

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    current_user: CurrentUser,
    db: DbSession,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
):
    """List notifications for the current user, newest first."""
    query = select(Notification).where(Notification.user_id == current_user.id)

    if unread_only:
        query = query.where(Notification.read == False)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar() or 0

    query = query.order_by(Notification.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(query)

    return NotificationListResponse(
        items=[NotificationRecord.model_validate(n) for n in result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=NotificationStats)
async def get_notification_stats(current_user: CurrentUser, db: DbSession):
    """Total and unread counts for the bell badge."""
    total_result = await db.execute(
        select(func.count(Notification.id)).where(Notification.user_id == current_user.id)
    )
    unread_result = await db.execute(
        select(func.count(Notification.id)).where(
            and_(Notification.user_id == current_user.id, Notification.read == False)
        )
    )
    return NotificationStats(total=total_result.scalar() or 0, unread=unread_result.scalar() or 0)


@router.post("/{notification_id}/read", response_model=ReadResponse)
async def mark_notification_read(
    notification_id: str,
    current_user: CurrentUser,
    db: DbSession,
    feed: Feed,
):
    result = await db.execute(
        select(Notification).where(
            and_(Notification.id == notification_id, Notification.user_id == current_user.id)
        )
    )
    notification = result.scalar_one_or_none()

    if not notification:
        raise NotFoundError("Notification", notification_id)

    if not notification.read:
        notification.read = True
        notification.read_at = utcnow()
        await db.commit()
        await feed.publish("notification", notification_id, "read", user_id=current_user.id)

    return ReadResponse(notification_id=notification_id)


@router.post("/read-all", response_model=ReadAllResponse)
async def mark_all_notifications_read(
    current_user: CurrentUser,
    db: DbSession,
    feed: Feed,
):
    result = await db.execute(
        update(Notification)
        .where(and_(Notification.user_id == current_user.id, Notification.read == False))
        .values(read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0
    await db.commit()

    if count:
        await feed.publish("notification", "*", "read", user_id=current_user.id)
    return ReadAllResponse(count=count)
