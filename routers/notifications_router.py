from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crud.notification import NotificationRepository
from database import get_db
from utils.clock import system_clock
from utils.responses import error_response, success_response

notifications_router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _serialize(notification):
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "is_read": notification.is_read,
        "read_at": notification.read_at,
        "created_at": notification.created_at,
        "meta": notification.meta,
    }


@notifications_router.get("/{user_id}")
async def list_notifications(
    user_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    rows = await NotificationRepository(db).recent_for_user(user_id, limit)
    return success_response([_serialize(row) for row in rows])


@notifications_router.get("/{user_id}/unread-count")
async def unread_count(user_id: str, db: AsyncSession = Depends(get_db)):
    count = await NotificationRepository(db).count_unread(user_id)
    return success_response({"unread": count})


@notifications_router.post("/{notification_id}/read")
async def mark_read(notification_id: str, db: AsyncSession = Depends(get_db)):
    repo = NotificationRepository(db)
    notification = await repo.get(notification_id)
    if notification is None:
        return error_response("notification_not_found", message="Notification not found")
    await repo.mark_read(notification, system_clock.now_ms())
    return success_response(_serialize(notification))


@notifications_router.post("/{user_id}/read-all")
async def mark_all_read(user_id: str, db: AsyncSession = Depends(get_db)):
    updated = await NotificationRepository(db).mark_all_read(user_id, system_clock.now_ms())
    return success_response({"updated": updated})
