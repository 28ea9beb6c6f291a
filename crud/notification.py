"""
NotificationRepository. All lookups go through the (user_id, created_at) index.
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, update

from database_models import Notification


class NotificationRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, notification_id: str) -> Optional[Notification]:
        return await self.db.get(Notification, notification_id)

    async def insert(self, data: dict) -> Notification:
        notification = Notification(
            user_id=data["user_id"],
            type=data["type"],
            title=data["title"],
            message=data["message"],
            is_read=False,
            created_at=data["created_at"],
            meta=data.get("meta") or {},
        )
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def recent_for_user(self, user_id: str, limit: int) -> List[Notification]:
        """Newest first."""
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_since(self, user_id: str, type_: str, since: int) -> Optional[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.created_at >= since,
                Notification.type == type_,
            )
            .order_by(Notification.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_unread(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
        return int(result.scalar_one())

    async def mark_read(self, notification: Notification, now: int) -> Notification:
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = now
            await self.db.flush()
        return notification

    async def mark_all_read(self, user_id: str, now: int) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=now)
        )
        return result.rowcount or 0
