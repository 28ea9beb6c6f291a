"""
Notifier - persists user-visible plan notifications.

Business-level deduplication (same expiry window, same day) is decided by the
callers; this service only offers the lookups they need.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crud.notification import NotificationRepository
from database_models import Notification
from services.plans import PLAN_LIFETIME
from utils.clock import Clock, resolve_clock

logger = logging.getLogger(__name__)

NOTIFY_PLAN_EXPIRED = "plan-expired"
NOTIFY_PLAN_EXPIRING = "plan-expiring"
NOTIFY_PLAN_RENEWED = "plan-renewed"


class Notifier:

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = resolve_clock(clock)
        self.repo = NotificationRepository(db)

    async def notify(
        self,
        user_id: str,
        type_: str,
        title: str,
        message: str,
        meta: Optional[Dict[str, Any]] = None,
        now: Optional[int] = None,
    ) -> Notification:
        notification = await self.repo.insert({
            "user_id": user_id,
            "type": type_,
            "title": title,
            "message": message,
            "meta": meta or {},
            "created_at": now if now is not None else self.clock.now_ms(),
        })
        logger.info(f"Notification '{type_}' stored for user {user_id}")
        return notification

    async def has_recent(self, user_id: str, type_: str, since: int) -> bool:
        return await self.repo.find_since(user_id, type_, since) is not None

    async def notify_once(
        self,
        user_id: str,
        type_: str,
        title: str,
        message: str,
        meta: Optional[Dict[str, Any]] = None,
        window_ms: int = 10 * 60 * 1000,
        now: Optional[int] = None,
    ) -> Optional[Notification]:
        """
        Insert unless a notification of the same type was created within `window_ms`.
        Returns None when skipped.
        """
        if now is None:
            now = self.clock.now_ms()
        since = now - window_ms
        if await self.has_recent(user_id, type_, since):
            logger.debug(f"Skipping duplicate '{type_}' notification for user {user_id}")
            return None
        return await self.notify(user_id, type_, title, message, meta, now=now)

    async def recent_for_user(self, user_id: str, limit: int) -> List[Notification]:
        return await self.repo.recent_for_user(user_id, limit)

    # Plan-specific messages

    async def plan_expired(
        self,
        user_id: str,
        window_ms: int,
        meta: Optional[dict] = None,
        now: Optional[int] = None,
    ):
        return await self.notify_once(
            user_id,
            NOTIFY_PLAN_EXPIRED,
            "Your Premium has ended",
            "Your account is now on the Free plan. You can reactivate any time.",
            meta=meta,
            window_ms=window_ms,
            now=now,
        )

    async def plan_expiring(self, user_id: str, expires_at: int, days: int) -> Notification:
        if days == 0:
            message = "Your subscription expires today."
        else:
            message = f"Your subscription expires in {days} day{'' if days == 1 else 's'}."
        return await self.notify(
            user_id,
            NOTIFY_PLAN_EXPIRING,
            "Your plan is about to expire",
            message,
            meta={"expiresAt": expires_at, "days": days},
        )

    async def plan_renewed(
        self,
        user_id: str,
        subscription_id: str,
        plan: str,
        new_expires_at: Optional[int],
    ) -> Notification:
        if plan == PLAN_LIFETIME:
            message = "Your Lifetime plan is now permanently active."
        else:
            message = "Your subscription was renewed successfully."
        return await self.notify(
            user_id,
            NOTIFY_PLAN_RENEWED,
            "Subscription renewed!",
            message,
            meta={"subscriptionId": subscription_id, "plan": plan, "newExpiresAt": new_expires_at},
        )
