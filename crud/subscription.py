"""
SubscriptionRepository: the subscription ledger. Rows are terminated, never deleted.
"""

from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from database_models import Subscription
from services.plans import STATUS_ACTIVE, STATUS_CANCELED, STATUS_EXPIRED

# active is the only non-terminal status
_ALLOWED_TRANSITIONS = {
    STATUS_ACTIVE: {STATUS_EXPIRED, STATUS_CANCELED},
}


class InvalidStatusTransition(ValueError):
    pass


class SubscriptionRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, subscription_id: str) -> Optional[Subscription]:
        return await self.db.get(Subscription, subscription_id)

    async def insert(self, data: dict) -> Subscription:
        """
        Insert a new ledger row. `data` must carry user_id, plan, start_at and
        created_at; status defaults to active.
        """
        sub = Subscription(
            user_id=data["user_id"],
            plan=data["plan"],
            start_at=data["start_at"],
            expires_at=data.get("expires_at"),
            status=data.get("status", STATUS_ACTIVE),
            auto_renew=data.get("auto_renew", True),
            payment_id=data.get("payment_id"),
            created_at=data["created_at"],
            updated_at=data.get("updated_at"),
        )
        self.db.add(sub)
        await self.db.flush()
        return sub

    async def patch(self, sub: Subscription, updates: dict) -> Subscription:
        for key, value in updates.items():
            if hasattr(sub, key):
                setattr(sub, key, value)
        await self.db.flush()
        return sub

    async def patch_status(self, sub: Subscription, status: str, now: int) -> Subscription:
        """Move a row to a terminal status. Only active rows may change status."""
        if status not in _ALLOWED_TRANSITIONS.get(sub.status, set()):
            raise InvalidStatusTransition(f"Subscription {sub.id}: {sub.status} -> {status} is not allowed")
        return await self.patch(sub, {"status": status, "updated_at": now})

    async def list_active_for_user(self, user_id: str, limit: Optional[int] = None) -> List[Subscription]:
        stmt = select(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.status == STATUS_ACTIVE,
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def has_active(self, user_id: str) -> bool:
        return bool(await self.list_active_for_user(user_id, limit=1))

    async def latest_for_user(self, user_id: str, statuses: Sequence[str]) -> Optional[Subscription]:
        """Most recent row by start_at among the given statuses."""
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id, Subscription.status.in_(list(statuses)))
            .order_by(Subscription.start_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_active_by_expiry(self, user_id: str, expires_at: int) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.status == STATUS_ACTIVE,
                Subscription.expires_at == expires_at,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_expired(self, now: int, cursor: Optional[int], limit: int) -> List[Subscription]:
        """
        Range scan over the expires_at index: rows with cursor < expires_at <= now,
        ascending. Rows with no expiry (lifetime) never match.
        """
        stmt = select(Subscription).where(Subscription.expires_at <= now)
        if cursor is not None:
            stmt = stmt.where(Subscription.expires_at > cursor)
        stmt = stmt.order_by(Subscription.expires_at.asc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
