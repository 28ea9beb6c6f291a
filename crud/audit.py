"""
Insert-only repositories for the upgrade audit log and payment references.
"""

from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from database_models import Payment, Upgrade


class UpgradeRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, data: dict) -> Upgrade:
        row = Upgrade(
            user_id=data["user_id"],
            from_role=data["from_role"],
            to_role=data["to_role"],
            status=data.get("status"),
            reason=data.get("reason"),
            plan=data.get("plan"),
            payment_id=data.get("payment_id"),
            effective_at=data.get("effective_at"),
            expires_at=data.get("expires_at"),
            created_at=data["created_at"],
            meta=data.get("meta"),
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Upgrade]:
        result = await self.db.execute(
            select(Upgrade)
            .where(Upgrade.user_id == user_id)
            .order_by(Upgrade.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class PaymentRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, data: dict) -> Payment:
        payment = Payment(
            user_id=data["user_id"],
            amount=data["amount"],
            currency=data.get("currency", "USD"),
            status=data.get("status", "completed"),
            provider=data.get("provider"),
            created_at=data["created_at"],
        )
        self.db.add(payment)
        await self.db.flush()
        return payment
