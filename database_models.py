import uuid

from sqlalchemy import Column, String, Boolean, BigInteger, Integer, Float, JSON, Index

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    """
    One row per user. Premium-* columns are a denormalized projection of the
    subscription ledger, kept in sync by the lifecycle service and the sweeper.
    """
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    role = Column(String(16), nullable=False, default="free")
    premium_plan = Column(String(16), nullable=True)
    premium_expires_at = Column(BigInteger, nullable=True)
    premium_auto_renew = Column(Boolean, nullable=True)
    trial_ends_at = Column(BigInteger, nullable=True)
    free_trial_used = Column(Boolean, nullable=False, default=False)
    created_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_profiles_role_id", "role", "id"),
    )


class Subscription(Base):
    """
    Historical ledger: one row per contiguous paid (or trial) period.
    """
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False)
    plan = Column(String(16), nullable=False)
    start_at = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=True)  # None only for lifetime
    status = Column(String(16), nullable=False, default="active")
    auto_renew = Column(Boolean, nullable=False, default=True)
    payment_id = Column(String(36), nullable=True)
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=True)

    __table_args__ = (
        Index("ix_subscriptions_expires_at", "expires_at"),
        Index("ix_subscriptions_user_status", "user_id", "status"),
        Index("ix_subscriptions_user_start", "user_id", "start_at"),
    )


class Payment(Base):
    """Payment reference recorded after capture (capture itself happens elsewhere)."""
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    status = Column(String(16), nullable=False, default="completed")
    provider = Column(String(32), nullable=True)
    created_at = Column(BigInteger, nullable=False)


class Upgrade(Base):
    """Append-only audit log of role and auto-renew changes."""
    __tablename__ = "upgrades"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False)
    from_role = Column(String(16), nullable=False)
    to_role = Column(String(16), nullable=False)
    status = Column(String(32), nullable=True)
    reason = Column(String, nullable=True)
    plan = Column(String(16), nullable=True)
    payment_id = Column(String(36), nullable=True)
    effective_at = Column(BigInteger, nullable=True)
    expires_at = Column(BigInteger, nullable=True)
    created_at = Column(BigInteger, nullable=False)
    meta = Column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_upgrades_user_created", "user_id", "created_at"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), nullable=False)
    type = Column(String(32), nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(BigInteger, nullable=True)
    created_at = Column(BigInteger, nullable=False)
    meta = Column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_is_read", "user_id", "is_read"),
    )


class ScheduledJob(Base):
    """
    Persistent one-shot job: run `operation` with `payload` at or after `run_at`.
    """
    __tablename__ = "scheduled_jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    operation = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    run_at = Column(BigInteger, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String, nullable=True)
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=True)

    __table_args__ = (
        Index("ix_scheduled_jobs_status_run_at", "status", "run_at"),
    )
