from typing import List, Literal, Optional
from pydantic import BaseModel, Field

PlanName = Literal["monthly", "quarterly", "annual", "lifetime"]


# Request bodies

class UpgradeRequest(BaseModel):
    user_id: str
    to_role: Literal["premium", "free"]
    plan: Optional[PlanName] = None
    trial: bool = False
    payment_id: Optional[str] = None


class CompleteTrialRequest(BaseModel):
    user_id: str
    plan: str
    trial_ends_at: int
    subscription_id: Optional[str] = None


class CancelRequest(BaseModel):
    user_id: str
    reason: Optional[str] = None


class AutoRenewRequest(BaseModel):
    user_id: str
    auto_renew: bool
    reason: Optional[str] = None


class UserRequest(BaseModel):
    user_id: str


class SweepRequest(BaseModel):
    batch_size: Optional[int] = Field(default=None, gt=0)
    now: Optional[int] = None
    cursor: Optional[int] = None


class RemindersRequest(BaseModel):
    days: Optional[List[int]] = None


class SubscriptionEndRequest(BaseModel):
    user_id: str
    offset_seconds: int = 0


# Outcomes. ok=False always carries a machine-readable reason.

class LifecycleResult(BaseModel):
    ok: bool = True
    reason: Optional[str] = None


class UpgradeResult(LifecycleResult):
    role: Optional[str] = None
    trial_applied: bool = False
    subscription_id: Optional[str] = None
    expires_at: Optional[int] = None
    trial_ends_at: Optional[int] = None


class TrialChargeResult(LifecycleResult):
    payment_id: Optional[str] = None
    plan: Optional[str] = None
    expires_at: Optional[int] = None
    subscription_id: Optional[str] = None


class AutoRenewResult(LifecycleResult):
    role: Optional[str] = None
    auto_renew: Optional[bool] = None
    downgraded: bool = False


class ConsistencyResult(LifecycleResult):
    changed: bool = False
    to_role: Optional[str] = None


class SubscriptionEndResult(LifecycleResult):
    expires_at: Optional[int] = None


class SweepResult(BaseModel):
    ok: bool = True
    disabled: bool = False
    expired_count: int = 0
    downgraded_count: int = 0
    continued: bool = False
    next_cursor: Optional[int] = None
    batch: Optional[int] = None
    now: Optional[int] = None


class ReminderResult(BaseModel):
    ok: bool = True
    sent: int = 0
    windows: List[int] = Field(default_factory=list)


class DispatchResult(BaseModel):
    ok: bool = True
    ran: int = 0
    failed: int = 0
    retried: int = 0
