from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionPlan(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    PENDING = "pending"
    FAILED = "failed"


class Subscription(BaseModel):
    """
    Entitlement record. Never deleted, only status-transitioned via model_copy.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    plan: SubscriptionPlan
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False
    billing_customer_id: Optional[str] = None
    billing_subscription_id: Optional[str] = None
    price_id: Optional[str] = None
    amount: float = 0.0
    currency: str = "BGN"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def with_status(self, status: SubscriptionStatus) -> "Subscription":
        return self.model_copy(update={"status": status, "updated_at": datetime.utcnow()})
