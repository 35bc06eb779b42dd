from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime, timezone
import enum


class EventType(str, enum.Enum):
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class SubscriptionStatus(str, enum.Enum):
    """Statuses this service writes itself. Stripe statuses are stored verbatim."""
    NONE = "none"
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"


def utcnow() -> datetime:
    """Naive UTC now, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_unix(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


class BillingEvent(BaseModel):
    """Immutable Stripe event as received. `payload` is data.object."""
    event_id: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    occurred_at: Optional[datetime] = None
    livemode: bool = False
    payload: Dict[str, Any]
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    class Config:
        frozen = True

    @classmethod
    def from_stripe(cls, data: Dict[str, Any]) -> "BillingEvent":
        return cls(
            event_id=data["id"],
            event_type=data["type"],
            occurred_at=from_unix(data.get("created")),
            livemode=bool(data.get("livemode", False)),
            payload=data["data"]["object"],
            raw=data,
        )


class SubscriptionRecord(BaseModel):
    user_id: str
    stripe_customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    subscription_status: str = SubscriptionStatus.NONE.value
    is_premium_active: bool = False
    premium_since: Optional[datetime] = None
    premium_until: Optional[datetime] = None  # End of a cancellation grace period
    last_event_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        frozen = True
        from_attributes = True

    def premium_active_at(self, now: datetime) -> bool:
        """Entitlement at `now`: a stored grace period stops counting once it has passed."""
        if not self.is_premium_active:
            return False
        if self.subscription_status == SubscriptionStatus.CANCELED.value:
            return self.premium_until is not None and now < self.premium_until
        return True


class WebhookAck(BaseModel):
    received: bool = True


class CheckoutSessionRequest(BaseModel):
    userId: Optional[str] = None
    email: Optional[str] = None


class CheckoutSessionResponse(BaseModel):
    url: str
