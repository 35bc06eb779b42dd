"""
Folds Stripe billing events into a user's subscription record.

A transition is computed from the event and the processing time alone, never
from the prior record. That keeps every transition idempotent (replaying an
event rewrites the same fields) and lets the gateway apply it with a single
atomic statement instead of a read-modify-write in the handler.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from premium_sync.schemas.billing import (
    BillingEvent,
    EventType,
    SubscriptionRecord,
    SubscriptionStatus,
    from_unix,
)

# Statuses that grant premium on their own
PREMIUM_STATUSES = {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value}

# Statuses that revoke premium (canceled may still be inside a grace period)
NEGATIVE_STATUSES = {
    SubscriptionStatus.CANCELED.value,
    SubscriptionStatus.UNPAID.value,
    SubscriptionStatus.PAST_DUE.value,
}


@dataclass(frozen=True)
class Transition:
    """Fields an event asserts about a record.

    `fields` overwrite; `set_if_absent` are written only where the record has
    no value yet (customer id, first activation time).
    """
    event_id: str
    processed_at: datetime
    fields: Dict[str, Any] = field(default_factory=dict)
    set_if_absent: Dict[str, Any] = field(default_factory=dict)

    def storage_fields(self) -> Dict[str, Any]:
        values = dict(self.fields)
        values["last_event_id"] = self.event_id
        values["updated_at"] = self.processed_at
        return values

    def apply(self, prior: Optional[SubscriptionRecord], user_id: Optional[str] = None) -> SubscriptionRecord:
        if prior is None:
            if not user_id:
                raise ValueError("user_id is required when there is no prior record")
            prior = SubscriptionRecord(user_id=user_id, created_at=self.processed_at)

        updates = self.storage_fields()
        for key, value in self.set_if_absent.items():
            if getattr(prior, key) is None:
                updates[key] = value
        if prior.updated_at is not None and prior.updated_at > self.processed_at:
            updates["updated_at"] = prior.updated_at
        return prior.model_copy(update=updates)


def object_id(value: Any) -> Optional[str]:
    """Stripe fields may hold an id string or an expanded object."""
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _current_period_end(payload: Dict[str, Any]) -> Optional[datetime]:
    period_end = from_unix(payload.get("current_period_end"))
    if period_end is not None:
        return period_end
    # Newer API versions carry the period on subscription items
    items = payload.get("items")
    items = (items.get("data") or []) if isinstance(items, dict) else []
    ends = [from_unix(item.get("current_period_end")) for item in items if isinstance(item, dict)]
    ends = [e for e in ends if e is not None]
    return max(ends) if ends else None


def grace_period_end(payload: Dict[str, Any], now: datetime) -> Optional[datetime]:
    """
    End of the paid period a cancellation lets the user keep, if still ahead of `now`.

    Honoured when Stripe reports a future `cancel_at`, or `cancel_at_period_end`
    together with a future period end. Anything else means immediate cancellation.
    """
    cancel_at = from_unix(payload.get("cancel_at"))
    if cancel_at is not None and cancel_at > now:
        return cancel_at
    if payload.get("cancel_at_period_end"):
        period_end = _current_period_end(payload)
        if period_end is not None and period_end > now:
            return period_end
    return None


def derive_premium(status: str, grace_end: Optional[datetime]) -> bool:
    if status in PREMIUM_STATUSES:
        return True
    if status == SubscriptionStatus.CANCELED.value:
        return grace_end is not None
    return False


def _checkout_transition(event: BillingEvent, now: datetime) -> Transition:
    session = event.payload
    fields = {
        "is_premium_active": True,
        "subscription_status": SubscriptionStatus.ACTIVE.value,
        "premium_until": None,
    }
    subscription_id = object_id(session.get("subscription"))
    if subscription_id:
        fields["subscription_id"] = subscription_id

    set_if_absent = {"premium_since": now}
    customer_id = object_id(session.get("customer"))
    if customer_id:
        set_if_absent["stripe_customer_id"] = customer_id
    return Transition(event.event_id, now, fields, set_if_absent)


def _subscription_updated_transition(event: BillingEvent, now: datetime) -> Transition:
    subscription = event.payload
    status = subscription.get("status")
    if not isinstance(status, str) or not status:
        # Nothing to copy; only stamp the record as touched by this event
        return Transition(event.event_id, now)

    grace_end = grace_period_end(subscription, now)
    fields = {
        "subscription_status": status,
        "is_premium_active": derive_premium(status, grace_end),
        "premium_until": grace_end,
    }
    return Transition(event.event_id, now, fields)


def _subscription_deleted_transition(event: BillingEvent, now: datetime) -> Transition:
    grace_end = grace_period_end(event.payload, now)
    fields = {
        "subscription_status": SubscriptionStatus.CANCELED.value,
        "is_premium_active": grace_end is not None,
        "premium_until": grace_end,
    }
    return Transition(event.event_id, now, fields)


_PLANNERS = {
    EventType.CHECKOUT_SESSION_COMPLETED.value: _checkout_transition,
    EventType.SUBSCRIPTION_UPDATED.value: _subscription_updated_transition,
    EventType.SUBSCRIPTION_DELETED.value: _subscription_deleted_transition,
}


def plan_transition(event: BillingEvent, now: datetime) -> Transition:
    """Partial field set `event` asserts when processed at `now`."""
    planner = _PLANNERS.get(event.event_type)
    if planner is None:
        return Transition(event.event_id, now)
    return planner(event, now)


def reconcile(
    prior: Optional[SubscriptionRecord],
    event: BillingEvent,
    now: datetime,
    user_id: Optional[str] = None,
) -> SubscriptionRecord:
    """New record after applying `event` to `prior` (or to nothing) at processing time `now`."""
    return plan_transition(event, now).apply(prior, user_id=user_id or (prior.user_id if prior else None))
