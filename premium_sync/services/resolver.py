"""
Maps Stripe events to the user(s) whose subscription record they concern.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from premium_sync.core.errors import (
    AmbiguousCustomerError,
    MissingIdentityError,
    UnknownCustomerError,
)
from premium_sync.schemas.billing import SubscriptionRecord
from premium_sync.services.reconciler import object_id


class MatchKind(str, enum.Enum):
    NONE = "none"
    ONE = "one"
    MANY = "many"


@dataclass(frozen=True)
class CustomerResolution:
    customer_id: str
    records: List[SubscriptionRecord] = field(default_factory=list)

    @property
    def kind(self) -> MatchKind:
        if not self.records:
            return MatchKind.NONE
        if len(self.records) == 1:
            return MatchKind.ONE
        return MatchKind.MANY

    @property
    def user_ids(self) -> List[str]:
        return [r.user_id for r in self.records]

    def require_one(self, event_id: Optional[str] = None) -> SubscriptionRecord:
        """The single match, or UnknownCustomerError / AmbiguousCustomerError."""
        if self.kind is MatchKind.NONE:
            raise UnknownCustomerError(
                f"No user found with customer ID {self.customer_id}",
                event_id=event_id,
                customer_id=self.customer_id,
            )
        if self.kind is MatchKind.MANY:
            raise AmbiguousCustomerError(
                f"{len(self.records)} users share customer ID {self.customer_id}",
                user_ids=self.user_ids,
                event_id=event_id,
                customer_id=self.customer_id,
            )
        return self.records[0]


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class SubscriberResolver:
    def __init__(self, gateway):
        self.gateway = gateway

    @staticmethod
    def resolve_checkout_user(session: Dict[str, Any], event_id: Optional[str] = None) -> str:
        """
        User id for a completed checkout: client_reference_id first, then
        metadata.userId. Both are set by the checkout endpoint.
        """
        user_id = _clean(session.get("client_reference_id"))
        if user_id:
            return user_id

        metadata = session.get("metadata") or {}
        if isinstance(metadata, dict):
            user_id = _clean(metadata.get("userId")) or _clean(metadata.get("user_id"))
            if user_id:
                return user_id

        raise MissingIdentityError(
            f"User ID missing in session {session.get('id')}",
            event_id=event_id,
            customer_id=object_id(session.get("customer")),
        )

    def resolve_customer(self, subscription: Dict[str, Any], event_id: Optional[str] = None) -> CustomerResolution:
        """All subscription records linked to the event's Stripe customer."""
        customer_id = object_id(subscription.get("customer"))
        if not customer_id:
            raise UnknownCustomerError(
                f"No customer ID on subscription {subscription.get('id')}",
                event_id=event_id,
            )
        return CustomerResolution(customer_id, self.gateway.find_by_customer(customer_id))
