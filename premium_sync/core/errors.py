"""
Error taxonomy for billing webhook processing.

Every error carries the identifiers needed to reconcile by hand later
(event id, user id, Stripe customer id).
"""
from typing import Optional


class PremiumSyncError(Exception):
    """Base class for all service errors."""

    def __init__(
        self,
        message: str,
        event_id: Optional[str] = None,
        user_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.event_id = event_id
        self.user_id = user_id
        self.customer_id = customer_id

    def context(self) -> dict:
        return {
            "event_id": self.event_id,
            "user_id": self.user_id,
            "customer_id": self.customer_id,
        }


class ConfigurationError(PremiumSyncError):
    """Required configuration is missing or a backing service is unreachable at startup."""


class AuthenticationError(PremiumSyncError):
    """Webhook signature header is missing, malformed, mismatched or outside the tolerance window."""


class EventParseError(PremiumSyncError):
    """Verified body is not a well-formed Stripe event envelope."""


class MissingIdentityError(PremiumSyncError):
    """Checkout event carries neither client_reference_id nor metadata.userId."""


class UnknownCustomerError(PremiumSyncError):
    """Lifecycle event for a Stripe customer with no subscription record."""


class AmbiguousCustomerError(PremiumSyncError):
    """More than one user is linked to the same Stripe customer."""

    def __init__(self, message: str, user_ids=None, **kwargs):
        super().__init__(message, **kwargs)
        self.user_ids = list(user_ids or [])


class NotFoundError(PremiumSyncError):
    """No subscription record exists for the user being updated."""


class PersistenceError(PremiumSyncError):
    """The subscription store rejected or could not complete a write."""
