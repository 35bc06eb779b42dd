"""
Stripe Checkout session creation for the premium plan.
"""
import logging
from typing import Optional
from urllib.parse import quote

import stripe

from premium_sync.core.config import Settings
from premium_sync.core.errors import ConfigurationError
from premium_sync.services.gateway import SubscriptionGateway

logger = logging.getLogger(__name__)


def create_checkout_session(
    user_id: str,
    email: str,
    settings: Settings,
    gateway: Optional[SubscriptionGateway] = None,
) -> str:
    """
    Create a subscription-mode Checkout Session and return its redirect URL.

    The user id goes into both client_reference_id and metadata.userId so the
    webhook can recover it from either field. A user who already has a Stripe
    customer checks out as that customer, so lifecycle events of a renewed
    subscription still resolve to them.
    """
    if not settings.STRIPE_SECRET_KEY or not settings.STRIPE_PREMIUM_PRICE_ID:
        raise ConfigurationError("Stripe checkout is not configured (STRIPE_SECRET_KEY / STRIPE_PREMIUM_PRICE_ID)")

    record = gateway.get(user_id) if gateway is not None else None
    if record is not None and record.stripe_customer_id:
        customer = {"customer": record.stripe_customer_id}
    else:
        customer = {"customer_email": email}

    frontend_url = settings.FRONTEND_URL.rstrip("/")
    session = stripe.checkout.Session.create(
        api_key=settings.STRIPE_SECRET_KEY,
        payment_method_types=["card"],
        line_items=[{"price": settings.STRIPE_PREMIUM_PRICE_ID, "quantity": 1}],
        mode="subscription",
        success_url=f"{frontend_url}/payment-success?user={quote(user_id, safe='')}",
        cancel_url=f"{frontend_url}/payment-canceled",
        **customer,
        client_reference_id=user_id,
        metadata={"userId": user_id},
    )
    logger.info("[CHECKOUT] Created checkout session %s for user %s", session.id, user_id)
    return session.url
