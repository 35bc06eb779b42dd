"""
Stripe webhook signature verification.

Stripe signs "<timestamp>.<raw body>" with HMAC-SHA256 using the endpoint's
signing secret and sends it as `Stripe-Signature: t=<timestamp>,v1=<hex>`.
Verification must run over the exact bytes received; parsing and
re-serializing the JSON first changes the bytes and breaks the signature.
"""
import json
import logging
import time
from typing import Optional

import stripe
from pydantic import ValidationError

from premium_sync.core.errors import AuthenticationError, EventParseError
from premium_sync.schemas.billing import BillingEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "stripe-signature"
DEFAULT_TOLERANCE_SECONDS = 300


def _extract_timestamp(signature_header: str) -> int:
    for item in signature_header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep and key == "t":
            try:
                return int(value)
            except ValueError:
                break
    raise AuthenticationError("Unable to extract timestamp from signature header")


def verify_webhook_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """
    Authenticate a webhook body against its Stripe-Signature header.

    Raises AuthenticationError when the header is missing or malformed, the
    timestamp is outside +/- tolerance seconds of now, or no v1 signature
    matches. The HMAC comparison is delegated to stripe.WebhookSignature,
    which compares in constant time.
    """
    if not signature_header or not signature_header.strip():
        raise AuthenticationError("No signature header")
    if not secret:
        raise AuthenticationError("Webhook signing secret is not configured")

    timestamp = _extract_timestamp(signature_header)
    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance:
        raise AuthenticationError(
            f"Timestamp outside the tolerance zone ({int(current - timestamp)}s skew)"
        )

    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        raise AuthenticationError("Payload is not valid UTF-8")

    try:
        # Window already enforced above against the injectable clock
        stripe.WebhookSignature.verify_header(text, signature_header, secret, tolerance=None)
    except stripe.SignatureVerificationError as e:
        raise AuthenticationError(str(e))


def parse_event(payload: bytes) -> BillingEvent:
    """Parse an already-verified body into a BillingEvent."""
    try:
        data = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise EventParseError(f"Invalid payload: {e}")
    if not isinstance(data, dict):
        raise EventParseError("Invalid payload: expected a JSON object")

    try:
        return BillingEvent.from_stripe(data)
    except (ValidationError, KeyError, TypeError) as e:
        raise EventParseError(f"Malformed event envelope: {e}", event_id=data.get("id"))
