"""
Stripe webhook handler.
Verifies webhook signatures and reconciles the affected subscription records.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from premium_sync.api.deps import get_processor, get_settings
from premium_sync.core.config import Settings
from premium_sync.core.errors import AuthenticationError, EventParseError, PersistenceError
from premium_sync.core.webhook_signature import parse_event, verify_webhook_signature
from premium_sync.schemas.billing import WebhookAck
from premium_sync.services.billing_processor import BillingProcessor

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    settings: Settings = Depends(get_settings),
    processor: BillingProcessor = Depends(get_processor),
):
    """
    Handle Stripe webhook events.

    - Verifies the signature over the raw body before anything is parsed
    - Unhandled event types and data problems are acknowledged with 200
    - Storage failures answer 500 so Stripe redelivers the event
    """
    # Raw bytes: parsing first would change what was signed
    body = await request.body()
    logger.info("[WEBHOOK] Received webhook request (has signature header: %s)", stripe_signature is not None)

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("[WEBHOOK] STRIPE_WEBHOOK_SECRET not configured")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server configuration error")

    try:
        verify_webhook_signature(
            body,
            stripe_signature,
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
        event = parse_event(body)
    except AuthenticationError as e:
        logger.warning("[WEBHOOK] Signature verification failed: %s", e.message)
        return _error(status.HTTP_400_BAD_REQUEST, f"Webhook Error: {e.message}")
    except EventParseError as e:
        logger.warning("[WEBHOOK] Invalid payload (event %s): %s", e.event_id, e.message)
        return _error(status.HTTP_400_BAD_REQUEST, f"Webhook Error: {e.message}")

    try:
        # Storage calls are blocking; keep them off the event loop
        await run_in_threadpool(processor.process, event)
    except PersistenceError:
        # Already logged and audited by the processor
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Failed to persist event {event.event_id}")

    return WebhookAck(received=True)
