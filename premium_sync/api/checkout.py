import logging

import stripe
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from premium_sync.api.deps import get_processor, get_settings
from premium_sync.core.config import Settings
from premium_sync.core.errors import ConfigurationError, PersistenceError
from premium_sync.schemas.billing import CheckoutSessionRequest, CheckoutSessionResponse
from premium_sync.services.billing_processor import BillingProcessor
from premium_sync.services.checkout import create_checkout_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout(
    body: CheckoutSessionRequest,
    settings: Settings = Depends(get_settings),
    processor: BillingProcessor = Depends(get_processor),
):
    if not body.userId or not body.email:
        logger.info("[CHECKOUT] Missing required fields: userId=%s email=%s", bool(body.userId), bool(body.email))
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Missing required fields"})

    try:
        url = await run_in_threadpool(
            create_checkout_session, body.userId, body.email, settings, processor.gateway,
        )
    except (ConfigurationError, PersistenceError) as e:
        logger.error("[CHECKOUT] %s", e.message)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Failed to create checkout session"})
    except stripe.StripeError as e:
        logger.error("[CHECKOUT] Error creating checkout session for user %s: %s", body.userId, e)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Failed to create checkout session"})

    return CheckoutSessionResponse(url=url)
