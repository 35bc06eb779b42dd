from fastapi import Request

from premium_sync.core.config import Settings
from premium_sync.services.billing_processor import BillingProcessor


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_processor(request: Request) -> BillingProcessor:
    """Processor built in the app lifespan from the configured database."""
    return request.app.state.processor
