"""
Routes verified Stripe events to their handlers by event type.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from premium_sync.models.billing_audit_log import AuditOutcome
from premium_sync.schemas.billing import BillingEvent

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    outcome: AuditOutcome
    user_ids: List[str] = field(default_factory=list)
    customer_id: Optional[str] = None
    detail: Optional[str] = None


Handler = Callable[[BillingEvent], DispatchResult]


class EventDispatcher:
    def __init__(self):
        self._handlers: Dict[str, Handler] = {}

    def register(self, event_type: str, handler: Handler) -> None:
        self._handlers[event_type] = handler

    def dispatch(self, event: BillingEvent) -> DispatchResult:
        handler = self._handlers.get(event.event_type)
        if handler is None:
            # New Stripe event types must never break the endpoint
            logger.info("[WEBHOOK] Unhandled event type: %s (ID: %s)", event.event_type, event.event_id)
            return DispatchResult(AuditOutcome.IGNORED, detail=f"Unhandled event type {event.event_type}")
        return handler(event)
