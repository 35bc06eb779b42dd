"""
Audit trail for billing webhook deliveries
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from premium_sync.models.billing_audit_log import BillingAuditLog, AuditOutcome
from premium_sync.schemas.billing import BillingEvent

logger = logging.getLogger(__name__)


class AuditTrail:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record(
        self,
        event: BillingEvent,
        outcome: AuditOutcome,
        user_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        """
        Log how a delivery was settled.

        Args:
            event: The verified Stripe event
            outcome: How processing ended
            user_id: Affected user, when known (comma-joined for multi-user alerts)
            customer_id: Stripe customer the event refers to
            detail: Free-text context (error message, ignored type, ...)
        """
        logger.info(
            "[AUDIT] event=%s type=%s outcome=%s user=%s customer=%s%s",
            event.event_id, event.event_type, outcome.value, user_id, customer_id,
            f" detail={detail}" if detail else "",
        )
        try:
            with self.session_factory() as db:
                db.add(BillingAuditLog(
                    event_id=event.event_id,
                    event_type=event.event_type,
                    outcome=outcome,
                    user_id=user_id,
                    stripe_customer_id=customer_id,
                    detail=detail,
                    payload=event.raw or None,
                ))
                db.commit()
        except SQLAlchemyError as e:
            # Don't fail the webhook if audit logging fails; the log line above is the trail
            logger.error("[AUDIT] Failed to record event %s: %s", event.event_id, e)
