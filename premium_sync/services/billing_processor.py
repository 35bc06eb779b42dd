"""
Processor for verified Stripe webhook events.
Resolves the affected user, plans the transition and persists it.

Handles:
- checkout.session.completed -> create/merge the user's record as premium
- customer.subscription.updated -> copy the Stripe status, derive premium
- customer.subscription.deleted -> cancel, honouring a future period end as grace
"""
import logging
from typing import Callable, Optional
from datetime import datetime

from premium_sync.core.audit import AuditTrail
from premium_sync.core.errors import (
    AmbiguousCustomerError,
    MissingIdentityError,
    NotFoundError,
    PersistenceError,
    UnknownCustomerError,
)
from premium_sync.models.billing_audit_log import AuditOutcome
from premium_sync.schemas.billing import BillingEvent, EventType, utcnow
from premium_sync.services.dispatcher import DispatchResult, EventDispatcher
from premium_sync.services.gateway import SubscriptionGateway
from premium_sync.services.reconciler import plan_transition
from premium_sync.services.resolver import MatchKind, SubscriberResolver

logger = logging.getLogger(__name__)


class BillingProcessor:
    def __init__(
        self,
        gateway: SubscriptionGateway,
        audit: Optional[AuditTrail] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.audit = audit
        self.clock = clock
        self.resolver = SubscriberResolver(gateway)
        self.dispatcher = EventDispatcher()
        self.dispatcher.register(EventType.CHECKOUT_SESSION_COMPLETED.value, self.handle_checkout_completed)
        self.dispatcher.register(EventType.SUBSCRIPTION_UPDATED.value, self.handle_subscription_lifecycle)
        self.dispatcher.register(EventType.SUBSCRIPTION_DELETED.value, self.handle_subscription_lifecycle)

    def process(self, event: BillingEvent) -> DispatchResult:
        """
        Dispatch a verified event and record the outcome.

        Data problems (no user reference, unknown or shared customer) are
        settled here and acknowledged. PersistenceError propagates so the
        endpoint answers 500 and Stripe redelivers.
        """
        logger.info("[WEBHOOK] Processing Stripe event: %s (ID: %s)", event.event_type, event.event_id)
        try:
            result = self.dispatcher.dispatch(event)
        except MissingIdentityError as e:
            logger.error(
                "[WEBHOOK] Checkout %s has no user reference (customer %s); acknowledging without changes",
                event.event_id, e.customer_id,
            )
            result = DispatchResult(AuditOutcome.MISSING_IDENTITY, customer_id=e.customer_id, detail=e.message)
        except UnknownCustomerError as e:
            logger.info("[WEBHOOK] %s for event %s; ignoring", e.message, event.event_id)
            result = DispatchResult(AuditOutcome.UNKNOWN_CUSTOMER, customer_id=e.customer_id, detail=e.message)
        except PersistenceError as e:
            logger.error(
                "[WEBHOOK] ERROR persisting event %s (%s) user=%s customer=%s: %s",
                event.event_id, event.event_type, e.user_id, e.customer_id, e.message,
            )
            self._record(event, DispatchResult(
                AuditOutcome.PERSISTENCE_FAILED,
                user_ids=[e.user_id] if e.user_id else [],
                customer_id=e.customer_id,
                detail=e.message,
            ))
            raise

        self._record(event, result)
        return result

    def _record(self, event: BillingEvent, result: DispatchResult) -> None:
        if self.audit is None:
            return
        self.audit.record(
            event,
            result.outcome,
            user_id=",".join(result.user_ids) or None,
            customer_id=result.customer_id,
            detail=result.detail,
        )

    def handle_checkout_completed(self, event: BillingEvent) -> DispatchResult:
        session = event.payload
        user_id = self.resolver.resolve_checkout_user(session, event.event_id)
        transition = plan_transition(event, self.clock())

        customer_id = transition.set_if_absent.get("stripe_customer_id")
        try:
            self.gateway.upsert_merge(user_id, transition.storage_fields(), transition.set_if_absent)
        except AmbiguousCustomerError as e:
            # The customer stays with its current owner; the paying user still gets premium
            logger.error(
                "[INTEGRITY] Event %s: customer %s already belongs to users %s; "
                "applying checkout to user %s without linking the customer",
                event.event_id, customer_id, e.user_ids, user_id,
            )
            unlinked = {k: v for k, v in transition.set_if_absent.items() if k != "stripe_customer_id"}
            self.gateway.upsert_merge(user_id, transition.storage_fields(), unlinked)
            return DispatchResult(
                AuditOutcome.AMBIGUOUS_CUSTOMER,
                user_ids=[user_id],
                customer_id=customer_id,
                detail=e.message,
            )

        logger.info("[WEBHOOK] Successfully updated premium status for user %s (event %s)", user_id, event.event_id)
        return DispatchResult(AuditOutcome.PROCESSED, user_ids=[user_id], customer_id=customer_id)

    def handle_subscription_lifecycle(self, event: BillingEvent) -> DispatchResult:
        resolution = self.resolver.resolve_customer(event.payload, event.event_id)
        if resolution.kind is MatchKind.NONE:
            resolution.require_one(event.event_id)

        ambiguous = resolution.kind is MatchKind.MANY
        if ambiguous:
            # Uniqueness is enforced by the store, so this means the data was corrupted
            # out of band. Apply to every match rather than leave some of them stale.
            logger.error(
                "[INTEGRITY] Event %s: customer %s is linked to %d users %s; updating all of them",
                event.event_id, resolution.customer_id, len(resolution.records), resolution.user_ids,
            )

        transition = plan_transition(event, self.clock())
        fields = transition.storage_fields()
        applied = []
        for record in resolution.records:
            try:
                self.gateway.update_existing(record.user_id, fields)
            except NotFoundError:
                logger.warning(
                    "[WEBHOOK] Record for user %s disappeared before event %s was applied",
                    record.user_id, event.event_id,
                )
                continue
            applied.append(record.user_id)
            logger.info(
                "[WEBHOOK] Updating subscription status to %s for user %s (event %s)",
                fields.get("subscription_status", "<unchanged>"), record.user_id, event.event_id,
            )

        if not applied:
            return DispatchResult(
                AuditOutcome.UNKNOWN_CUSTOMER,
                customer_id=resolution.customer_id,
                detail="No matching record left to update",
            )
        return DispatchResult(
            AuditOutcome.AMBIGUOUS_CUSTOMER if ambiguous else AuditOutcome.PROCESSED,
            user_ids=applied,
            customer_id=resolution.customer_id,
            detail=f"Customer linked to users {resolution.user_ids}" if ambiguous else None,
        )
