"""
Replays deliveries whose persistence failed, from the stored audit payloads.
Safe to run repeatedly: every transition is idempotent.
"""
import logging
from typing import Dict, List

from sqlalchemy import func
from sqlalchemy.orm import sessionmaker

from premium_sync.core.errors import PersistenceError
from premium_sync.models.billing_audit_log import BillingAuditLog, AuditOutcome
from premium_sync.schemas.billing import BillingEvent

logger = logging.getLogger(__name__)


def find_failed_events(session_factory: sessionmaker) -> List[BillingEvent]:
    """Events whose most recent audit row is persistence_failed."""
    with session_factory() as db:
        latest = (
            db.query(BillingAuditLog.event_id, func.max(BillingAuditLog.id).label("max_id"))
            .group_by(BillingAuditLog.event_id)
            .subquery()
        )
        rows = (
            db.query(BillingAuditLog)
            .join(latest, BillingAuditLog.id == latest.c.max_id)
            .filter(BillingAuditLog.outcome == AuditOutcome.PERSISTENCE_FAILED)
            .order_by(BillingAuditLog.id)
            .all()
        )

    events = []
    for row in rows:
        if not row.payload:
            logger.warning("[REPLAY] Event %s has no stored payload; skipping", row.event_id)
            continue
        events.append(BillingEvent.from_stripe(row.payload))
    return events


def replay_failed_events(processor, session_factory: sessionmaker, dry_run: bool = False) -> Dict[str, int]:
    counts = {"found": 0, "replayed": 0, "failed": 0}
    for event in find_failed_events(session_factory):
        counts["found"] += 1
        if dry_run:
            logger.info("[REPLAY] Would replay %s (%s)", event.event_id, event.event_type)
            continue
        try:
            processor.process(event)
        except PersistenceError:
            counts["failed"] += 1
            continue
        counts["replayed"] += 1
    return counts
