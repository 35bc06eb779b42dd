#!/usr/bin/env python3
"""
Replay Stripe events whose processing failed to persist.
Usage: python scripts/replay_failed_events.py [--dry-run]
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from premium_sync.core.audit import AuditTrail
from premium_sync.core.config import get_settings
from premium_sync.core.errors import ConfigurationError
from premium_sync.db.session import build_engine, create_session_factory
from premium_sync.main import configure_logging
from premium_sync.services.billing_processor import BillingProcessor
from premium_sync.services.gateway import SubscriptionGateway
from premium_sync.services.replay import replay_failed_events


def main(dry_run: bool = False) -> int:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    try:
        engine = build_engine(settings.DATABASE_URL)
    except ConfigurationError as e:
        print(f"❌ {e.message}")
        return 1

    session_factory = create_session_factory(engine)
    processor = BillingProcessor(SubscriptionGateway(session_factory), AuditTrail(session_factory))
    try:
        counts = replay_failed_events(processor, session_factory, dry_run=dry_run)
    finally:
        engine.dispose()

    if dry_run:
        print(f"🔎 {counts['found']} event(s) would be replayed.")
        return 0
    print(f"✅ Replayed {counts['replayed']} of {counts['found']} event(s); {counts['failed']} still failing.")
    return 1 if counts["failed"] else 0


if __name__ == "__main__":
    sys.exit(main(dry_run="--dry-run" in sys.argv[1:]))
