"""
Pytest configuration: a fresh SQLite database per test and an app wired to it.
"""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

import premium_sync.models  # noqa: F401  registers tables on Base.metadata
from premium_sync.core.audit import AuditTrail
from premium_sync.core.config import Settings
from premium_sync.db.session import Base, build_engine, create_session_factory
from premium_sync.main import create_app
from premium_sync.services.billing_processor import BillingProcessor
from premium_sync.services.gateway import SubscriptionGateway

from stripe_helpers import WEBHOOK_SECRET


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path}/premium_sync_test.db"


@pytest.fixture
def engine(db_url):
    engine = build_engine(db_url)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def gateway(session_factory):
    return SubscriptionGateway(session_factory)


@pytest.fixture
def audit(session_factory):
    return AuditTrail(session_factory)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 1, 15, 12, 0, 0))


@pytest.fixture
def processor(gateway, audit, clock):
    return BillingProcessor(gateway, audit, clock=clock)


@pytest.fixture
def settings(db_url):
    return Settings(
        _env_file=None,
        DATABASE_URL=db_url,
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        STRIPE_PREMIUM_PRICE_ID="price_premium_monthly",
        FRONTEND_URL="https://recipes.example.com",
    )


@pytest.fixture
def client(settings, engine):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
