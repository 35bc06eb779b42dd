from sqlalchemy import Column, String, DateTime, Boolean
from premium_sync.schemas.billing import utcnow
from premium_sync.db.session import Base


class UserSubscription(Base):
    """One row per user, keyed by the application's user id (set at checkout time)."""
    __tablename__ = "user_subscriptions"

    user_id = Column(String, primary_key=True)
    # At most one user per Stripe customer; immutable once set
    stripe_customer_id = Column(String, nullable=True, unique=True, index=True)
    subscription_id = Column(String, nullable=True, index=True)
    subscription_status = Column(String, nullable=False, default="none", index=True)  # Stripe status, verbatim
    is_premium_active = Column(Boolean, nullable=False, default=False)
    premium_since = Column(DateTime, nullable=True)
    premium_until = Column(DateTime, nullable=True)  # Grace period end after a scheduled cancellation
    last_event_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False, index=True)
