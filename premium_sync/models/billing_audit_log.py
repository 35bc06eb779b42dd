from sqlalchemy import Column, String, DateTime, JSON, Text, Integer, Enum as SQLEnum
from premium_sync.schemas.billing import utcnow
import enum
from premium_sync.db.session import Base


class AuditOutcome(str, enum.Enum):
    """How a webhook delivery was settled"""
    PROCESSED = "processed"
    IGNORED = "ignored"
    MISSING_IDENTITY = "missing_identity"
    UNKNOWN_CUSTOMER = "unknown_customer"
    AMBIGUOUS_CUSTOMER = "ambiguous_customer"
    PERSISTENCE_FAILED = "persistence_failed"


class BillingAuditLog(Base):
    """Append-only trail of webhook deliveries. Not a dedup table: redeliveries get their own rows."""
    __tablename__ = "billing_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)
    outcome = Column(
        SQLEnum(AuditOutcome, values_callable=lambda e: [m.value for m in e], name="auditoutcome"),
        nullable=False,
        index=True,
    )
    user_id = Column(String, nullable=True, index=True)
    stripe_customer_id = Column(String, nullable=True, index=True)
    detail = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)  # Full Stripe event, kept for replay
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
