from premium_sync.models.user_subscription import UserSubscription
from premium_sync.models.billing_audit_log import BillingAuditLog, AuditOutcome

__all__ = ["UserSubscription", "BillingAuditLog", "AuditOutcome"]
