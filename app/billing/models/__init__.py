"""
Billing domain models.

- Plan: subscription plan catalog
- UserAccount: credit balance, plan and subscription status per user
- GatewayCustomer: gateway customer id -> account mapping
- PaymentRecord: reconciled payment notifications (idempotency key holder)
- AuditEvent: append-only audit log
- CreditTransaction: append-only credit ledger (defined in billing.ledger)
"""

from billing.models.audit_event import AuditEvent
from billing.models.payment_record import PaymentRecord
from billing.models.plan import Plan
from billing.models.user_account import GatewayCustomer, UserAccount
from billing.ledger.models import CreditTransaction

__all__ = [
    "AuditEvent",
    "CreditTransaction",
    "GatewayCustomer",
    "PaymentRecord",
    "Plan",
    "UserAccount",
]
