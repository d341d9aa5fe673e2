"""
State and choice enums for billing models.
"""

from billing.state_machines.states import (
    AuditEventType,
    CreditTransactionType,
    Gateway,
    GatewayOutcome,
    NotificationAction,
    PaymentKind,
    PaymentStatus,
    ReconciliationOutcome,
    SubscriptionStatus,
)

__all__ = [
    "AuditEventType",
    "CreditTransactionType",
    "Gateway",
    "GatewayOutcome",
    "NotificationAction",
    "PaymentKind",
    "PaymentStatus",
    "ReconciliationOutcome",
    "SubscriptionStatus",
]
