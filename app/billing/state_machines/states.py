"""
State enums for billing models.

Django TextChoices for database storage and admin integration.

State Machines Overview:

Payment status (flat, one value per delivery):
    gateway reports approved → paid
    gateway reports pending/in_process → pending
    gateway reports rejected/cancelled → failed
    refunded exists for manual corrections only

Subscription status (django-fsm on UserAccount):
    none/canceled/past_due/active → active (activation or renewal)
    active/past_due → past_due (renewal charge failed)
    any → canceled
"""

from django.db import models


class Gateway(models.TextChoices):
    """Payment gateways that deliver webhooks to this service."""

    STRIPE = "stripe", "Stripe"
    MERCADOPAGO = "mercadopago", "Mercado Pago"


class PaymentKind(models.TextChoices):
    """
    What a payment buys, taken from checkout metadata.

    SUBSCRIPTION activates a plan (and grants its bonus credits),
    CREDITS adds purchased credits, ONE_TIME is recorded only.
    """

    SUBSCRIPTION = "subscription", "Subscription"
    CREDITS = "credits", "Credit Purchase"
    ONE_TIME = "one_time", "One-time"


class PaymentStatus(models.TextChoices):
    """
    Status of a PaymentRecord.

    Terminal states: PAID, FAILED, REFUNDED
    At most one PAID record exists per (gateway, gateway_payment_id).
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class GatewayOutcome(models.TextChoices):
    """
    Normalized classification of a gateway's reported payment status.

    Not stored on its own; each outcome maps to one PaymentStatus.
    """

    APPROVED = "approved", "Approved"
    PENDING = "pending", "Pending"
    FAILED = "failed", "Failed"

    @property
    def payment_status(self) -> str:
        return {
            GatewayOutcome.APPROVED: PaymentStatus.PAID,
            GatewayOutcome.PENDING: PaymentStatus.PENDING,
            GatewayOutcome.FAILED: PaymentStatus.FAILED,
        }[self]


class SubscriptionStatus(models.TextChoices):
    """
    Subscription state of a UserAccount (managed by django-fsm).

    State Flow:
        NONE → ACTIVE (first approved subscription payment)
        ACTIVE → ACTIVE (renewal)
        ACTIVE → PAST_DUE (renewal charge failed)
        PAST_DUE → ACTIVE (retry succeeded)
        * → CANCELED (subscription deleted at the gateway)
        CANCELED → ACTIVE (resubscribe)
    """

    NONE = "none", "None"
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELED = "canceled", "Canceled"


class CreditTransactionType(models.TextChoices):
    """
    Reason for a credit ledger entry.

    PURCHASE and BONUS are positive, CONSUMPTION is negative, REFUND is a
    signed correction entry.
    """

    PURCHASE = "purchase", "Purchase"
    BONUS = "bonus", "Subscription Bonus"
    CONSUMPTION = "consumption", "Consumption"
    REFUND = "refund", "Refund"


class NotificationAction(models.TextChoices):
    """
    What a parsed gateway notification asks this service to do.

    Gateway adapters map their own event vocabulary onto these actions;
    the dispatcher only knows about actions.
    """

    PAYMENT = "payment", "Reconcile Payment"
    SUBSCRIPTION_CANCELED = "subscription_canceled", "Cancel Subscription"
    SUBSCRIPTION_PAST_DUE = "subscription_past_due", "Mark Subscription Past Due"
    IGNORED = "ignored", "Ignored"


class AuditEventType(models.TextChoices):
    """Event types written to the audit log."""

    PAYMENT_COMPLETED = "payment.completed", "Payment Completed"
    PAYMENT_PENDING = "payment.pending", "Payment Pending"
    PAYMENT_FAILED = "payment.failed", "Payment Failed"
    PAYMENT_UNMATCHED = "payment.unmatched", "Payment Unmatched"
    SUBSCRIPTION_ACTIVATED = "subscription.activated", "Subscription Activated"
    SUBSCRIPTION_PAST_DUE = "subscription.past_due", "Subscription Past Due"
    SUBSCRIPTION_CANCELED = "subscription.canceled", "Subscription Canceled"
    CREDIT_CONSUMED = "credit.consumed", "Credit Consumed"


class ReconciliationOutcome(models.TextChoices):
    """
    Result of reconciling one payment notification.

    Not stored; reported by the payment state machine and logged by the
    webhook processor. Every outcome is acknowledged to the gateway.
    """

    COMPLETED = "completed", "Completed"
    DUPLICATE = "duplicate", "Duplicate"
    PENDING = "pending", "Pending"
    FAILED = "failed", "Failed"
    UNMATCHED = "unmatched", "Data Inconsistency"
    UNKNOWN_STATUS = "unknown_status", "Unknown Gateway Status"
