"""
Payment state machine and notification handlers.

A gateway adapter turns each webhook body into a WebhookNotification with
a NotificationAction. This module routes actions to handlers:

    PAYMENT                -> guard, fetch details, PaymentStateMachine.reconcile
    SUBSCRIPTION_CANCELED  -> SubscriptionResolver.cancel_subscription
    SUBSCRIPTION_PAST_DUE  -> SubscriptionResolver.mark_past_due
    IGNORED / unregistered -> acknowledged, nothing happens

Handlers return ServiceResult for expected outcomes (including data
inconsistencies, which are acknowledged). They raise for failures the
gateway should retry (GatewayUnavailableError, WebhookDeadlineExceeded,
database errors).

Usage:
    from billing.webhooks.handlers import dispatch_notification

    result = dispatch_notification(notification, WebhookContext(gateway, deadline))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction

from billing.audit import AuditSink, PostCommitHooks
from billing.ledger.services import CreditLedger
from billing.models import PaymentRecord
from billing.services import SubscriptionResolver
from billing.state_machines import (
    AuditEventType,
    CreditTransactionType,
    GatewayOutcome,
    NotificationAction,
    PaymentKind,
    PaymentStatus,
    ReconciliationOutcome,
)
from billing.webhooks.idempotency import IdempotencyGuard
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from typing import Any

    from billing.gateways.base import GatewayAdapter
    from billing.gateways.types import PaymentDetails, WebhookNotification
    from billing.webhooks.deadline import Deadline


logger = logging.getLogger(__name__)


# =============================================================================
# Status Classification
# =============================================================================

APPROVED_STATUSES = frozenset({"approved", "paid", "succeeded", "no_payment_required"})
PENDING_STATUSES = frozenset(
    {"pending", "in_process", "in_mediation", "authorized", "unpaid", "open", "processing"}
)
FAILED_STATUSES = frozenset(
    {"rejected", "cancelled", "canceled", "failed", "expired", "void", "uncollectible"}
)


def classify_status(raw_status: str | None) -> GatewayOutcome | None:
    """
    Map a gateway's payment status onto approved / pending / failed.

    Returns None for statuses this service does not know; those
    notifications are acknowledged without any state change.
    """
    status = (raw_status or "").strip().lower()
    if status in APPROVED_STATUSES:
        return GatewayOutcome.APPROVED
    if status in PENDING_STATUSES:
        return GatewayOutcome.PENDING
    if status in FAILED_STATUSES:
        return GatewayOutcome.FAILED
    return None


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Outcome of PaymentStateMachine.reconcile.

    Attributes:
        outcome: What happened
        record: The PaymentRecord written, None for duplicates and unknown statuses
        reason: Error code for UNMATCHED outcomes
    """

    outcome: ReconciliationOutcome
    record: PaymentRecord | None = None
    reason: str = ""


# =============================================================================
# Payment State Machine
# =============================================================================


class PaymentStateMachine(BaseService):
    """
    Applies one gateway payment state to the local records.

    approved: paid record + credits/plan, in one transaction
    pending:  pending record only
    failed:   failed record only (past due for failed renewals)
    """

    @classmethod
    def reconcile(
        cls,
        gateway: str,
        details: PaymentDetails,
        hooks: PostCommitHooks | None = None,
    ) -> ServiceResult[ReconciliationResult]:
        """
        Reconcile fetched payment details.

        Side effects (audit, notification) are collected in ``hooks`` and
        run only after the transaction commits.

        Args:
            gateway: Gateway name
            details: Authoritative payment state from the gateway
            hooks: Post-commit hook list; a new one is used when omitted

        Returns:
            ServiceResult with a ReconciliationResult. Data inconsistencies
            are successful results with outcome UNMATCHED.
        """
        hooks = hooks if hooks is not None else PostCommitHooks()
        log_context = {
            "gateway": gateway,
            "gateway_payment_id": details.id,
            "status": details.status,
        }

        outcome = classify_status(details.status)
        if outcome is None:
            cls.get_logger().warning("Unknown gateway payment status", extra=log_context)
            return ServiceResult.success(
                ReconciliationResult(outcome=ReconciliationOutcome.UNKNOWN_STATUS)
            )

        user_id = cls.resolve_user(gateway, details)

        if outcome == GatewayOutcome.APPROVED:
            return cls._handle_approved(gateway, details, user_id, hooks)
        if outcome == GatewayOutcome.PENDING:
            return cls._handle_pending(gateway, details, user_id, hooks)
        return cls._handle_failed(gateway, details, user_id, hooks)

    # =========================================================================
    # User Resolution
    # =========================================================================

    @staticmethod
    def resolve_user(gateway: str, details: PaymentDetails) -> Any:
        """
        Owner of a payment: metadata user id, else the linked gateway customer.

        Returns None when neither resolves to an existing user.
        """
        if details.user_id is not None:
            try:
                user_pk = (
                    get_user_model()
                    .objects.filter(pk=details.user_id)
                    .values_list("pk", flat=True)
                    .first()
                )
            except (ValueError, TypeError, DjangoValidationError):
                user_pk = None
            if user_pk is not None:
                return user_pk
        return SubscriptionResolver.resolve_user_for_customer(gateway, details.customer_id)

    # =========================================================================
    # Outcome Handlers
    # =========================================================================

    @staticmethod
    def _record_metadata(details: PaymentDetails) -> dict[str, Any]:
        metadata = dict(details.metadata)
        if details.customer_id:
            metadata.setdefault("customer_id", details.customer_id)
        if details.price_id:
            metadata.setdefault("price_id", details.price_id)
        return metadata

    @classmethod
    def _create_record(
        cls,
        gateway: str,
        details: PaymentDetails,
        user_id: Any,
        status: str,
    ) -> PaymentRecord:
        return PaymentRecord.objects.create(
            user_id=user_id,
            gateway=gateway,
            gateway_payment_id=details.id,
            amount=max(details.amount, 0),
            currency=details.currency[:3],
            kind=details.kind,
            status=status,
            metadata=cls._record_metadata(details),
        )

    @classmethod
    def _handle_approved(
        cls,
        gateway: str,
        details: PaymentDetails,
        user_id: Any,
        hooks: PostCommitHooks,
    ) -> ServiceResult[ReconciliationResult]:
        logger = cls.get_logger()
        log_context = {
            "gateway": gateway,
            "gateway_payment_id": details.id,
            "user_id": str(user_id),
            "kind": details.kind,
        }

        with transaction.atomic():
            # The paid row claims the idempotency key; losing the race on
            # the partial unique constraint means another delivery won.
            try:
                with transaction.atomic():
                    record = cls._create_record(gateway, details, user_id, PaymentStatus.PAID)
            except IntegrityError:
                logger.info("Payment already reconciled by a concurrent delivery", extra=log_context)
                return ServiceResult.success(
                    ReconciliationResult(outcome=ReconciliationOutcome.DUPLICATE)
                )

            reason = cls._apply_payment(gateway, details, user_id, record)

            audit_payload = {
                "gateway": gateway,
                "gateway_payment_id": details.id,
                "amount": str(record.amount),
                "currency": record.currency,
                "kind": record.kind,
            }
            if reason:
                logger.error(
                    "Paid payment could not be applied",
                    extra={**log_context, "reason": reason},
                )
                hooks.add(
                    AuditSink.record,
                    user_id,
                    AuditEventType.PAYMENT_UNMATCHED,
                    {**audit_payload, "reason": reason, "metadata": record.metadata},
                    resource_type="payment_record",
                    resource_id=str(record.id),
                )
            else:
                hooks.add(
                    AuditSink.record,
                    user_id,
                    AuditEventType.PAYMENT_COMPLETED,
                    audit_payload,
                    resource_type="payment_record",
                    resource_id=str(record.id),
                )
                hooks.add(
                    AuditSink.notify,
                    user_id,
                    "payment_confirmation",
                    {
                        "amount": str(record.amount),
                        "currency": record.currency,
                        "kind": record.kind,
                        "payment_record_id": str(record.id),
                    },
                )
            hooks.register()

        if reason:
            return ServiceResult.success(
                ReconciliationResult(
                    outcome=ReconciliationOutcome.UNMATCHED, record=record, reason=reason
                )
            )

        logger.info("Payment reconciled", extra={**log_context, "record_id": str(record.id)})
        return ServiceResult.success(
            ReconciliationResult(outcome=ReconciliationOutcome.COMPLETED, record=record)
        )

    @classmethod
    def _apply_payment(
        cls,
        gateway: str,
        details: PaymentDetails,
        user_id: Any,
        record: PaymentRecord,
    ) -> str:
        """
        Apply a freshly recorded paid payment.

        Runs inside the reconciliation transaction. Returns an error code
        for data inconsistencies, empty string on success.
        """
        if user_id is None:
            return "USER_NOT_FOUND"

        if record.kind == PaymentKind.CREDITS:
            credits = details.credits
            if credits is None:
                return "INVALID_CREDIT_AMOUNT"
            CreditLedger.apply_credit(
                user_id=user_id,
                amount=credits,
                type=CreditTransactionType.PURCHASE,
                description=f"Purchase of {credits} credits",
                reference_id=str(record.id),
                idempotency_key=f"purchase:{record.id}",
            )
            return ""

        if record.kind == PaymentKind.SUBSCRIPTION:
            plan_slug = details.plan_slug or SubscriptionResolver.plan_slug_for_price(
                details.price_id
            )
            result = SubscriptionResolver.activate_subscription(
                user_id=user_id,
                plan_slug=plan_slug,
                reference_id=str(record.id),
                gateway=gateway,
                customer_id=details.customer_id or None,
            )
            return "" if result else (result.error_code or "SUBSCRIPTION_NOT_ACTIVATED")

        return ""

    @classmethod
    def _handle_pending(
        cls,
        gateway: str,
        details: PaymentDetails,
        user_id: Any,
        hooks: PostCommitHooks,
    ) -> ServiceResult[ReconciliationResult]:
        with transaction.atomic():
            record = cls._create_record(gateway, details, user_id, PaymentStatus.PENDING)
            hooks.add(
                AuditSink.record,
                user_id,
                AuditEventType.PAYMENT_PENDING,
                {"gateway": gateway, "gateway_payment_id": details.id, "status": details.status},
                resource_type="payment_record",
                resource_id=str(record.id),
            )
            hooks.register()

        cls.get_logger().info(
            "Payment pending",
            extra={"gateway": gateway, "gateway_payment_id": details.id, "status": details.status},
        )
        return ServiceResult.success(
            ReconciliationResult(outcome=ReconciliationOutcome.PENDING, record=record)
        )

    @classmethod
    def _handle_failed(
        cls,
        gateway: str,
        details: PaymentDetails,
        user_id: Any,
        hooks: PostCommitHooks,
    ) -> ServiceResult[ReconciliationResult]:
        with transaction.atomic():
            record = cls._create_record(gateway, details, user_id, PaymentStatus.FAILED)
            hooks.add(
                AuditSink.record,
                user_id,
                AuditEventType.PAYMENT_FAILED,
                {"gateway": gateway, "gateway_payment_id": details.id, "status": details.status},
                resource_type="payment_record",
                resource_id=str(record.id),
            )
            hooks.register()

            if (
                user_id is not None
                and record.kind == PaymentKind.SUBSCRIPTION
                and details.is_renewal
            ):
                SubscriptionResolver.mark_past_due(user_id)

        cls.get_logger().warning(
            "Payment failed",
            extra={"gateway": gateway, "gateway_payment_id": details.id, "status": details.status},
        )
        return ServiceResult.success(
            ReconciliationResult(outcome=ReconciliationOutcome.FAILED, record=record)
        )


# =============================================================================
# Handler Registry
# =============================================================================


@dataclass(frozen=True)
class WebhookContext:
    """Per-delivery collaborators passed to every handler."""

    gateway: GatewayAdapter
    deadline: Deadline


Handler = Callable[["WebhookNotification", WebhookContext], ServiceResult]

# Maps NotificationAction values to handler functions
NOTIFICATION_HANDLERS: dict[str, Handler] = {}


def register_handler(action: str) -> Callable[[Handler], Handler]:
    """
    Decorator to register a handler for a notification action.

    Usage:
        @register_handler(NotificationAction.PAYMENT)
        def handle_payment(notification, context) -> ServiceResult:
            ...
    """

    def decorator(func: Handler) -> Handler:
        NOTIFICATION_HANDLERS[action] = func
        logger.debug(f"Registered notification handler for {action}")
        return func

    return decorator


def dispatch_notification(
    notification: WebhookNotification,
    context: WebhookContext,
) -> ServiceResult:
    """
    Route a notification to its handler.

    Unregistered actions (including IGNORED) are logged and acknowledged.
    """
    handler = NOTIFICATION_HANDLERS.get(notification.action)

    if not handler:
        logger.info(
            f"Ignoring {notification.gateway} event: {notification.event_type}",
            extra={"gateway": notification.gateway, "event_id": notification.event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {notification.gateway} {notification.event_type} to {notification.action} handler",
        extra={
            "gateway": notification.gateway,
            "event_id": notification.event_id,
            "object_id": notification.object_id,
        },
    )
    return handler(notification, context)


# =============================================================================
# Payment Handler
# =============================================================================


@register_handler(NotificationAction.PAYMENT)
def handle_payment(notification: WebhookNotification, context: WebhookContext) -> ServiceResult:
    """
    Reconcile a payment notification.

    The guard runs before the gateway fetch: redeliveries of a settled
    payment cost one indexed lookup. The deadline is checked before the
    fetch and again before the ledger transaction.

    Raises:
        GatewayError: detail fetch failed
        WebhookDeadlineExceeded: budget used up before the ledger transaction
    """
    gateway, deadline = context.gateway, context.deadline

    if IdempotencyGuard.is_settled(gateway.name, notification.object_id):
        return ServiceResult.success(
            ReconciliationResult(outcome=ReconciliationOutcome.DUPLICATE)
        )

    deadline.check("detail fetch")
    details = gateway.fetch_payment_details(notification, timeout=deadline.remaining())
    deadline.check("ledger transaction")

    return PaymentStateMachine.reconcile(gateway.name, details)


# =============================================================================
# Subscription Lifecycle Handlers
# =============================================================================


def _subscription_user(notification: WebhookNotification) -> Any:
    """User for a subscription event: linked customer id, else metadata user id."""
    user_id = SubscriptionResolver.resolve_user_for_customer(
        notification.gateway, notification.customer_id
    )
    if user_id is not None:
        return user_id

    obj = notification.payload.get("data", {}).get("object", {})
    metadata = obj.get("metadata") if isinstance(obj, dict) else None
    if isinstance(metadata, dict) and metadata.get("user_id"):
        try:
            return (
                get_user_model()
                .objects.filter(pk=metadata["user_id"])
                .values_list("pk", flat=True)
                .first()
            )
        except (ValueError, TypeError, DjangoValidationError):
            return None
    return None


@register_handler(NotificationAction.SUBSCRIPTION_CANCELED)
def handle_subscription_canceled(
    notification: WebhookNotification, context: WebhookContext
) -> ServiceResult:
    """Downgrade to the default plan; credits already granted are kept."""
    user_id = _subscription_user(notification)
    if user_id is None:
        logger.error(
            "Subscription canceled for unknown customer",
            extra={
                "gateway": notification.gateway,
                "customer_id": notification.customer_id,
                "subscription_id": notification.object_id,
            },
        )
        return ServiceResult.failure("Unknown customer", error_code="USER_NOT_FOUND")

    return SubscriptionResolver.cancel_subscription(user_id)


@register_handler(NotificationAction.SUBSCRIPTION_PAST_DUE)
def handle_subscription_past_due(
    notification: WebhookNotification, context: WebhookContext
) -> ServiceResult:
    """Flag the subscription as past due; plan and credits are untouched."""
    user_id = _subscription_user(notification)
    if user_id is None:
        logger.error(
            "Subscription past due for unknown customer",
            extra={
                "gateway": notification.gateway,
                "customer_id": notification.customer_id,
                "subscription_id": notification.object_id,
            },
        )
        return ServiceResult.failure("Unknown customer", error_code="USER_NOT_FOUND")

    return SubscriptionResolver.mark_past_due(user_id)
