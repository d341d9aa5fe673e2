"""
Data types exchanged between gateway adapters and the reconciliation core.

Types:
    WebhookNotification: what a webhook body asks for, gateway-neutral
    PaymentDetails: authoritative payment state fetched from the gateway
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from billing.state_machines import NotificationAction, PaymentKind

# Checkout metadata keys are set by the product when it creates the
# checkout session/preference. Mercado Pago snake_cases metadata keys.
METADATA_USER_ID_KEYS = ("user_id", "userId")
METADATA_KIND_KEYS = ("kind", "type")
METADATA_CREDITS_KEYS = ("credits",)
METADATA_PLAN_KEYS = ("plan_slug", "planSlug")


def _first(metadata: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = metadata.get(key)
        if value not in (None, ""):
            return value
    return None


def to_decimal(value: Any) -> Decimal:
    """Parse a gateway amount; anything unparseable becomes 0."""
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0.00")


@dataclass(frozen=True)
class WebhookNotification:
    """
    A parsed webhook body.

    Attributes:
        gateway: Gateway name
        event_type: Gateway event type ("checkout.session.completed", "payment")
        action: What the dispatcher should do with it
        object_id: Payment id for PAYMENT, subscription id otherwise
        event_id: Gateway event id, when the gateway provides one
        customer_id: Gateway customer id (subscription lifecycle events)
        payload: Parsed JSON body
    """

    gateway: str
    event_type: str
    action: str
    object_id: str = ""
    event_id: str = ""
    customer_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_payment(self) -> bool:
        return self.action == NotificationAction.PAYMENT

    @classmethod
    def ignored(cls, gateway: str, event_type: str, payload: dict[str, Any] | None = None):
        return cls(
            gateway=gateway,
            event_type=event_type,
            action=NotificationAction.IGNORED,
            payload=payload or {},
        )


@dataclass(frozen=True)
class PaymentDetails:
    """
    Payment state as reported by the gateway's API.

    Attributes:
        id: Gateway payment id (same value as the notification object_id)
        status: Raw gateway status, classified by the payment state machine
        amount: Amount in currency units
        currency: ISO 4217 code (upper case)
        metadata: Checkout metadata (user id, kind, credits, plan slug)
        customer_id: Gateway customer id, when the payment has one
        price_id: Price/plan id at the gateway, for subscription payments
        is_renewal: True for recurring charges of an existing subscription
    """

    id: str
    status: str
    amount: Decimal
    currency: str
    metadata: dict[str, Any] = field(default_factory=dict)
    customer_id: str = ""
    price_id: str = ""
    is_renewal: bool = False

    @property
    def user_id(self) -> str | None:
        value = _first(self.metadata, METADATA_USER_ID_KEYS)
        return str(value) if value is not None else None

    @property
    def kind(self) -> str:
        """Payment kind from metadata; unknown or missing means one-time."""
        value = _first(self.metadata, METADATA_KIND_KEYS)
        if value in PaymentKind.values:
            return value
        if value in ("credit", "credit_purchase", "credit-purchase"):
            return PaymentKind.CREDITS
        return PaymentKind.ONE_TIME

    @property
    def credits(self) -> int | None:
        """Purchased credit count, None when missing or not a positive integer."""
        value = _first(self.metadata, METADATA_CREDITS_KEYS)
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            return None
        if not number.is_finite() or number != number.to_integral_value() or number <= 0:
            return None
        return int(number)

    @property
    def plan_slug(self) -> str | None:
        value = _first(self.metadata, METADATA_PLAN_KEYS)
        return str(value) if value is not None else None
