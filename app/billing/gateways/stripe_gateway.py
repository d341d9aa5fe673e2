"""
Stripe gateway adapter.

Maps Stripe webhook events onto notification actions and re-reads the
paid object (Checkout Session or Invoice) through the Stripe SDK.

Event mapping:
    checkout.session.completed                 -> PAYMENT (session id)
    checkout.session.async_payment_succeeded   -> PAYMENT (session id)
    checkout.session.async_payment_failed      -> PAYMENT (session id)
    checkout.session.expired                   -> PAYMENT (session id)
    invoice.paid / invoice.payment_failed      -> PAYMENT (invoice id), except
        the first invoice of a subscription, which the checkout session
        already reconciled
    customer.subscription.deleted              -> SUBSCRIPTION_CANCELED
    customer.subscription.updated              -> by subscription status
    anything else                              -> IGNORED

Configuration (via settings, see registry.build_stripe_gateway):
    STRIPE_SECRET_KEY, STRIPE_API_TIMEOUT_SECONDS, STRIPE_PRICE_PLAN_MAP
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import stripe

from billing.exceptions import (
    GatewayConfigurationError,
    GatewayError,
    GatewayUnavailableError,
    PaymentNotFoundError,
)
from billing.gateways.base import GatewayAdapter
from billing.gateways.types import PaymentDetails, WebhookNotification, to_decimal
from billing.state_machines import Gateway, NotificationAction

if TYPE_CHECKING:
    from collections.abc import Mapping

    from billing.webhooks.signatures import SignatureVerifier


# =============================================================================
# Constants
# =============================================================================

CHECKOUT_SESSION_EVENTS = frozenset(
    {
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
        "checkout.session.async_payment_failed",
        "checkout.session.expired",
    }
)
INVOICE_EVENTS = frozenset({"invoice.paid", "invoice.payment_failed"})

# Stripe invoice billing_reason of the first invoice of a subscription
SUBSCRIPTION_CREATE_REASON = "subscription_create"

PAST_DUE_SUBSCRIPTION_STATUSES = frozenset({"past_due", "unpaid"})
CANCELED_SUBSCRIPTION_STATUSES = frozenset({"canceled", "incomplete_expired"})


@dataclass(frozen=True)
class StripeGatewayConfig:
    """
    Settings for the Stripe adapter.

    Attributes:
        secret_key: API secret key (sk_...)
        api_timeout_seconds: HTTP timeout for API calls
        price_plan_map: Stripe price id -> plan slug
    """

    secret_key: str = ""
    api_timeout_seconds: float = 10
    price_plan_map: dict[str, str] = field(default_factory=dict)


def _get(obj: Any, *path: str) -> Any:
    """Walk attributes/keys of a StripeObject or dict, None when missing."""
    for key in path:
        if obj is None:
            return None
        if isinstance(obj, dict):
            obj = obj.get(key)
        else:
            obj = getattr(obj, key, None)
    return obj


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _id_of(obj: Any) -> str:
    """Stripe expandable fields are either an id string or an object."""
    if obj is None:
        return ""
    if isinstance(obj, str):
        return obj
    return str(_get(obj, "id") or "")


class StripeGateway(GatewayAdapter):
    """Stripe adapter: event mapping and Session/Invoice retrieval."""

    name = Gateway.STRIPE
    default_currency = "USD"

    def __init__(self, verifier: SignatureVerifier, config: StripeGatewayConfig):
        super().__init__(verifier)
        self.config = config

    # =========================================================================
    # Notification Parsing
    # =========================================================================

    def parse_notification(
        self,
        body: bytes,
        query: Mapping[str, str] | None = None,
    ) -> WebhookNotification:
        payload = self.load_json(body)
        if payload is None:
            return WebhookNotification.ignored(self.name, "malformed")

        event_type = str(payload.get("type") or "")
        event_id = str(payload.get("id") or "")
        obj = _get(payload, "data", "object")
        if not isinstance(obj, dict):
            return WebhookNotification.ignored(self.name, event_type or "malformed", payload)

        object_id = str(obj.get("id") or "")
        customer_id = _id_of(obj.get("customer"))

        if event_type in CHECKOUT_SESSION_EVENTS:
            action = NotificationAction.PAYMENT
        elif event_type in INVOICE_EVENTS:
            if obj.get("billing_reason") == SUBSCRIPTION_CREATE_REASON:
                action = NotificationAction.IGNORED
            else:
                action = NotificationAction.PAYMENT
        elif event_type == "customer.subscription.deleted":
            action = NotificationAction.SUBSCRIPTION_CANCELED
        elif event_type == "customer.subscription.updated":
            status = obj.get("status")
            if status in PAST_DUE_SUBSCRIPTION_STATUSES:
                action = NotificationAction.SUBSCRIPTION_PAST_DUE
            elif status in CANCELED_SUBSCRIPTION_STATUSES:
                action = NotificationAction.SUBSCRIPTION_CANCELED
            else:
                action = NotificationAction.IGNORED
        else:
            action = NotificationAction.IGNORED

        if action == NotificationAction.PAYMENT and not object_id:
            action = NotificationAction.IGNORED

        return WebhookNotification(
            gateway=self.name,
            event_type=event_type,
            action=action,
            object_id=object_id,
            event_id=event_id,
            customer_id=customer_id,
            payload=payload,
        )

    # =========================================================================
    # Detail Fetch
    # =========================================================================

    def _client(self, timeout: float | None) -> stripe.StripeClient:
        """
        Stripe client for one detail fetch.

        Built per call so the deadline-capped timeout of one delivery never
        leaks into another through module-level SDK state.
        """
        if not self.config.secret_key:
            raise GatewayConfigurationError(
                "STRIPE_SECRET_KEY is not configured",
                details={"gateway": self.name},
            )
        effective_timeout = self.config.api_timeout_seconds
        if timeout is not None:
            effective_timeout = max(0.1, min(effective_timeout, timeout))
        return stripe.StripeClient(
            self.config.secret_key,
            http_client=stripe.RequestsClient(timeout=effective_timeout),
        )

    def fetch_payment_details(
        self,
        notification: WebhookNotification,
        timeout: float | None = None,
    ) -> PaymentDetails:
        client = self._client(timeout)
        logger = self.get_logger()

        log_context = {
            "operation": "fetch_payment_details",
            "event_type": notification.event_type,
            "object_id": notification.object_id,
        }
        start_time = time.time()

        try:
            if notification.event_type in INVOICE_EVENTS:
                details = self._invoice_details(
                    client.invoices.retrieve(notification.object_id),
                    notification.event_type,
                )
            else:
                details = self._session_details(
                    client.checkout.sessions.retrieve(notification.object_id),
                    notification.event_type,
                )
        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise

        logger.debug(
            "Stripe payment details fetched",
            extra={
                **log_context,
                "status": details.status,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return details

    def _session_details(self, session: Any, event_type: str) -> PaymentDetails:
        """
        Derive a status for a Checkout Session.

        Sessions have no single payment status: payment_status says whether
        money moved, status says whether the session is still open.
        """
        payment_status = _get(session, "payment_status")
        if payment_status in ("paid", "no_payment_required"):
            status = "paid"
        elif event_type == "checkout.session.async_payment_failed":
            status = "failed"
        elif _get(session, "status") == "expired":
            status = "expired"
        else:
            status = "unpaid"

        amount_total = _get(session, "amount_total") or 0
        return PaymentDetails(
            id=str(_get(session, "id")),
            status=status,
            amount=to_decimal(amount_total) / 100,
            currency=str(_get(session, "currency") or self.default_currency).upper(),
            metadata=_as_dict(_get(session, "metadata")),
            customer_id=_id_of(_get(session, "customer")),
        )

    def _invoice_details(self, invoice: Any, event_type: str) -> PaymentDetails:
        """
        Details for a subscription renewal invoice.

        Subscription metadata is copied onto the invoice by Stripe, under
        parent.subscription_details (current API) or subscription_details
        (older API versions).
        """
        status = _get(invoice, "status") or ""
        if event_type == "invoice.payment_failed" and status != "paid":
            status = "failed"

        metadata = _as_dict(_get(invoice, "parent", "subscription_details", "metadata"))
        if not metadata:
            metadata = _as_dict(_get(invoice, "subscription_details", "metadata"))
        metadata = {**_as_dict(_get(invoice, "metadata")), **metadata}
        metadata.setdefault("type", "subscription")

        price_id = self._invoice_price_id(invoice)
        if "plan_slug" not in metadata and price_id in self.config.price_plan_map:
            metadata["plan_slug"] = self.config.price_plan_map[price_id]

        amount = _get(invoice, "amount_paid") if status == "paid" else _get(invoice, "amount_due")
        return PaymentDetails(
            id=str(_get(invoice, "id")),
            status=status,
            amount=to_decimal(amount or 0) / 100,
            currency=str(_get(invoice, "currency") or self.default_currency).upper(),
            metadata=metadata,
            customer_id=_id_of(_get(invoice, "customer")),
            price_id=price_id,
            is_renewal=True,
        )

    @staticmethod
    def _invoice_price_id(invoice: Any) -> str:
        lines = _get(invoice, "lines", "data") or []
        for line in lines:
            price_id = _id_of(_get(line, "price")) or str(
                _get(line, "pricing", "price_details", "price") or ""
            )
            if price_id:
                return price_id
        return ""

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _handle_stripe_error(
        self,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to gateway exceptions.

        Raises:
            PaymentNotFoundError: The object id is unknown to Stripe
            GatewayUnavailableError: Rate limit, connection or server error
            GatewayError: Authentication and other permanent errors
        """
        logger = self.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}
        stripe_code = getattr(error, "code", None)

        if isinstance(error, stripe.InvalidRequestError):
            logger.error("Invalid request to Stripe", extra={**log_context, "stripe_code": stripe_code})
            if getattr(error, "http_status", None) == 404 or stripe_code == "resource_missing":
                raise PaymentNotFoundError(
                    str(error), gateway=self.name, gateway_code=stripe_code
                )
            raise GatewayError(str(error), gateway=self.name, gateway_code=stripe_code)

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise GatewayUnavailableError(
                "Stripe rate limit exceeded", gateway=self.name, gateway_code="rate_limit"
            )

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Could not connect to Stripe", gateway=self.name, gateway_code="api_connection_error"
            )

        if isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed - check API key", extra=log_context)
            raise GatewayError(
                "Stripe authentication failed", gateway=self.name, gateway_code="authentication_error"
            )

        logger.error(
            f"Stripe API error: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise GatewayUnavailableError(
            f"Stripe service error: {error}", gateway=self.name, gateway_code="api_error"
        )
