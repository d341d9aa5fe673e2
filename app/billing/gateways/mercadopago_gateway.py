"""
Mercado Pago gateway adapter.

Mercado Pago notifications only carry a resource id; the payment itself is
fetched from GET /v1/payments/{id}.

Notification body:
    {"type": "payment", "action": "payment.updated", "data": {"id": "123"}}

Older IPN-style deliveries put the id in the query string instead
(?type=payment&data.id=123 or ?topic=payment&id=123).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import requests

from billing.exceptions import (
    GatewayConfigurationError,
    GatewayError,
    GatewayUnavailableError,
    PaymentNotFoundError,
)
from billing.gateways.base import GatewayAdapter
from billing.gateways.types import PaymentDetails, WebhookNotification, to_decimal
from billing.state_machines import Gateway, NotificationAction
from billing.webhooks.signatures import DataIdMismatchError, resolve_mercadopago_data_id

if TYPE_CHECKING:
    from collections.abc import Mapping

    from billing.webhooks.signatures import SignatureVerifier


PAYMENT_TOPIC = "payment"


@dataclass(frozen=True)
class MercadoPagoGatewayConfig:
    """
    Settings for the Mercado Pago adapter.

    Attributes:
        access_token: API access token (APP_USR-...)
        api_base_url: API root, overridable for sandboxes
        api_timeout_seconds: HTTP timeout for API calls
        default_currency: Currency when the payment omits currency_id
    """

    access_token: str = ""
    api_base_url: str = "https://api.mercadopago.com"
    api_timeout_seconds: float = 10
    default_currency: str = "BRL"


class MercadoPagoGateway(GatewayAdapter):
    """Mercado Pago adapter: payment notifications and payment lookup."""

    name = Gateway.MERCADOPAGO
    default_currency = "BRL"

    def __init__(self, verifier: SignatureVerifier, config: MercadoPagoGatewayConfig):
        super().__init__(verifier)
        self.config = config
        self.default_currency = config.default_currency

    def parse_notification(
        self,
        body: bytes,
        query: Mapping[str, str] | None = None,
    ) -> WebhookNotification:
        query = query or {}
        payload = self.load_json(body) or {}

        topic = str(payload.get("type") or payload.get("topic") or query.get("type") or query.get("topic") or "")
        event_type = str(payload.get("action") or topic or "unknown")

        try:
            object_id = resolve_mercadopago_data_id(payload, query)
        except DataIdMismatchError:
            self.get_logger().warning(
                "Notification names different ids in body and query",
                extra={"event_type": event_type},
            )
            return WebhookNotification.ignored(self.name, event_type, payload)

        if topic != PAYMENT_TOPIC or not object_id:
            return WebhookNotification.ignored(self.name, event_type, payload)

        return WebhookNotification(
            gateway=self.name,
            event_type=event_type,
            action=NotificationAction.PAYMENT,
            object_id=object_id,
            event_id=str(payload.get("id") or ""),
            payload=payload,
        )

    def fetch_payment_details(
        self,
        notification: WebhookNotification,
        timeout: float | None = None,
    ) -> PaymentDetails:
        if not self.config.access_token:
            raise GatewayConfigurationError(
                "MERCADOPAGO_ACCESS_TOKEN is not configured",
                details={"gateway": self.name},
            )

        logger = self.get_logger()
        effective_timeout = self.config.api_timeout_seconds
        if timeout is not None:
            effective_timeout = max(0.1, min(effective_timeout, timeout))

        url = f"{self.config.api_base_url.rstrip('/')}/v1/payments/{notification.object_id}"
        log_context = {
            "operation": "fetch_payment_details",
            "payment_id": notification.object_id,
        }
        start_time = time.time()

        try:
            response = requests.get(
                url,
                headers={"Authorization": f"Bearer {self.config.access_token}"},
                timeout=effective_timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.error(
                "Connection error to Mercado Pago",
                extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
                exc_info=True,
            )
            raise GatewayUnavailableError(
                f"Could not reach Mercado Pago: {e}",
                gateway=self.name,
                gateway_code="connection_error",
            ) from e
        except requests.RequestException as e:
            logger.error("Mercado Pago request failed", extra=log_context, exc_info=True)
            raise GatewayError(str(e), gateway=self.name) from e

        log_context["http_status"] = response.status_code
        log_context["duration_ms"] = (time.time() - start_time) * 1000

        if response.status_code == 404:
            logger.error("Payment not found at Mercado Pago", extra=log_context)
            raise PaymentNotFoundError(
                f"Mercado Pago payment {notification.object_id} not found",
                gateway=self.name,
                gateway_code="not_found",
            )
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning("Mercado Pago unavailable", extra=log_context)
            raise GatewayUnavailableError(
                f"Mercado Pago returned HTTP {response.status_code}",
                gateway=self.name,
                gateway_code=str(response.status_code),
            )
        if response.status_code != 200:
            logger.error("Mercado Pago rejected payment lookup", extra=log_context)
            raise GatewayError(
                f"Mercado Pago returned HTTP {response.status_code}",
                gateway=self.name,
                gateway_code=str(response.status_code),
            )

        try:
            payment = response.json()
        except ValueError as e:
            logger.warning("Mercado Pago returned a non-JSON body", extra=log_context)
            raise GatewayUnavailableError(
                "Mercado Pago returned an unreadable body",
                gateway=self.name,
                gateway_code="invalid_body",
            ) from e

        logger.debug(
            "Mercado Pago payment details fetched",
            extra={**log_context, "status": payment.get("status")},
        )
        return self._to_details(notification.object_id, payment)

    def _to_details(self, payment_id: str, payment: dict[str, Any]) -> PaymentDetails:
        metadata = payment.get("metadata")
        payer = payment.get("payer")
        customer_id = ""
        if isinstance(payer, dict) and payer.get("id") is not None:
            customer_id = str(payer["id"])

        return PaymentDetails(
            id=str(payment.get("id") or payment_id),
            status=str(payment.get("status") or ""),
            amount=to_decimal(payment.get("transaction_amount") or 0),
            currency=str(payment.get("currency_id") or self.default_currency).upper(),
            metadata=metadata if isinstance(metadata, dict) else {},
            customer_id=customer_id,
        )
