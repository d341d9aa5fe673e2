"""Tests for the Mercado Pago gateway adapter."""

import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from billing.exceptions import (
    GatewayConfigurationError,
    GatewayError,
    GatewayUnavailableError,
    PaymentNotFoundError,
)
from billing.gateways.mercadopago_gateway import MercadoPagoGateway, MercadoPagoGatewayConfig
from billing.state_machines import NotificationAction, PaymentKind
from billing.tests.signing import mercadopago_notification
from billing.webhooks.signatures import MercadoPagoSignatureVerifier, WebhookSecretConfig

REQUESTS_GET = "billing.gateways.mercadopago_gateway.requests.get"


@pytest.fixture
def gateway():
    return MercadoPagoGateway(
        MercadoPagoSignatureVerifier(WebhookSecretConfig(secret="mp_unit")),
        MercadoPagoGatewayConfig(
            access_token="APP_USR-unit",
            api_base_url="https://api.mercadopago.test/",
            api_timeout_seconds=10,
            default_currency="BRL",
        ),
    )


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    return response


class TestParseNotification:
    def test_webhook_body(self, gateway):
        notification = gateway.parse_notification(mercadopago_notification("123"))

        assert notification.action == NotificationAction.PAYMENT
        assert notification.object_id == "123"
        assert notification.event_type == "payment.updated"
        assert notification.event_id == "9001"

    def test_ipn_query_string(self, gateway):
        """Should read topic and id from the query string of IPN deliveries."""
        notification = gateway.parse_notification(b"", {"topic": "payment", "id": "456"})

        assert notification.action == NotificationAction.PAYMENT
        assert notification.object_id == "456"

    def test_numeric_body_id(self, gateway):
        body = json.dumps({"type": "payment", "data": {"id": 789}}).encode()

        assert gateway.parse_notification(body).object_id == "789"

    def test_body_and_query_ids_differ(self, gateway):
        """Should ignore a delivery whose body and query name different payments."""
        notification = gateway.parse_notification(
            mercadopago_notification("777"), {"data.id": "555", "type": "payment"}
        )

        assert notification.action == NotificationAction.IGNORED
        assert notification.object_id == ""

    @pytest.mark.parametrize(
        "body",
        [
            json.dumps({"type": "merchant_order", "data": {"id": "1"}}).encode(),
            json.dumps({"type": "payment", "data": {}}).encode(),
            b"garbage",
        ],
    )
    def test_other_topics_and_missing_ids_are_ignored(self, gateway, body):
        assert gateway.parse_notification(body).action == NotificationAction.IGNORED


class TestFetchPaymentDetails:
    def _notification(self, gateway, payment_id="123"):
        return gateway.parse_notification(mercadopago_notification(payment_id))

    def test_approved_payment(self, gateway):
        """Should call the payments API and map the response."""
        payment = {
            "id": 123,
            "status": "approved",
            "transaction_amount": 29.9,
            "currency_id": "brl",
            "payer": {"id": 555},
            "metadata": {"user_id": "7", "type": "credits", "credits": 50},
        }

        with patch(REQUESTS_GET, return_value=_response(200, payment)) as get:
            details = gateway.fetch_payment_details(self._notification(gateway), timeout=4)

        get.assert_called_once_with(
            "https://api.mercadopago.test/v1/payments/123",
            headers={"Authorization": "Bearer APP_USR-unit"},
            timeout=4,
        )
        assert details.id == "123"
        assert details.status == "approved"
        assert details.amount == Decimal("29.90")
        assert details.currency == "BRL"
        assert details.customer_id == "555"
        assert details.kind == PaymentKind.CREDITS
        assert details.credits == 50

    def test_missing_currency_uses_default(self, gateway):
        with patch(REQUESTS_GET, return_value=_response(200, {"id": 1, "status": "pending"})):
            details = gateway.fetch_payment_details(self._notification(gateway, "1"))

        assert details.currency == "BRL"
        assert details.metadata == {}
        assert details.amount == Decimal("0.00")

    def test_timeout_uses_configured_value_without_budget(self, gateway):
        with patch(REQUESTS_GET, return_value=_response(200, {"id": 1})) as get:
            gateway.fetch_payment_details(self._notification(gateway, "1"))

        assert get.call_args.kwargs["timeout"] == 10

    def test_not_found(self, gateway):
        with patch(REQUESTS_GET, return_value=_response(404)):
            with pytest.raises(PaymentNotFoundError):
                gateway.fetch_payment_details(self._notification(gateway))

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_transient_http_errors_are_retryable(self, gateway, status_code):
        with patch(REQUESTS_GET, return_value=_response(status_code)):
            with pytest.raises(GatewayUnavailableError):
                gateway.fetch_payment_details(self._notification(gateway))

    def test_unauthorized_is_permanent(self, gateway):
        with patch(REQUESTS_GET, return_value=_response(401)):
            with pytest.raises(GatewayError) as exc_info:
                gateway.fetch_payment_details(self._notification(gateway))

        assert exc_info.value.is_retryable is False

    @pytest.mark.parametrize("error", [requests.Timeout("slow"), requests.ConnectionError("dns")])
    def test_network_errors_are_retryable(self, gateway, error):
        with patch(REQUESTS_GET, side_effect=error):
            with pytest.raises(GatewayUnavailableError):
                gateway.fetch_payment_details(self._notification(gateway))

    def test_unreadable_body_is_retryable(self, gateway):
        response = _response(200)
        response.json.side_effect = ValueError("no json")

        with patch(REQUESTS_GET, return_value=response):
            with pytest.raises(GatewayUnavailableError):
                gateway.fetch_payment_details(self._notification(gateway))

    def test_missing_access_token(self):
        gateway = MercadoPagoGateway(
            MercadoPagoSignatureVerifier(WebhookSecretConfig(secret="mp_unit")),
            MercadoPagoGatewayConfig(access_token=""),
        )

        with patch(REQUESTS_GET) as get:
            with pytest.raises(GatewayConfigurationError):
                gateway.fetch_payment_details(self._notification(gateway))

        get.assert_not_called()
