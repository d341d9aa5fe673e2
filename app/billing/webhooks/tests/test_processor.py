"""
Tests for WebhookProcessor: response codes for each delivery outcome.

401 invalid signature, 200 processed/duplicate/ignored/inconsistent,
503 transient failures that the gateway should redeliver.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import OperationalError

from billing.exceptions import (
    GatewayConfigurationError,
    GatewayUnavailableError,
    PaymentNotFoundError,
)
from billing.gateways import get_gateway
from billing.gateways.mercadopago_gateway import MercadoPagoGateway
from billing.gateways.types import PaymentDetails
from billing.ledger.models import CreditTransaction
from billing.ledger.services import CreditLedger
from billing.models import AuditEvent, PaymentRecord
from billing.state_machines import Gateway
from billing.tests.signing import (
    MERCADOPAGO_WEBHOOK_SECRET,
    mercadopago_notification,
    sign_mercadopago,
)
from billing.webhooks.processor import WebhookProcessor

REQUEST_ID = "req-0001"


def _signed(payment_id):
    body = mercadopago_notification(payment_id)
    headers = {
        "x-signature": sign_mercadopago(payment_id, REQUEST_ID, MERCADOPAGO_WEBHOOK_SECRET),
        "x-request-id": REQUEST_ID,
    }
    return body, headers, {"data.id": payment_id, "type": "payment"}


@pytest.fixture
def processor(db, gateway_settings):
    return WebhookProcessor(get_gateway(Gateway.MERCADOPAGO), deadline_seconds=15)


@pytest.fixture
def credit_details(user):
    return PaymentDetails(
        id="555",
        status="approved",
        amount=Decimal("20.00"),
        currency="BRL",
        metadata={"user_id": str(user.pk), "type": "credits", "credits": "40"},
    )


class TestSignature:
    def test_invalid_signature_returns_401_without_writes(self, processor):
        """Should reject the delivery and only log it."""
        body, headers, query = _signed("555")
        headers["x-signature"] = "ts=1,v1=deadbeef"

        with (
            patch.object(MercadoPagoGateway, "fetch_payment_details") as fetch,
            patch("billing.webhooks.processor.logger") as logger,
        ):
            response = processor.process(body, headers, query, ip_address="203.0.113.9")

        assert response.status_code == 401
        fetch.assert_not_called()
        assert not PaymentRecord.objects.exists()
        assert not AuditEvent.objects.exists()
        logger.warning.assert_called_once_with(
            "Webhook signature rejected",
            extra={"gateway": Gateway.MERCADOPAGO, "ip_address": "203.0.113.9"},
        )

    def test_repeated_unsigned_posts_leave_no_rows(self, processor):
        for _ in range(5):
            assert processor.process(b"{}", {}, {}).status_code == 401

        assert not AuditEvent.objects.exists()
        assert not CreditTransaction.objects.exists()

    def test_body_and_query_ids_differ_returns_401(self, processor):
        """Should reject a body id that the signed query id does not cover."""
        _, headers, query = _signed("555")
        body = mercadopago_notification("777")

        with patch.object(MercadoPagoGateway, "fetch_payment_details") as fetch:
            response = processor.process(body, headers, query)

        assert response.status_code == 401
        fetch.assert_not_called()
        assert not PaymentRecord.objects.exists()

    def test_unconfigured_secret_rejects(self, db, gateway_settings):
        gateway_settings.MERCADOPAGO_WEBHOOK_SECRET = ""
        processor = WebhookProcessor(get_gateway(Gateway.MERCADOPAGO), deadline_seconds=15)
        body, headers, query = _signed("555")

        assert processor.process(body, headers, query).status_code == 401

    def test_degraded_mode_accepts_unsigned(self, gateway_settings, credit_details):
        gateway_settings.MERCADOPAGO_WEBHOOK_SECRET = ""
        gateway_settings.BILLING_ALLOW_UNVERIFIED_WEBHOOKS = True
        processor = WebhookProcessor(get_gateway(Gateway.MERCADOPAGO), deadline_seconds=15)

        with patch.object(
            MercadoPagoGateway, "fetch_payment_details", return_value=credit_details
        ):
            response = processor.process(mercadopago_notification("555"), {}, {})

        assert response.status_code == 200


class TestSuccessfulDelivery:
    def test_approved_payment_returns_200_after_crediting(self, processor, user, credit_details):
        body, headers, query = _signed("555")

        with patch.object(
            MercadoPagoGateway, "fetch_payment_details", return_value=credit_details
        ):
            response = processor.process(body, headers, query)

        assert response.status_code == 200
        assert CreditLedger.get_balance(user.pk) == 40

    def test_redelivery_returns_200_without_fetch(self, processor, user, credit_details):
        """Should answer duplicates with 200 and no second gateway call."""
        body, headers, query = _signed("555")

        with patch.object(
            MercadoPagoGateway, "fetch_payment_details", return_value=credit_details
        ) as fetch:
            first = processor.process(body, headers, query)
            second = processor.process(body, headers, query)

        assert (first.status_code, second.status_code) == (200, 200)
        assert fetch.call_count == 1
        assert CreditLedger.get_balance(user.pk) == 40

    def test_ignored_topic_returns_200(self, processor):
        body = b'{"type": "merchant_order", "data": {"id": "777"}}'
        headers = {
            "x-signature": sign_mercadopago("777", REQUEST_ID, MERCADOPAGO_WEBHOOK_SECRET),
            "x-request-id": REQUEST_ID,
        }

        with patch.object(MercadoPagoGateway, "fetch_payment_details") as fetch:
            response = processor.process(body, headers, {"data.id": "777"})

        assert response.status_code == 200
        fetch.assert_not_called()

    def test_data_inconsistency_is_acknowledged(self, processor, user):
        """Should return 200 for a paid payment that cannot be applied."""
        details = PaymentDetails(
            id="555",
            status="approved",
            amount=Decimal("20.00"),
            currency="BRL",
            metadata={"type": "subscription", "plan_slug": "platinum", "user_id": str(user.pk)},
        )
        body, headers, query = _signed("555")

        with patch.object(MercadoPagoGateway, "fetch_payment_details", return_value=details):
            response = processor.process(body, headers, query)

        assert response.status_code == 200
        assert PaymentRecord.objects.paid().count() == 1


class TestTransientFailures:
    def test_gateway_unavailable_returns_503(self, processor, user):
        """Should ask for redelivery and commit nothing."""
        body, headers, query = _signed("555")

        with patch.object(
            MercadoPagoGateway,
            "fetch_payment_details",
            side_effect=GatewayUnavailableError("timeout", gateway=Gateway.MERCADOPAGO),
        ):
            response = processor.process(body, headers, query)

        assert response.status_code == 503
        assert not PaymentRecord.objects.exists()

    def test_payment_not_found_is_acknowledged(self, processor, user):
        """Should return 200: a redelivery cannot make an unknown id appear."""
        body, headers, query = _signed("555")

        with patch.object(
            MercadoPagoGateway,
            "fetch_payment_details",
            side_effect=PaymentNotFoundError("missing", gateway=Gateway.MERCADOPAGO),
        ):
            response = processor.process(body, headers, query)

        assert response.status_code == 200
        assert not PaymentRecord.objects.exists()

    def test_missing_credentials_returns_503(self, processor, user):
        body, headers, query = _signed("555")

        with patch.object(
            MercadoPagoGateway,
            "fetch_payment_details",
            side_effect=GatewayConfigurationError("no token"),
        ):
            response = processor.process(body, headers, query)

        assert response.status_code == 503

    def test_deadline_exceeded_returns_503(self, gateway_settings, user, credit_details):
        """Should answer 503 before touching the ledger when the budget is gone."""
        processor = WebhookProcessor(get_gateway(Gateway.MERCADOPAGO), deadline_seconds=0)
        body, headers, query = _signed("555")

        with patch.object(
            MercadoPagoGateway, "fetch_payment_details", return_value=credit_details
        ) as fetch:
            response = processor.process(body, headers, query)

        assert response.status_code == 503
        fetch.assert_not_called()
        assert CreditLedger.get_balance(user.pk) == 0

    def test_database_error_returns_503(self, processor, user, credit_details):
        body, headers, query = _signed("555")

        with (
            patch.object(
                MercadoPagoGateway, "fetch_payment_details", return_value=credit_details
            ),
            patch(
                "billing.webhooks.handlers.PaymentStateMachine.reconcile",
                side_effect=OperationalError("database is locked"),
            ),
        ):
            response = processor.process(body, headers, query)

        assert response.status_code == 503
