"""Tests for gateway data types and the gateway registry."""

from decimal import Decimal

import pytest

from billing.exceptions import GatewayConfigurationError
from billing.gateways import get_gateway
from billing.gateways.mercadopago_gateway import MercadoPagoGateway
from billing.gateways.stripe_gateway import StripeGateway
from billing.gateways.types import PaymentDetails, WebhookNotification, to_decimal
from billing.state_machines import Gateway, NotificationAction, PaymentKind


def _details(**metadata):
    return PaymentDetails(
        id="pay_1", status="approved", amount=Decimal("1.00"), currency="BRL", metadata=metadata
    )


class TestPaymentDetailsMetadata:
    @pytest.mark.parametrize(
        ("value", "kind"),
        [
            ("subscription", PaymentKind.SUBSCRIPTION),
            ("credits", PaymentKind.CREDITS),
            ("credit_purchase", PaymentKind.CREDITS),
            ("one_time", PaymentKind.ONE_TIME),
            ("something_else", PaymentKind.ONE_TIME),
            (None, PaymentKind.ONE_TIME),
        ],
    )
    def test_kind(self, value, kind):
        assert _details(type=value).kind == kind

    def test_kind_key_takes_precedence_over_type(self):
        assert _details(kind="credits", type="subscription").kind == PaymentKind.CREDITS

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("50", 50), (50, 50), ("50.0", 50), ("0", None), ("-1", None), ("1.5", None), ("x", None)],
    )
    def test_credits(self, value, expected):
        assert _details(credits=value).credits == expected

    def test_user_id_accepts_camel_case_key(self):
        assert _details(userId=42).user_id == "42"

    def test_missing_user_id(self):
        assert _details().user_id is None

    def test_plan_slug(self):
        assert _details(planSlug="pro").plan_slug == "pro"


class TestToDecimal:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(10, Decimal("10.00")), ("19.999", Decimal("20.00")), (None, Decimal("0.00")), ("abc", Decimal("0.00"))],
    )
    def test_parses_or_defaults_to_zero(self, value, expected):
        assert to_decimal(value) == expected


class TestWebhookNotification:
    def test_ignored_factory(self):
        notification = WebhookNotification.ignored(Gateway.STRIPE, "customer.created")

        assert notification.action == NotificationAction.IGNORED
        assert notification.is_payment is False


class TestRegistry:
    def test_builds_adapters_from_settings(self, gateway_settings):
        stripe_gateway = get_gateway(Gateway.STRIPE)

        assert isinstance(stripe_gateway, StripeGateway)
        assert stripe_gateway.config.secret_key == "sk_test_123"
        assert stripe_gateway.config.price_plan_map == {"price_pro_monthly": "pro"}
        assert isinstance(get_gateway(Gateway.MERCADOPAGO), MercadoPagoGateway)

    def test_adapters_are_cached(self, gateway_settings):
        assert get_gateway(Gateway.STRIPE) is get_gateway(Gateway.STRIPE)

    def test_unknown_gateway(self):
        with pytest.raises(GatewayConfigurationError):
            get_gateway("paypal")
