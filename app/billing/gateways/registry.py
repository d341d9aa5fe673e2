"""
Gateway registry.

Builds gateway adapters (with their signature verifiers) from Django
settings. Adapters are cached per process; tests that override settings
call reset_gateways().

Usage:
    from billing.gateways import get_gateway

    gateway = get_gateway("stripe")
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING

from django.conf import settings

from billing.exceptions import GatewayConfigurationError
from billing.gateways.mercadopago_gateway import MercadoPagoGateway, MercadoPagoGatewayConfig
from billing.gateways.stripe_gateway import StripeGateway, StripeGatewayConfig
from billing.state_machines import Gateway
from billing.webhooks.signatures import (
    MercadoPagoSignatureVerifier,
    StripeSignatureVerifier,
    WebhookSecretConfig,
)

if TYPE_CHECKING:
    from billing.gateways.base import GatewayAdapter


def build_stripe_gateway() -> StripeGateway:
    verifier = StripeSignatureVerifier(
        WebhookSecretConfig(
            secret=settings.STRIPE_WEBHOOK_SECRET,
            allow_unverified=settings.BILLING_ALLOW_UNVERIFIED_WEBHOOKS,
            tolerance_seconds=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    )
    config = StripeGatewayConfig(
        secret_key=settings.STRIPE_SECRET_KEY,
        api_timeout_seconds=settings.STRIPE_API_TIMEOUT_SECONDS,
        price_plan_map=dict(settings.STRIPE_PRICE_PLAN_MAP),
    )
    return StripeGateway(verifier, config)


def build_mercadopago_gateway() -> MercadoPagoGateway:
    verifier = MercadoPagoSignatureVerifier(
        WebhookSecretConfig(
            secret=settings.MERCADOPAGO_WEBHOOK_SECRET,
            allow_unverified=settings.BILLING_ALLOW_UNVERIFIED_WEBHOOKS,
        )
    )
    config = MercadoPagoGatewayConfig(
        access_token=settings.MERCADOPAGO_ACCESS_TOKEN,
        api_base_url=settings.MERCADOPAGO_API_BASE_URL,
        api_timeout_seconds=settings.MERCADOPAGO_API_TIMEOUT_SECONDS,
        default_currency=settings.BILLING_DEFAULT_CURRENCY,
    )
    return MercadoPagoGateway(verifier, config)


GATEWAY_BUILDERS = {
    Gateway.STRIPE: build_stripe_gateway,
    Gateway.MERCADOPAGO: build_mercadopago_gateway,
}


@functools.cache
def get_gateway(name: str) -> GatewayAdapter:
    """
    Return the adapter for a gateway name.

    Raises:
        GatewayConfigurationError: Unknown gateway name
    """
    try:
        builder = GATEWAY_BUILDERS[name]
    except KeyError:
        raise GatewayConfigurationError(
            f"Unknown payment gateway: {name}",
            details={"gateway": name},
        ) from None
    return builder()


def reset_gateways() -> None:
    """Drop cached adapters so the next lookup re-reads settings."""
    get_gateway.cache_clear()
