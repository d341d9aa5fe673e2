"""
Webhook endpoint views.

Gateways POST here directly, so the views are CSRF-exempt and
authenticated only by the webhook signature.

Usage:
    # In billing/urls.py
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("webhooks/mercadopago/", mercadopago_webhook, name="mercadopago_webhook"),
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from billing.gateways import get_gateway
from billing.state_machines import Gateway
from billing.webhooks.processor import WebhookProcessor

logger = logging.getLogger(__name__)


def _process(gateway_name: str, request: HttpRequest) -> HttpResponse:
    processor = WebhookProcessor(
        get_gateway(gateway_name),
        deadline_seconds=settings.BILLING_WEBHOOK_DEADLINE_SECONDS,
    )
    logger.debug(
        f"Received {gateway_name} webhook",
        extra={"content_length": len(request.body)},
    )
    return processor.process(
        request.body,
        request.headers,
        request.GET.dict(),
        ip_address=request.META.get("REMOTE_ADDR"),
    )


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive Stripe webhook events.

    Expects the Stripe-Signature header:
        t=1614556800,v1=xxx
    """
    return _process(Gateway.STRIPE, request)


@csrf_exempt
@require_POST
def mercadopago_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive Mercado Pago notifications.

    Expects the x-signature (ts=...,v1=...) and x-request-id headers; the
    payment id may come in the body (data.id) or as ?data.id=.
    """
    return _process(Gateway.MERCADOPAGO, request)
