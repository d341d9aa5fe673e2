"""
Payment gateway adapters.

Usage:
    from billing.gateways import get_gateway

    gateway = get_gateway("mercadopago")
    notification = gateway.parse_notification(request.body, request.GET)
    details = gateway.fetch_payment_details(notification, timeout=5)
"""

from billing.gateways.base import GatewayAdapter
from billing.gateways.registry import get_gateway, reset_gateways
from billing.gateways.types import PaymentDetails, WebhookNotification

__all__ = [
    "GatewayAdapter",
    "PaymentDetails",
    "WebhookNotification",
    "get_gateway",
    "reset_gateways",
]
