"""Tests for the health check endpoint."""

import pytest
from django.urls import reverse

from billing.gateways import get_gateway
from billing.state_machines import Gateway


@pytest.mark.django_db
class TestHealthCheck:
    def test_reports_signature_modes(self, client, settings):
        settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
        settings.MERCADOPAGO_WEBHOOK_SECRET = ""
        settings.BILLING_ALLOW_UNVERIFIED_WEBHOOKS = True

        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["webhook_signatures"] == {
            "stripe": "verified",
            "mercadopago": "unverified",
        }

    def test_missing_secret_without_degraded_mode(self, client, settings):
        settings.MERCADOPAGO_WEBHOOK_SECRET = ""
        settings.BILLING_ALLOW_UNVERIFIED_WEBHOOKS = False

        response = client.get(reverse("health_check"))

        assert response.json()["webhook_signatures"]["mercadopago"] == "rejecting"

    def test_reports_the_verifier_in_use(self, client, settings):
        """Should describe the cached verifier that processes deliveries, not raw settings."""
        settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
        verifier = get_gateway(Gateway.STRIPE).verifier
        settings.STRIPE_WEBHOOK_SECRET = ""
        settings.BILLING_ALLOW_UNVERIFIED_WEBHOOKS = True

        response = client.get(reverse("health_check"))

        assert verifier.config.is_configured
        assert response.json()["webhook_signatures"]["stripe"] == "verified"
