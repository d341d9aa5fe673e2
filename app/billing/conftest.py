"""
Pytest fixtures shared by the billing test packages.

Usage:
    def test_activation(user, pro_plan):
        SubscriptionResolver.activate_subscription(user.pk, pro_plan.slug, "ref-1")
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from billing.gateways.types import PaymentDetails
from billing.tests.factories import AdminUserFactory, PlanFactory, UserFactory
from billing.tests.signing import MERCADOPAGO_WEBHOOK_SECRET, STRIPE_WEBHOOK_SECRET


# =============================================================================
# Celery
# =============================================================================


@pytest.fixture(autouse=True)
def notification_queue():
    """Capture queued notifications instead of reaching the broker."""
    with patch("billing.tasks.send_payment_notification.delay") as delay:
        yield delay


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user (with billing account)."""
    return UserFactory()


@pytest.fixture
def account(user):
    """Billing account of the test user."""
    return user.billing_account


@pytest.fixture
def admin_user(db):
    return AdminUserFactory()


# =============================================================================
# Plan Fixtures
# =============================================================================


@pytest.fixture
def free_plan(db):
    return PlanFactory(
        slug="free",
        name="Free",
        credits_included=3,
        price_monthly=Decimal("0.00"),
        price_annual=Decimal("0.00"),
        is_default=True,
    )


@pytest.fixture
def basic_plan(db):
    return PlanFactory(
        slug="basic",
        name="Basic",
        credits_included=0,
        price_monthly=Decimal("19.00"),
        price_annual=Decimal("190.00"),
    )


@pytest.fixture
def pro_plan(db):
    return PlanFactory(
        slug="pro",
        name="Pro",
        credits_included=100,
        price_monthly=Decimal("49.00"),
        price_annual=Decimal("490.00"),
    )


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def authenticated_client(api_client, user):
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def admin_api_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


# =============================================================================
# Gateway Fixtures
# =============================================================================


@pytest.fixture
def gateway_settings(settings):
    """Configure both gateways with test secrets and credentials."""
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = STRIPE_WEBHOOK_SECRET
    settings.STRIPE_PRICE_PLAN_MAP = {"price_pro_monthly": "pro"}
    settings.MERCADOPAGO_ACCESS_TOKEN = "APP_USR-test-token"
    settings.MERCADOPAGO_WEBHOOK_SECRET = MERCADOPAGO_WEBHOOK_SECRET
    settings.BILLING_ALLOW_UNVERIFIED_WEBHOOKS = False
    settings.BILLING_WEBHOOK_DEADLINE_SECONDS = 15.0
    return settings


@pytest.fixture
def make_details(user):
    """
    Build PaymentDetails for the test user.

    Usage:
        details = make_details(status="approved", type="credits", credits="50")
    """

    def _make(
        payment_id="pay_test_1",
        status="approved",
        amount="49.00",
        currency="BRL",
        customer_id="",
        price_id="",
        is_renewal=False,
        with_user=True,
        **metadata,
    ):
        if with_user:
            metadata.setdefault("user_id", str(user.pk))
        return PaymentDetails(
            id=payment_id,
            status=status,
            amount=Decimal(amount),
            currency=currency,
            metadata=metadata,
            customer_id=customer_id,
            price_id=price_id,
            is_renewal=is_renewal,
        )

    return _make
