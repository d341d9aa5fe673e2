"""Smoke tests for the billing admin pages."""

import pytest
from django.urls import reverse

from billing.tests.factories import AuditEventFactory, PaymentRecordFactory


@pytest.fixture
def admin_client_with_data(client, admin_user):
    PaymentRecordFactory()
    AuditEventFactory()
    client.force_login(admin_user)
    return client


@pytest.mark.parametrize(
    "model",
    ["plan", "useraccount", "paymentrecord", "credittransaction", "auditevent"],
)
def test_changelist_renders(admin_client_with_data, model):
    response = admin_client_with_data.get(reverse(f"admin:billing_{model}_changelist"))

    assert response.status_code == 200


def test_payment_records_cannot_be_added(admin_client_with_data):
    """Should keep reconciled records out of manual editing."""
    response = admin_client_with_data.get(reverse("admin:billing_paymentrecord_add"))

    assert response.status_code == 403
