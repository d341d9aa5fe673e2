"""
URL configuration for the billing app.

All routes are prefixed with /api/v1/billing/ in config/urls.py.
"""

from django.urls import path

from billing.views import (
    AuditEventListView,
    BalanceView,
    ConsumeCreditView,
    CreditTransactionListView,
)
from billing.webhooks.views import mercadopago_webhook, stripe_webhook

app_name = "billing"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("webhooks/mercadopago/", mercadopago_webhook, name="mercadopago_webhook"),
    # Credits
    path("credits/", BalanceView.as_view(), name="credit_balance"),
    path("credits/transactions/", CreditTransactionListView.as_view(), name="credit_transactions"),
    path("credits/consume/", ConsumeCreditView.as_view(), name="consume_credit"),
    # Audit
    path("audit-events/", AuditEventListView.as_view(), name="audit_events"),
]
