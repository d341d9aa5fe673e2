"""
Django signals for the billing app.

- Every new user gets a UserAccount (zero credits, no plan).

Connected in BillingConfig.ready().
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from billing.models import UserAccount

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_billing_account(sender, instance, created, raw=False, **kwargs):
    """Create the billing account for a newly created user."""
    if not created or raw:
        return

    _, account_created = UserAccount.objects.get_or_create(user=instance)
    if account_created:
        logger.info("Billing account created", extra={"user_id": str(instance.pk)})
