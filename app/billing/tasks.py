"""
Celery tasks for the billing app.

- send_payment_notification: email the user after a committed payment
- verify_ledger_consistency: periodic balance vs. ledger drift check
  (scheduled by migration 0003 through django-celery-beat)

Usage:
    from billing.tasks import send_payment_notification

    send_payment_notification.delay(str(user.id), "payment_confirmation", {...})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from billing.ledger.services import CreditLedger

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_NOTIFICATION_RETRIES = 5

NOTIFICATION_SUBJECTS = {
    "payment_confirmation": "Payment confirmed",
}


# =============================================================================
# Notification Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_NOTIFICATION_RETRIES},
    acks_late=True,
)
def send_payment_notification(self, user_id: str, template: str, data: dict[str, Any]) -> bool:
    """
    Email a billing notification to a user.

    Renders billing/email/<template>.txt and .html. Users without an
    email address are skipped. Send errors are retried with backoff.

    Args:
        user_id: Recipient user id
        template: Template name ("payment_confirmation")
        data: Template context

    Returns:
        True if sent, False if skipped
    """
    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None or not user.email:
        logger.info(
            "Notification skipped: no recipient email",
            extra={"user_id": user_id, "template": template},
        )
        return False

    context = {**data, "user": user}
    text_content = render_to_string(f"billing/email/{template}.txt", context)
    html_content = render_to_string(f"billing/email/{template}.html", context)

    email = EmailMultiAlternatives(
        subject=NOTIFICATION_SUBJECTS.get(template, "Billing update"),
        body=text_content,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[user.email],
    )
    email.attach_alternative(html_content, "text/html")
    email.send(fail_silently=False)

    logger.info(
        "Notification sent",
        extra={"user_id": user_id, "template": template, "attempt": self.request.retries + 1},
    )
    return True


# =============================================================================
# Periodic Tasks
# =============================================================================


@shared_task
def verify_ledger_consistency() -> dict:
    """
    Compare every account balance with the sum of its ledger entries.

    Drift means a balance was written outside CreditLedger and needs a
    manual correction; this task only reports it.

    Returns:
        Dict with the number of inconsistent accounts and their user ids
    """
    inconsistent = CreditLedger.find_inconsistent_accounts()

    for check in inconsistent:
        logger.error(
            "Credit balance does not match ledger",
            extra={
                "user_id": str(check.user_id),
                "balance": check.balance,
                "ledger_total": check.ledger_total,
                "drift": check.drift,
            },
        )

    if not inconsistent:
        logger.info("Ledger consistency check passed")

    return {
        "inconsistent_accounts": len(inconsistent),
        "user_ids": [str(check.user_id) for check in inconsistent],
    }
