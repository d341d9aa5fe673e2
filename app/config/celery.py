"""
Celery application for the billing service.

Background work that must never sit on the webhook request path runs here:
- Payment confirmation emails (best-effort, retried with backoff)
- Periodic ledger consistency checks (scheduled through django-celery-beat)

Settings are read from Django settings with the CELERY_ prefix; tasks are
auto-discovered from each installed app's tasks.py.

Usage:
    from billing.tasks import send_payment_notification

    send_payment_notification.delay(user_id, "payment_confirmation", data)
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
