"""
AuditSink: durable audit log writes and best-effort notifications.

Both operations swallow and log their own failures. A broken audit table
or a dead Celery broker must never turn a committed payment into a failed
webhook (which would make the gateway retry a delivery that already
credited the user).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction

from billing.models import AuditEvent

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any

    from django.db.models import QuerySet

logger = logging.getLogger(__name__)


class AuditSink:
    """Append-only audit log and user notification dispatch."""

    @staticmethod
    def record(
        user_id: Any,
        event_type: str,
        payload: dict[str, Any] | None = None,
        resource_type: str = "",
        resource_id: str = "",
        ip_address: str | None = None,
    ) -> AuditEvent | None:
        """
        Append an audit event.

        Returns:
            The created AuditEvent, or None when the write failed
        """
        try:
            with transaction.atomic():
                event = AuditEvent.objects.create(
                    user_id=user_id,
                    event_type=event_type,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    payload=payload or {},
                    ip_address=ip_address,
                )
        except Exception:
            logger.exception(
                "Failed to write audit event",
                extra={"user_id": str(user_id), "event_type": event_type},
            )
            return None
        return event

    @staticmethod
    def notify(user_id: Any, template: str, data: dict[str, Any] | None = None) -> bool:
        """
        Queue a user notification.

        Delivery happens in the send_payment_notification Celery task and
        may fail or be retried without affecting the caller.

        Returns:
            True if the task was queued
        """
        from billing.tasks import send_payment_notification

        if user_id is None:
            return False
        try:
            send_payment_notification.delay(str(user_id), template, data or {})
        except Exception:
            logger.exception(
                "Failed to queue notification",
                extra={"user_id": str(user_id), "template": template},
            )
            return False
        return True

    @staticmethod
    def query(
        user_id: Any = None,
        event_type: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> QuerySet[AuditEvent]:
        """Audit events filtered by user, event type and [since, until)."""
        queryset = AuditEvent.objects.between(since, until)
        if user_id is not None:
            queryset = queryset.for_user(user_id)
        if event_type:
            queryset = queryset.filter(event_type=event_type)
        return queryset.order_by("-created_at")
