"""
AuditEvent model: append-only audit log.

Written by billing.audit.AuditSink after ledger transactions commit and
read by the admin/observability surface, filtered by user, event type and
time range.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from billing.state_machines import AuditEventType
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class AuditEventQuerySet(models.QuerySet):
    def for_user(self, user_id):
        return self.filter(user_id=user_id)

    def between(self, since=None, until=None):
        queryset = self
        if since is not None:
            queryset = queryset.filter(created_at__gte=since)
        if until is not None:
            queryset = queryset.filter(created_at__lt=until)
        return queryset


class AuditEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    One audit log entry.

    Rows are never updated: save() on an existing row raises.

    Fields:
        user: Subject of the event (None for unmatched payments, rejections)
        event_type: AuditEventType value
        resource_type: Kind of object the event refers to ("payment_record")
        resource_id: Identifier of that object
        payload: Event details
        ip_address: Source address of the triggering request, when known
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_events",
        help_text="User the event is about",
    )
    event_type = models.CharField(
        max_length=50,
        choices=AuditEventType.choices,
        help_text="What happened",
    )
    resource_type = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Kind of object the event refers to",
    )
    resource_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Identifier of the object the event refers to",
    )
    payload = models.JSONField(
        default=dict,
        blank=True,
        help_text="Event details",
    )
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True,
        help_text="Source address of the triggering request",
    )

    objects = AuditEventQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Audit Event"
        verbose_name_plural = "Audit Events"
        indexes = [
            models.Index(fields=["user", "created_at"], name="audit_user_created_idx"),
            models.Index(fields=["event_type", "created_at"], name="audit_type_created_idx"),
        ]

    def __str__(self) -> str:
        return f"AuditEvent({self.event_type}, user={self.user_id})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Audit events are append-only")
        super().save(*args, **kwargs)
