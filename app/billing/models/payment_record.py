"""
PaymentRecord model.

One row per gateway notification that reached a terminal or semi-terminal
state. The (gateway, gateway_payment_id) pair is the idempotency key: any
number of pending/failed rows may exist for it, but at most one paid row,
enforced by a partial unique constraint.

Usage:
    from billing.models import PaymentRecord

    PaymentRecord.objects.paid().filter(
        gateway=Gateway.STRIPE, gateway_payment_id="cs_123"
    ).exists()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models

from billing.state_machines import Gateway, PaymentKind, PaymentStatus
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class PaymentRecordQuerySet(models.QuerySet):
    def paid(self):
        return self.filter(status=PaymentStatus.PAID)

    def for_key(self, gateway: str, gateway_payment_id: str):
        return self.filter(gateway=gateway, gateway_payment_id=gateway_payment_id)


class PaymentRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    A payment notification as reconciled by this service.

    Fields:
        user: Owning user, None when the notification could not be matched
        amount: Amount in gateway currency units (not cents)
        currency: ISO 4217 code as reported by the gateway
        gateway: Adapter that produced the record
        gateway_payment_id: Gateway-issued identifier (idempotency key)
        kind: subscription, credits or one_time
        status: pending, paid, failed or refunded
        metadata: Checkout metadata plus gateway context (plan slug, credits)

    Constraints:
        - one paid row per (gateway, gateway_payment_id)
        - amount >= 0
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payment_records",
        help_text="Owning user (empty when the payment could not be matched)",
    )

    # ==========================================================================
    # Gateway Identity
    # ==========================================================================

    gateway = models.CharField(
        max_length=20,
        choices=Gateway.choices,
        help_text="Gateway that reported this payment",
    )
    gateway_payment_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Payment identifier issued by the gateway",
    )

    # ==========================================================================
    # Amount & Classification
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Amount in gateway currency units",
    )
    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code",
    )
    kind = models.CharField(
        max_length=20,
        choices=PaymentKind.choices,
        help_text="What the payment buys",
    )
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        db_index=True,
        help_text="Reconciled payment status",
    )

    # ==========================================================================
    # Metadata
    # ==========================================================================

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Checkout metadata and gateway context",
    )

    objects = PaymentRecordQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Record"
        verbose_name_plural = "Payment Records"
        indexes = [
            models.Index(fields=["gateway", "gateway_payment_id"], name="payrec_gateway_payment_idx"),
            models.Index(fields=["user", "created_at"], name="payrec_user_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["gateway", "gateway_payment_id"],
                condition=models.Q(status=PaymentStatus.PAID),
                name="payment_record_single_paid_per_key",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="payment_record_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"PaymentRecord({self.gateway}:{self.gateway_payment_id}, "
            f"{self.status}, {self.amount} {self.currency})"
        )

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID
