"""
Credit ledger model.

CreditTransaction is the append-only log behind UserAccount.credits. Rows
are only created through CreditLedger, which changes the balance and
appends the entry in the same database transaction.

Usage:
    from billing.ledger.models import CreditTransaction

    CreditTransaction.objects.for_user(user_id).total()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce

from billing.ledger.exceptions import ImmutableTransactionError
from billing.state_machines import CreditTransactionType
from core.model_mixins import UUIDPrimaryKeyMixin


class CreditTransactionQuerySet(models.QuerySet):
    def for_user(self, user_id):
        return self.filter(user_id=user_id)

    def total(self) -> int:
        """Sum of amounts in the queryset (0 when empty)."""
        return self.aggregate(total=Coalesce(Sum("amount"), 0))["total"]


class CreditTransaction(UUIDPrimaryKeyMixin, models.Model):
    """
    One balance-changing event.

    Entries are immutable once created; corrections are new offsetting
    entries of type REFUND.

    Fields:
        id: UUID primary key (from UUIDPrimaryKeyMixin)
        created_at: When the entry was recorded
        user: Account owner
        amount: Signed credit delta (positive credit, negative consumption)
        type: purchase, bonus, consumption or refund
        description: Human-readable description
        reference_id: PaymentRecord id or document action that caused it
        idempotency_key: Optional unique key; a repeat returns the first entry
        balance_after: Balance right after this entry was applied

    Constraints:
        - amount != 0
        - idempotency_key unique when set
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="credit_transactions",
        help_text="Owner of the credited/debited account",
    )
    amount = models.IntegerField(
        help_text="Signed credit delta (positive credit, negative consumption)",
    )
    type = models.CharField(
        max_length=20,
        choices=CreditTransactionType.choices,
        help_text="Reason for the balance change",
    )
    description = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Human-readable description of this entry",
    )
    reference_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="PaymentRecord id or document action that caused this entry",
    )
    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Unique key to prevent duplicate entries",
    )
    balance_after = models.IntegerField(
        help_text="Account balance immediately after this entry",
    )

    objects = CreditTransactionQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Credit Transaction"
        verbose_name_plural = "Credit Transactions"
        indexes = [
            models.Index(fields=["user", "created_at"], name="credit_tx_user_created_idx"),
            models.Index(fields=["type"], name="credit_tx_type_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(amount=0),
                name="credit_transaction_amount_non_zero",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_type_display()}: {self.amount:+d} credits"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableTransactionError(
                "Credit transactions cannot be modified",
                details={"transaction_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableTransactionError(
            "Credit transactions cannot be deleted",
            details={"transaction_id": str(self.pk)},
        )
