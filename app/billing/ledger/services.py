"""
Credit ledger service.

All credit balance changes go through CreditLedger. Every write:
- locks the user's account row (SELECT ... FOR UPDATE) for the duration of
  the transaction, so concurrent writers for one user are serialized,
- changes the balance with a storage-level expression
  (UPDATE ... SET credits = credits + delta), never a value computed in
  Python from an earlier read,
- appends the matching CreditTransaction in the same transaction.

Either both the balance change and the ledger entry commit, or neither does.

Usage:
    from billing.ledger.services import CreditLedger

    CreditLedger.apply_credit(
        user_id=user.id,
        amount=100,
        type=CreditTransactionType.BONUS,
        description="Pro plan bonus credits",
        reference_id=str(record.id),
        idempotency_key=f"bonus:{record.id}",
    )

    CreditLedger.consume_credit(user.id, reference_id="document:42")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F, IntegerField, OuterRef, Subquery, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from billing.ledger.exceptions import AccountNotFoundError, InsufficientCreditsError
from billing.ledger.models import CreditTransaction
from billing.ledger.types import BalanceCheck
from billing.models import UserAccount
from billing.state_machines import AuditEventType, CreditTransactionType
from core.exceptions import ValidationError

if TYPE_CHECKING:
    from typing import Any

    from django.db.models import QuerySet

logger = logging.getLogger(__name__)


class CreditLedger:
    """
    Service for credit balance operations.

    Stateless; all methods are static.
    """

    # ==========================================================================
    # Account Access
    # ==========================================================================

    @staticmethod
    def lock_account(user_id: Any) -> UserAccount:
        """
        Lock and return the user's account row, creating it if missing.

        Must be called inside transaction.atomic().

        Raises:
            AccountNotFoundError: No user with this id exists
        """
        try:
            return UserAccount.objects.select_for_update().get(user_id=user_id)
        except UserAccount.DoesNotExist:
            pass
        except (ValueError, TypeError, DjangoValidationError):
            raise AccountNotFoundError(
                f"Invalid user id {user_id!r}",
                details={"user_id": str(user_id)},
            )

        # Accounts are created on user signup; this covers users that
        # predate the billing app.
        if not get_user_model().objects.filter(pk=user_id).exists():
            raise AccountNotFoundError(
                f"No user {user_id}",
                details={"user_id": str(user_id)},
            )
        UserAccount.objects.get_or_create(user_id=user_id)
        return UserAccount.objects.select_for_update().get(user_id=user_id)

    @staticmethod
    def _current_balance(user_id: Any) -> int:
        return UserAccount.objects.values_list("credits", flat=True).get(user_id=user_id)

    # ==========================================================================
    # Writes
    # ==========================================================================

    @staticmethod
    def apply_credit(
        user_id: Any,
        amount: int,
        type: str,
        description: str = "",
        reference_id: str = "",
        idempotency_key: str | None = None,
    ) -> CreditTransaction:
        """
        Add credits to a user's balance and append the ledger entry.

        Idempotent when idempotency_key is given: a repeated key returns the
        entry recorded the first time and leaves the balance unchanged.

        Args:
            user_id: Account owner
            amount: Credits to add (must be positive)
            type: CreditTransactionType (purchase, bonus or refund)
            description: Human-readable description
            reference_id: PaymentRecord id that caused the credit
            idempotency_key: Optional unique key for this credit

        Returns:
            The created (or previously recorded) CreditTransaction

        Raises:
            ValidationError: amount is not a positive integer
            AccountNotFoundError: user does not exist
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError(
                "Credit amount must be a positive integer",
                error_code="INVALID_CREDIT_AMOUNT",
                details={"amount": amount},
            )

        with transaction.atomic():
            account = CreditLedger.lock_account(user_id)

            if idempotency_key:
                existing = CreditTransaction.objects.filter(
                    idempotency_key=idempotency_key
                ).first()
                if existing is not None:
                    logger.info(
                        "Credit already applied",
                        extra={
                            "user_id": str(user_id),
                            "idempotency_key": idempotency_key,
                            "transaction_id": str(existing.id),
                        },
                    )
                    return existing

            UserAccount.objects.filter(pk=account.pk).update(
                credits=F("credits") + amount,
                updated_at=timezone.now(),
            )
            balance = CreditLedger._current_balance(account.pk)

            entry = CreditTransaction.objects.create(
                user_id=account.pk,
                amount=amount,
                type=type,
                description=description,
                reference_id=reference_id,
                idempotency_key=idempotency_key,
                balance_after=balance,
            )

        logger.info(
            "Credits applied",
            extra={
                "user_id": str(user_id),
                "amount": amount,
                "type": type,
                "reference_id": reference_id,
                "balance": balance,
            },
        )
        return entry

    @staticmethod
    def consume_credit(
        user_id: Any,
        reference_id: str = "",
        description: str = "Credit consumed",
    ) -> CreditTransaction:
        """
        Take one credit from a user's balance.

        The decrement is conditional (WHERE credits > 0), so the balance can
        never go negative even under concurrent consumption.

        Args:
            user_id: Account owner
            reference_id: Document action that consumed the credit
            description: Human-readable description

        Returns:
            The created CreditTransaction (amount -1)

        Raises:
            InsufficientCreditsError: balance is zero
            AccountNotFoundError: user does not exist
        """
        from billing.audit import AuditSink

        with transaction.atomic():
            account = CreditLedger.lock_account(user_id)

            updated = UserAccount.objects.filter(pk=account.pk, credits__gt=0).update(
                credits=F("credits") - 1,
                updated_at=timezone.now(),
            )
            if not updated:
                raise InsufficientCreditsError(user_id)

            balance = CreditLedger._current_balance(account.pk)
            entry = CreditTransaction.objects.create(
                user_id=account.pk,
                amount=-1,
                type=CreditTransactionType.CONSUMPTION,
                description=description,
                reference_id=reference_id,
                balance_after=balance,
            )

            transaction.on_commit(
                lambda: AuditSink.record(
                    account.pk,
                    AuditEventType.CREDIT_CONSUMED,
                    {"reference_id": reference_id, "balance": balance},
                    resource_type="credit_transaction",
                    resource_id=str(entry.id),
                )
            )

        logger.info(
            "Credit consumed",
            extra={
                "user_id": str(user_id),
                "reference_id": reference_id,
                "balance": balance,
            },
        )
        return entry

    @staticmethod
    def apply_correction(
        user_id: Any,
        amount: int,
        description: str,
        reference_id: str = "",
    ) -> CreditTransaction:
        """
        Record a signed manual correction (type REFUND).

        Ledger entries are never edited; mistakes are fixed by appending an
        offsetting entry. A negative correction cannot take the balance
        below zero.

        Raises:
            ValidationError: amount is zero, or would make the balance negative
            AccountNotFoundError: user does not exist
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount == 0:
            raise ValidationError(
                "Correction amount must be a non-zero integer",
                error_code="INVALID_CREDIT_AMOUNT",
                details={"amount": amount},
            )

        with transaction.atomic():
            account = CreditLedger.lock_account(user_id)

            updated = UserAccount.objects.filter(
                pk=account.pk, credits__gte=-amount
            ).update(
                credits=F("credits") + amount,
                updated_at=timezone.now(),
            )
            if not updated:
                raise ValidationError(
                    "Correction would make the balance negative",
                    error_code="NEGATIVE_BALANCE",
                    details={"user_id": str(user_id), "amount": amount},
                )

            balance = CreditLedger._current_balance(account.pk)
            entry = CreditTransaction.objects.create(
                user_id=account.pk,
                amount=amount,
                type=CreditTransactionType.REFUND,
                description=description,
                reference_id=reference_id,
                balance_after=balance,
            )

        logger.warning(
            "Credit correction recorded",
            extra={"user_id": str(user_id), "amount": amount, "balance": balance},
        )
        return entry

    # ==========================================================================
    # Reads
    # ==========================================================================

    @staticmethod
    def get_balance(user_id: Any) -> int:
        """
        Current credit balance.

        Raises:
            AccountNotFoundError: user has no billing account
        """
        try:
            balance = (
                UserAccount.objects.filter(user_id=user_id)
                .values_list("credits", flat=True)
                .first()
            )
        except (ValueError, TypeError, DjangoValidationError):
            balance = None
        if balance is None:
            raise AccountNotFoundError(
                f"No billing account for user {user_id}",
                details={"user_id": str(user_id)},
            )
        return balance

    @staticmethod
    def list_transactions(user_id: Any, limit: int | None = None) -> QuerySet[CreditTransaction]:
        """User's ledger entries, most recent first."""
        queryset = CreditTransaction.objects.for_user(user_id).order_by("-created_at")
        if limit is not None:
            queryset = queryset[:limit]
        return queryset

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    @staticmethod
    def reconcile_balance(user_id: Any) -> BalanceCheck:
        """Compare the denormalized balance with the ledger sum for one user."""
        return BalanceCheck(
            user_id=user_id,
            balance=CreditLedger.get_balance(user_id),
            ledger_total=CreditTransaction.objects.for_user(user_id).total(),
        )

    @staticmethod
    def find_inconsistent_accounts() -> list[BalanceCheck]:
        """
        Accounts whose balance differs from the sum of their ledger entries.

        Single query: each account is annotated with its ledger total.
        """
        ledger_total = (
            CreditTransaction.objects.filter(user_id=OuterRef("user_id"))
            .order_by()
            .values("user_id")
            .annotate(total=Sum("amount"))
            .values("total")
        )
        accounts = (
            UserAccount.objects.annotate(
                ledger_total=Coalesce(
                    Subquery(ledger_total, output_field=IntegerField()), 0
                )
            )
            .exclude(credits=F("ledger_total"))
            .values_list("user_id", "credits", "ledger_total")
        )
        return [
            BalanceCheck(user_id=user_id, balance=credits, ledger_total=total)
            for user_id, credits, total in accounts
        ]
