"""
Credit ledger exceptions.

Exception Hierarchy:
    LedgerError (base)
    ├── AccountNotFoundError - No billing account for the user
    ├── InsufficientCreditsError - Balance is zero, nothing to consume
    └── ImmutableTransactionError - Attempt to change a ledger entry
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any


class LedgerError(BaseApplicationError):
    """Base exception for credit ledger operations."""

    default_error_code: str = "LEDGER_ERROR"


class AccountNotFoundError(LedgerError):
    """
    Raised when a user has no billing account and none can be created.

    Example:
        raise AccountNotFoundError(
            f"No billing account for user {user_id}",
            details={"user_id": str(user_id)},
        )
    """

    default_error_code: str = "ACCOUNT_NOT_FOUND"


class InsufficientCreditsError(LedgerError):
    """
    Raised when consuming a credit from an empty balance.

    Surfaced to API clients as HTTP 402 with error_code NO_CREDITS.
    """

    default_error_code: str = "NO_CREDITS"

    def __init__(
        self,
        user_id: Any,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.user_id = user_id
        full_details = {"user_id": str(user_id)}
        if details:
            full_details.update(details)
        super().__init__(
            message="No credits available",
            error_code=error_code,
            details=full_details,
        )


class ImmutableTransactionError(LedgerError):
    """Raised when code tries to update or delete a CreditTransaction."""

    default_error_code: str = "IMMUTABLE_TRANSACTION"
