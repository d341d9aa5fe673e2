"""
Data types for credit ledger operations.

Types:
    BalanceCheck: Result of comparing the denormalized balance with the ledger
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class BalanceCheck:
    """
    Denormalized balance versus the sum of the user's ledger entries.

    Attributes:
        user_id: Account owner
        balance: UserAccount.credits
        ledger_total: Sum of CreditTransaction.amount for the user
    """

    user_id: Any
    balance: int
    ledger_total: int

    @property
    def is_consistent(self) -> bool:
        return self.balance == self.ledger_total

    @property
    def drift(self) -> int:
        """How far the counter is ahead of the ledger (negative: behind)."""
        return self.balance - self.ledger_total
