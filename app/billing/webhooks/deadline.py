"""
Processing budget for one webhook delivery.

Gateways give up on a delivery after a few seconds and redeliver later.
A delivery that cannot finish in time answers 503 instead, and only
before the ledger transaction starts: once the ledger has committed, the
response is always 200.
"""

from __future__ import annotations

import time

from billing.exceptions import WebhookDeadlineExceeded


class Deadline:
    """
    Monotonic time budget.

    Example:
        deadline = Deadline(15)
        deadline.check("detail fetch")
        gateway.fetch_payment_details(notification, timeout=deadline.remaining())
    """

    def __init__(self, budget_seconds: float, clock=time.monotonic):
        self.budget_seconds = budget_seconds
        self._clock = clock
        self._expires_at = clock() + budget_seconds

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self, stage: str) -> None:
        """
        Raise if the budget is used up before ``stage``.

        Raises:
            WebhookDeadlineExceeded
        """
        if self.expired:
            raise WebhookDeadlineExceeded(stage, self.budget_seconds)
