"""
Idempotency guard for payment notifications.

Gateways deliver at least once, so the same payment id can arrive many
times, concurrently or days apart. The key is (gateway, gateway_payment_id)
and a key is settled once a paid PaymentRecord exists for it.

The guard is only the fast path that skips the gateway fetch for
redeliveries. Exclusivity comes from the partial unique constraint on
PaymentRecord: the state machine inserts the paid row in a savepoint and
treats an IntegrityError as a duplicate.
"""

from __future__ import annotations

import logging

from billing.models import PaymentRecord

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """Duplicate detection for payment notifications."""

    @staticmethod
    def is_settled(gateway: str, gateway_payment_id: str) -> bool:
        """True when a paid record already exists for the key."""
        settled = PaymentRecord.objects.paid().for_key(gateway, gateway_payment_id).exists()
        if settled:
            logger.info(
                "Duplicate payment notification",
                extra={"gateway": gateway, "gateway_payment_id": gateway_payment_id},
            )
        return settled
