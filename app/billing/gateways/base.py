"""
Gateway adapter interface.

Each payment gateway is wrapped by one adapter with three capabilities:

    verify_signature(body, headers, query) -> bool
    parse_notification(body, query) -> WebhookNotification
    fetch_payment_details(notification, timeout) -> PaymentDetails

The reconciliation core (idempotency guard, payment state machine,
ledger) only ever talks to this interface, so it is identical for every
gateway.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any

    from billing.gateways.types import PaymentDetails, WebhookNotification
    from billing.webhooks.signatures import SignatureVerifier


class GatewayAdapter(ABC):
    """
    Base class for gateway adapters.

    Subclasses set ``name`` and implement parse_notification and
    fetch_payment_details. Signature checks are delegated to the
    SignatureVerifier injected at construction.
    """

    name: str = ""
    default_currency: str = "USD"

    def __init__(self, verifier: SignatureVerifier):
        self.verifier = verifier

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def verify_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        query: Mapping[str, str] | None = None,
    ) -> bool:
        return self.verifier.verify(body, headers, query)

    @staticmethod
    def load_json(body: bytes) -> dict[str, Any] | None:
        """Decode a JSON object body; None for anything else."""
        try:
            payload = json.loads(body or b"")
        except (ValueError, UnicodeDecodeError):
            return None
        return payload if isinstance(payload, dict) else None

    @abstractmethod
    def parse_notification(
        self,
        body: bytes,
        query: Mapping[str, str] | None = None,
    ) -> WebhookNotification:
        """
        Map a webhook body onto a WebhookNotification.

        Never raises for malformed input: unknown or unparseable bodies
        become an IGNORED notification.
        """

    @abstractmethod
    def fetch_payment_details(
        self,
        notification: WebhookNotification,
        timeout: float | None = None,
    ) -> PaymentDetails:
        """
        Fetch the authoritative payment state for a PAYMENT notification.

        Amounts and metadata are always re-read from the gateway, never
        taken from the webhook body.

        Raises:
            GatewayUnavailableError: transient failure, redeliver later
            PaymentNotFoundError: the gateway does not know this id
            GatewayError: any other gateway failure
        """
