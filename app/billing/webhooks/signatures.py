"""
Webhook signature verification.

One verifier instance per gateway, built from an explicit
WebhookSecretConfig. Verifiers never read settings themselves.

Schemes:
    Stripe:
        Stripe-Signature: t=<unix ts>,v1=<hex>[,v1=<hex>...]
        Checked with stripe.WebhookSignature.verify_header, which also
        enforces tolerance_seconds on the timestamp.
    Mercado Pago:
        x-signature: ts=<ts>,v1=<hex>    x-request-id: <uuid>
        HMAC-SHA256(secret, "id:<data.id>;request-id:<x-request-id>;ts:<ts>;"), hex
        data.id is the same id the adapter goes on to fetch (see
        resolve_mercadopago_data_id).

Unconfigured secret:
    allow_unverified=False -> every delivery is rejected
    allow_unverified=True  -> degraded mode: every delivery is accepted and
                              logged as unverified

Usage:
    verifier = StripeSignatureVerifier(
        WebhookSecretConfig(secret=settings.STRIPE_WEBHOOK_SECRET)
    )
    if not verifier.verify(request.body, request.headers):
        return HttpResponse(status=401)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

import stripe

from billing.state_machines import Gateway

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any

logger = logging.getLogger(__name__)

# Anything that can go wrong while parsing attacker-controlled input
MALFORMED_INPUT_ERRORS = (
    AttributeError,
    KeyError,
    TypeError,
    UnicodeDecodeError,
    ValueError,
)


class DataIdMismatchError(ValueError):
    """The body and the query string name different Mercado Pago resources."""


@dataclass(frozen=True)
class WebhookSecretConfig:
    """
    Signature settings for one gateway.

    Attributes:
        secret: Signing secret; empty means not configured
        allow_unverified: Accept deliveries when no secret is configured
        tolerance_seconds: Accepted clock skew for signed timestamps
    """

    secret: str = ""
    allow_unverified: bool = False
    tolerance_seconds: int = 300

    @property
    def is_configured(self) -> bool:
        return bool(self.secret)


def parse_signature_header(header: str) -> dict[str, list[str]]:
    """Split "k=v,k=v" into {k: [v, ...]}; entries without "=" are dropped."""
    parts: dict[str, list[str]] = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep and key and value:
            parts.setdefault(key.strip(), []).append(value.strip())
    return parts


def compute_hmac_sha256(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def resolve_mercadopago_data_id(payload: Any, query: Mapping[str, str]) -> str:
    """
    Id of the resource a Mercado Pago notification is about.

    The body's data.id wins; the query string (data.id, or id for IPN
    deliveries) is the fallback when the body has none. The verifier signs
    this id and the adapter fetches it, so both always agree.

    Raises:
        DataIdMismatchError: body and query both carry an id and they differ
    """
    body_id = ""
    data = payload.get("data") if isinstance(payload, dict) else None
    if isinstance(data, dict) and data.get("id") is not None:
        body_id = str(data["id"])
    query_id = str(query.get("data.id") or query.get("id") or "")

    if body_id and query_id and body_id != query_id:
        raise DataIdMismatchError(f"body data.id {body_id!r} != query id {query_id!r}")
    return body_id or query_id


class SignatureVerifier(ABC):
    """
    Base class for gateway signature verifiers.

    verify() returns True or False and never raises.
    """

    gateway: str = ""

    def __init__(self, config: WebhookSecretConfig):
        self.config = config
        if not config.is_configured:
            if config.allow_unverified:
                logger.warning(
                    "Webhook signing secret missing: running in UNVERIFIED mode",
                    extra={"gateway": self.gateway},
                )
            else:
                logger.error(
                    "Webhook signing secret missing: all deliveries will be rejected",
                    extra={"gateway": self.gateway},
                )

    @property
    def is_degraded(self) -> bool:
        """True when deliveries are accepted without verification."""
        return not self.config.is_configured and self.config.allow_unverified

    def verify(
        self,
        body: bytes,
        headers: Mapping[str, str],
        query: Mapping[str, str] | None = None,
    ) -> bool:
        if not self.config.is_configured:
            if self.config.allow_unverified:
                logger.warning(
                    "Accepting UNVERIFIED webhook delivery",
                    extra={"gateway": self.gateway},
                )
                return True
            logger.error(
                "Rejecting webhook: signing secret not configured",
                extra={"gateway": self.gateway},
            )
            return False

        try:
            normalized = {str(k).lower(): str(v) for k, v in headers.items()}
            is_valid = self._verify(bytes(body or b""), normalized, query or {})
        except MALFORMED_INPUT_ERRORS:
            logger.warning(
                "Malformed webhook signature input",
                extra={"gateway": self.gateway},
                exc_info=True,
            )
            return False

        if not is_valid:
            logger.warning("Invalid webhook signature", extra={"gateway": self.gateway})
        return is_valid

    @abstractmethod
    def _verify(
        self,
        body: bytes,
        headers: dict[str, str],
        query: Mapping[str, str],
    ) -> bool:
        """Gateway-specific check; headers are lower-cased."""




class StripeSignatureVerifier(SignatureVerifier):
    """Verifies the Stripe-Signature header with the Stripe SDK."""

    gateway = Gateway.STRIPE

    def _verify(self, body, headers, query):
        header = headers.get("stripe-signature", "")
        if not header:
            return False

        try:
            stripe.WebhookSignature.verify_header(
                body.decode("utf-8"),
                header,
                self.config.secret,
                self.config.tolerance_seconds,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(
                "Stripe signature verification failed",
                extra={"reason": e.user_message or str(e)},
            )
            return False
        return True


class MercadoPagoSignatureVerifier(SignatureVerifier):
    """Verifies the x-signature / x-request-id headers."""

    gateway = Gateway.MERCADOPAGO

    def _verify(self, body, headers, query):
        x_signature = headers.get("x-signature", "")
        request_id = headers.get("x-request-id", "")
        if not x_signature or not request_id:
            return False

        parts = parse_signature_header(x_signature)
        ts = (parts.get("ts") or [""])[0]
        v1 = (parts.get("v1") or [""])[0]
        if not ts or not v1:
            return False

        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            payload = None

        try:
            data_id = resolve_mercadopago_data_id(payload, query)
        except DataIdMismatchError:
            logger.warning(
                "Mercado Pago notification names different ids in body and query",
                extra={"query_data_id": query.get("data.id") or query.get("id")},
            )
            return False
        if not data_id:
            return False

        # Alphanumeric ids are signed in lower case
        if data_id.isalnum():
            data_id = data_id.lower()

        manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
        expected = compute_hmac_sha256(self.config.secret, manifest.encode("utf-8"))
        return hmac.compare_digest(expected, v1)
