"""
Billing domain exceptions.

Exception Hierarchy:
    BillingError (base)
    ├── GatewayError - Detail fetch or gateway API failure
    │   ├── GatewayUnavailableError - Transient (timeouts, 5xx, rate limits)
    │   └── PaymentNotFoundError - Gateway does not know the payment id
    ├── GatewayConfigurationError - Missing/invalid gateway settings
    ├── WebhookDeadlineExceeded - Processing budget used up
    └── PlanNotFoundError - Unknown plan slug

Usage:
    from billing.exceptions import GatewayError

    try:
        details = gateway.fetch_payment_details(notification)
    except GatewayError as e:
        if e.is_retryable:
            return HttpResponse(status=503)
        raise

Note:
    Ledger exceptions live in billing.ledger.exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ExternalServiceError, NotFoundError

if TYPE_CHECKING:
    from typing import Any


class BillingError(BaseApplicationError):
    """Base exception for billing operations."""

    default_error_code: str = "BILLING_ERROR"


class GatewayError(ExternalServiceError):
    """
    Raised when a payment gateway call fails.

    Attributes:
        gateway: Gateway name ("stripe", "mercadopago")
        gateway_code: Gateway-specific error code, when provided
        is_retryable: True for transient failures; webhook deliveries that
            hit one are answered with 503 so the gateway redelivers
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        gateway: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            service_name=gateway,
        )
        self.gateway = gateway
        self.gateway_code = gateway_code


class GatewayUnavailableError(GatewayError):
    """Transient gateway failure: timeout, connection error, 5xx, 429."""

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class PaymentNotFoundError(GatewayError):
    """
    The gateway does not know the payment id from the notification.

    Not retryable: usually a test-mode event or a notification for another
    account delivered to this endpoint.
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"
    is_retryable: bool = False


class GatewayConfigurationError(BillingError):
    """Raised when a gateway is used without the settings it needs."""

    default_error_code: str = "GATEWAY_NOT_CONFIGURED"


class WebhookDeadlineExceeded(BillingError):
    """
    Raised when a webhook delivery runs out of its processing budget.

    Always raised before the ledger transaction starts, so nothing has
    been committed and the gateway can safely redeliver.
    """

    default_error_code: str = "WEBHOOK_DEADLINE_EXCEEDED"

    def __init__(self, stage: str, budget_seconds: float):
        self.stage = stage
        self.budget_seconds = budget_seconds
        super().__init__(
            f"Webhook processing exceeded {budget_seconds}s before {stage}",
            details={"stage": stage, "budget_seconds": budget_seconds},
        )


class PlanNotFoundError(NotFoundError):
    """Raised when a plan slug does not match any Plan."""

    default_error_code: str = "PLAN_NOT_FOUND"
