"""
WebhookProcessor: one webhook delivery, end to end.

    verify signature -> parse -> dispatch (guard, fetch, reconcile) -> respond

Response codes are the contract with the gateway's retry logic:
    401  signature invalid; logged only, nothing was written
    200  processed, duplicate, ignored, or a data inconsistency that a
         redelivery cannot fix
    503  transient failure (gateway unreachable, database error, deadline);
         nothing was committed, the gateway should redeliver

A 200 is only returned after the ledger transaction has committed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import DatabaseError
from django.http import HttpResponse

from billing.exceptions import GatewayConfigurationError, GatewayError, WebhookDeadlineExceeded
from billing.webhooks.deadline import Deadline
from billing.webhooks.handlers import WebhookContext, dispatch_notification

if TYPE_CHECKING:
    from collections.abc import Mapping

    from billing.gateways.base import GatewayAdapter

logger = logging.getLogger(__name__)


class WebhookProcessor:
    """
    Processes deliveries for one gateway.

    Example:
        processor = WebhookProcessor(get_gateway("stripe"), deadline_seconds=15)
        response = processor.process(request.body, request.headers, request.GET.dict())
    """

    def __init__(self, gateway: GatewayAdapter, deadline_seconds: float):
        self.gateway = gateway
        self.deadline_seconds = deadline_seconds

    def process(
        self,
        body: bytes,
        headers: Mapping[str, str],
        query: Mapping[str, str] | None = None,
        ip_address: str | None = None,
    ) -> HttpResponse:
        deadline = Deadline(self.deadline_seconds)
        gateway_name = self.gateway.name

        if not self.gateway.verify_signature(body, headers, query):
            logger.warning(
                "Webhook signature rejected",
                extra={"gateway": gateway_name, "ip_address": ip_address},
            )
            return HttpResponse("Invalid signature", status=401)

        notification = self.gateway.parse_notification(body, query)
        log_context = {
            "gateway": gateway_name,
            "event_type": notification.event_type,
            "event_id": notification.event_id,
            "object_id": notification.object_id,
        }

        try:
            result = dispatch_notification(
                notification, WebhookContext(gateway=self.gateway, deadline=deadline)
            )
        except WebhookDeadlineExceeded as e:
            logger.warning(
                "Webhook deadline exceeded",
                extra={**log_context, "stage": e.stage, "budget_seconds": e.budget_seconds},
            )
            return HttpResponse("Deadline exceeded", status=503)
        except GatewayError as e:
            if e.is_retryable:
                logger.warning(
                    "Gateway unavailable, asking for redelivery",
                    extra={**log_context, "error_code": e.error_code},
                )
                return HttpResponse("Gateway unavailable", status=503)
            logger.error(
                "Gateway rejected detail fetch, acknowledging",
                extra={**log_context, "error_code": e.error_code},
            )
            return HttpResponse("Acknowledged", status=200)
        except GatewayConfigurationError as e:
            logger.critical(
                "Gateway not configured, asking for redelivery",
                extra={**log_context, "error_code": e.error_code},
            )
            return HttpResponse("Gateway not configured", status=503)
        except DatabaseError:
            logger.exception("Database error while processing webhook", extra=log_context)
            return HttpResponse("Temporarily unavailable", status=503)

        if not result:
            logger.warning(
                "Webhook acknowledged without changes",
                extra={**log_context, "error_code": result.error_code, "error": result.error},
            )
        else:
            outcome = getattr(result.data, "outcome", None)
            logger.info(
                "Webhook processed",
                extra={**log_context, "outcome": str(outcome) if outcome else "ok"},
            )
        return HttpResponse("OK", status=200)
