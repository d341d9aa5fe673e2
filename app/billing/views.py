"""
DRF views for the billing API.

Endpoints:
    GET  /api/v1/billing/credits/               - Balance of the current user
    GET  /api/v1/billing/credits/transactions/  - Ledger entries, most recent first
    POST /api/v1/billing/credits/consume/       - Consume one credit (402 when empty)
    GET  /api/v1/billing/audit-events/          - Audit log (admin only)

Webhook endpoints live in billing.webhooks.views.
"""

from __future__ import annotations

import logging

from django.utils.dateparse import parse_datetime
from rest_framework import generics, status
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema

from billing.audit import AuditSink
from billing.ledger.exceptions import AccountNotFoundError, InsufficientCreditsError
from billing.ledger.services import CreditLedger
from billing.models import UserAccount
from billing.serializers import (
    AuditEventSerializer,
    BalanceSerializer,
    ConsumeCreditSerializer,
    CreditTransactionSerializer,
)

logger = logging.getLogger(__name__)


class BalanceView(APIView):
    """
    Current user's credit balance.

    GET /api/v1/billing/credits/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_credit_balance",
        summary="Get credit balance",
        responses={200: BalanceSerializer},
        tags=["Billing - Credits"],
    )
    def get(self, request):
        account, _ = UserAccount.objects.select_related("plan").get_or_create(user=request.user)
        serializer = BalanceSerializer(
            {
                "balance": account.credits,
                "plan": account.plan.slug if account.plan_id else None,
                "subscription_status": account.subscription_status,
            }
        )
        return Response(serializer.data)


@extend_schema(
    operation_id="list_credit_transactions",
    summary="List credit transactions",
    description="Ledger entries of the authenticated user, most recent first.",
    tags=["Billing - Credits"],
)
class CreditTransactionListView(generics.ListAPIView):
    """
    Paginated ledger of the current user.

    GET /api/v1/billing/credits/transactions/
    """

    permission_classes = [IsAuthenticated]
    serializer_class = CreditTransactionSerializer

    def get_queryset(self):
        return CreditLedger.list_transactions(self.request.user.pk)


class ConsumeCreditView(APIView):
    """
    Consume one credit.

    POST /api/v1/billing/credits/consume/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="consume_credit",
        summary="Consume one credit",
        request=ConsumeCreditSerializer,
        responses={
            201: CreditTransactionSerializer,
            402: OpenApiResponse(description="No credits available (NO_CREDITS)"),
        },
        tags=["Billing - Credits"],
    )
    def post(self, request):
        serializer = ConsumeCreditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            entry = CreditLedger.consume_credit(
                request.user.pk,
                reference_id=serializer.validated_data["reference_id"],
                description=serializer.validated_data["description"],
            )
        except InsufficientCreditsError as e:
            return Response(e.to_dict(), status=status.HTTP_402_PAYMENT_REQUIRED)
        except AccountNotFoundError as e:
            return Response(e.to_dict(), status=status.HTTP_404_NOT_FOUND)

        return Response(CreditTransactionSerializer(entry).data, status=status.HTTP_201_CREATED)


@extend_schema(
    operation_id="list_audit_events",
    summary="List audit events",
    description="Audit log filtered by user, event type and time range [since, until).",
    parameters=[
        OpenApiParameter(name="user", type=int, location=OpenApiParameter.QUERY, required=False),
        OpenApiParameter(name="event_type", type=str, location=OpenApiParameter.QUERY, required=False),
        OpenApiParameter(
            name="since",
            type=str,
            location=OpenApiParameter.QUERY,
            description="ISO 8601 datetime (inclusive)",
            required=False,
        ),
        OpenApiParameter(
            name="until",
            type=str,
            location=OpenApiParameter.QUERY,
            description="ISO 8601 datetime (exclusive)",
            required=False,
        ),
    ],
    tags=["Billing - Audit"],
)
class AuditEventListView(generics.ListAPIView):
    """
    Audit log for operators.

    GET /api/v1/billing/audit-events/?user=&event_type=&since=&until=
    """

    permission_classes = [IsAdminUser]
    serializer_class = AuditEventSerializer

    def _datetime_param(self, name: str):
        value = self.request.query_params.get(name)
        if not value:
            return None
        parsed = parse_datetime(value)
        if parsed is None:
            raise DRFValidationError({name: ["Invalid datetime."]})
        return parsed

    def get_queryset(self):
        params = self.request.query_params
        user_id = params.get("user") or None
        if user_id is not None and not user_id.isdigit():
            raise DRFValidationError({"user": ["Must be a user id."]})
        return AuditSink.query(
            user_id=user_id,
            event_type=params.get("event_type") or None,
            since=self._datetime_param("since"),
            until=self._datetime_param("until"),
        )
