"""
DRF serializers for the billing API.

Read-only representations of the ledger and the audit log, plus the
consume-credit request.
"""

from __future__ import annotations

from rest_framework import serializers

from billing.ledger.models import CreditTransaction
from billing.models import AuditEvent


class BalanceSerializer(serializers.Serializer):
    """Current credit balance and subscription summary."""

    balance = serializers.IntegerField(read_only=True)
    plan = serializers.CharField(read_only=True, allow_null=True)
    subscription_status = serializers.CharField(read_only=True)


class CreditTransactionSerializer(serializers.ModelSerializer):
    """Ledger entry as shown to the account owner."""

    class Meta:
        model = CreditTransaction
        fields = [
            "id",
            "amount",
            "type",
            "description",
            "reference_id",
            "balance_after",
            "created_at",
        ]
        read_only_fields = fields


class ConsumeCreditSerializer(serializers.Serializer):
    """
    Request body for consuming one credit.

    Fields:
        reference_id: Caller's identifier of the action paid with the credit
        description: Optional ledger description
    """

    reference_id = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    description = serializers.CharField(max_length=255, required=False, default="Credit consumed")


class AuditEventSerializer(serializers.ModelSerializer):
    """Audit log entry (admin API)."""

    class Meta:
        model = AuditEvent
        fields = [
            "id",
            "user",
            "event_type",
            "resource_type",
            "resource_id",
            "payload",
            "ip_address",
            "created_at",
        ]
        read_only_fields = fields
