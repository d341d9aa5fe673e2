"""
Django admin configuration for billing models.

Plans are editable. Accounts are editable except for the credit balance,
which only CreditLedger may change. Ledger entries, payment records and
audit events are read-only.
"""

from django.contrib import admin

from billing.ledger.models import CreditTransaction
from billing.models import AuditEvent, GatewayCustomer, PaymentRecord, Plan, UserAccount


class ReadOnlyAdmin(admin.ModelAdmin):
    """Admin for append-only tables: no add, change or delete."""

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = [
        "slug",
        "name",
        "credits_included",
        "price_monthly",
        "price_annual",
        "is_default",
        "is_active",
    ]
    list_filter = ["is_active", "is_default"]
    search_fields = ["slug", "name"]
    readonly_fields = ["created_at", "updated_at"]


class GatewayCustomerInline(admin.TabularInline):
    model = GatewayCustomer
    extra = 0
    readonly_fields = ["gateway", "customer_id", "created_at"]
    can_delete = False


@admin.register(UserAccount)
class UserAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for UserAccount.

    credits is read-only: balance corrections go through
    CreditLedger.apply_correction so the ledger stays in sync.
    """

    list_display = ["user", "plan", "subscription_status", "credits", "updated_at"]
    list_filter = ["subscription_status", "plan"]
    search_fields = ["user__username", "user__email"]
    readonly_fields = ["user", "credits", "subscription_status", "created_at", "updated_at"]
    list_select_related = ["user", "plan"]
    inlines = [GatewayCustomerInline]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(PaymentRecord)
class PaymentRecordAdmin(ReadOnlyAdmin):
    list_display = [
        "id",
        "gateway",
        "gateway_payment_id",
        "user",
        "kind",
        "status",
        "amount",
        "currency",
        "created_at",
    ]
    list_filter = ["gateway", "status", "kind"]
    search_fields = ["id", "gateway_payment_id", "user__email"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]


@admin.register(CreditTransaction)
class CreditTransactionAdmin(ReadOnlyAdmin):
    """
    Ledger entries are immutable.

    Corrections are new offsetting entries, never edits.
    """

    list_display = ["id", "user", "type", "amount", "balance_after", "reference_id", "created_at"]
    list_filter = ["type"]
    search_fields = ["id", "reference_id", "idempotency_key", "user__email"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]


@admin.register(AuditEvent)
class AuditEventAdmin(ReadOnlyAdmin):
    list_display = ["created_at", "event_type", "user", "resource_type", "resource_id"]
    list_filter = ["event_type", "resource_type"]
    search_fields = ["resource_id", "user__email"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
