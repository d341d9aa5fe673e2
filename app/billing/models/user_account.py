"""
UserAccount and GatewayCustomer models.

UserAccount is the billing side of a user: the denormalized credit
balance, the current plan and the subscription status. It is owned by the
account domain but written only by the ledger (credits) and the
subscription resolver (plan, status).

Usage:
    from billing.models import UserAccount

    account = UserAccount.objects.select_for_update().get(user_id=user_id)
    account.activate()
    account.plan = plan
    account.save(update_fields=["plan", "subscription_status", "updated_at"])

Note:
    Never call save() without update_fields on an account loaded before a
    credit change: a full save would write back a stale credits value.
    Credits are only changed with F() expressions (see CreditLedger).
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from django_fsm import FSMField, transition

from billing.state_machines import Gateway, SubscriptionStatus
from core.models import BaseModel


class UserAccount(BaseModel):
    """
    Billing state for one user.

    State Flow:
        NONE/ACTIVE/PAST_DUE/CANCELED -> ACTIVE (activation or renewal)
        ACTIVE/PAST_DUE -> PAST_DUE (renewal charge failed)
        any -> CANCELED

    Fields:
        user: One-to-one owner, also the primary key
        credits: Current balance, always equal to the ledger sum
        plan: Current plan (None until the first activation)
        subscription_status: FSM-managed subscription state
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="billing_account",
        help_text="User this billing account belongs to",
    )

    plan = models.ForeignKey(
        "billing.Plan",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="accounts",
        help_text="Current plan",
    )

    # ==========================================================================
    # Balance
    # ==========================================================================

    credits = models.IntegerField(
        default=0,
        help_text="Current credit balance (denormalized sum of the ledger)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    subscription_status = FSMField(
        default=SubscriptionStatus.NONE,
        choices=SubscriptionStatus.choices,
        db_index=True,
        help_text="Subscription state (managed by FSM)",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "User Account"
        verbose_name_plural = "User Accounts"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(credits__gte=0),
                name="user_account_credits_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"UserAccount({self.user_id}, {self.credits} credits, {self.subscription_status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=subscription_status, source="*", target=SubscriptionStatus.ACTIVE)
    def activate(self):
        """Activate or renew the subscription."""

    @transition(
        field=subscription_status,
        source=[SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE],
        target=SubscriptionStatus.PAST_DUE,
    )
    def mark_past_due(self):
        """
        Flag a failed renewal charge.

        Plan and credits are left alone; the grace period is decided by the
        gateway's own dunning settings.
        """

    @transition(field=subscription_status, source="*", target=SubscriptionStatus.CANCELED)
    def cancel(self):
        """Cancel the subscription. Plan downgrade is done by the caller."""

    @property
    def has_active_subscription(self) -> bool:
        return self.subscription_status == SubscriptionStatus.ACTIVE


class GatewayCustomer(BaseModel):
    """
    A user's identity at a payment gateway (Stripe cus_xxx, etc.).

    Subscription lifecycle events only carry the customer id; this table
    maps it back to the account.
    """

    account = models.ForeignKey(
        UserAccount,
        on_delete=models.CASCADE,
        related_name="gateway_customers",
        help_text="Account the customer id belongs to",
    )
    gateway = models.CharField(
        max_length=20,
        choices=Gateway.choices,
        help_text="Gateway that issued the customer id",
    )
    customer_id = models.CharField(
        max_length=255,
        help_text="Customer identifier at the gateway",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Gateway Customer"
        verbose_name_plural = "Gateway Customers"
        constraints = [
            models.UniqueConstraint(
                fields=["gateway", "customer_id"],
                name="gateway_customer_unique_id",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.gateway}:{self.customer_id}"
