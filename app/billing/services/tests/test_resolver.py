"""
Tests for SubscriptionResolver.

Covers plan activation with bonus credits, renewals, cancellation to the
default plan, past-due transitions and gateway customer linking.
"""

import pytest

from billing.ledger.models import CreditTransaction
from billing.ledger.services import CreditLedger
from billing.models import AuditEvent, GatewayCustomer, UserAccount
from billing.services import SubscriptionResolver
from billing.state_machines import (
    AuditEventType,
    CreditTransactionType,
    Gateway,
    SubscriptionStatus,
)
from billing.tests.factories import PlanFactory, UserFactory


class TestLookups:
    def test_get_plan_by_slug(self, pro_plan):
        assert SubscriptionResolver.get_plan("pro") == pro_plan

    def test_get_plan_unknown_or_empty(self, db):
        assert SubscriptionResolver.get_plan("platinum") is None
        assert SubscriptionResolver.get_plan(None) is None

    def test_inactive_plan_still_resolves(self, db):
        """Should keep renewing subscribers on plans that are no longer sold."""
        legacy = PlanFactory(slug="legacy", is_active=False)

        assert SubscriptionResolver.get_plan("legacy") == legacy

    def test_default_plan(self, free_plan):
        assert SubscriptionResolver.get_default_plan() == free_plan

    def test_plan_slug_for_price(self, settings):
        settings.STRIPE_PRICE_PLAN_MAP = {"price_123": "pro"}

        assert SubscriptionResolver.plan_slug_for_price("price_123") == "pro"
        assert SubscriptionResolver.plan_slug_for_price("price_999") is None
        assert SubscriptionResolver.plan_slug_for_price("") is None

    def test_resolve_user_for_customer(self, account):
        SubscriptionResolver.link_customer(account, Gateway.STRIPE, "cus_1")

        assert SubscriptionResolver.resolve_user_for_customer(Gateway.STRIPE, "cus_1") == account.pk
        assert SubscriptionResolver.resolve_user_for_customer(Gateway.MERCADOPAGO, "cus_1") is None
        assert SubscriptionResolver.resolve_user_for_customer(Gateway.STRIPE, "") is None


class TestLinkCustomer:
    def test_relinks_customer_to_new_account(self, account):
        """Should move a customer id that was linked to another account."""
        other = UserFactory().billing_account
        SubscriptionResolver.link_customer(other, Gateway.STRIPE, "cus_1")

        SubscriptionResolver.link_customer(account, Gateway.STRIPE, "cus_1")

        customer = GatewayCustomer.objects.get(customer_id="cus_1")
        assert customer.account_id == account.pk


class TestActivateSubscription:
    def test_activates_and_grants_included_credits(self, user, pro_plan):
        result = SubscriptionResolver.activate_subscription(user.pk, "pro", "record-1")

        assert result.success
        account = result.data
        assert account.plan == pro_plan
        assert account.subscription_status == SubscriptionStatus.ACTIVE
        assert account.credits == 100
        entry = CreditTransaction.objects.get(user=user)
        assert entry.type == CreditTransactionType.BONUS
        assert entry.idempotency_key == "bonus:record-1"

    def test_same_reference_grants_bonus_once(self, user, pro_plan):
        """Should not grant the bonus twice for the same payment."""
        SubscriptionResolver.activate_subscription(user.pk, "pro", "record-1")
        SubscriptionResolver.activate_subscription(user.pk, "pro", "record-1")

        assert CreditLedger.get_balance(user.pk) == 100

    def test_each_renewal_grants_bonus(self, user, pro_plan):
        SubscriptionResolver.activate_subscription(user.pk, "pro", "record-1")
        SubscriptionResolver.activate_subscription(user.pk, "pro", "record-2")

        assert CreditLedger.get_balance(user.pk) == 200

    def test_upgrade_keeps_existing_credits(self, user, basic_plan, pro_plan):
        CreditLedger.apply_credit(user.pk, 7, CreditTransactionType.PURCHASE)
        SubscriptionResolver.activate_subscription(user.pk, "basic", "record-1")

        result = SubscriptionResolver.activate_subscription(user.pk, "pro", "record-2")

        assert result.data.plan == pro_plan
        assert result.data.credits == 107

    def test_unknown_plan_fails_without_changes(self, user):
        """Should return PLAN_NOT_FOUND and leave the account alone."""
        result = SubscriptionResolver.activate_subscription(user.pk, "platinum", "record-1")

        assert not result.success
        assert result.error_code == "PLAN_NOT_FOUND"
        account = UserAccount.objects.get(user=user)
        assert account.plan is None
        assert account.subscription_status == SubscriptionStatus.NONE

    def test_unknown_user_fails(self, pro_plan):
        result = SubscriptionResolver.activate_subscription(999_999, "pro", "record-1")

        assert not result.success
        assert result.error_code == "ACCOUNT_NOT_FOUND"

    def test_links_customer_when_given(self, user, pro_plan):
        SubscriptionResolver.activate_subscription(
            user.pk, "pro", "record-1", gateway=Gateway.STRIPE, customer_id="cus_9"
        )

        assert SubscriptionResolver.resolve_user_for_customer(Gateway.STRIPE, "cus_9") == user.pk

    def test_audit_event_after_commit(self, user, pro_plan, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            SubscriptionResolver.activate_subscription(user.pk, "pro", "record-1")

        event = AuditEvent.objects.get(event_type=AuditEventType.SUBSCRIPTION_ACTIVATED)
        assert event.payload["plan"] == "pro"
        assert event.payload["previous_status"] == SubscriptionStatus.NONE
        assert event.resource_id == "record-1"


class TestCancelSubscription:
    def test_moves_to_default_plan_and_keeps_credits(self, user, pro_plan, free_plan):
        """Should cancel, downgrade and leave granted credits on the balance."""
        SubscriptionResolver.activate_subscription(user.pk, "pro", "record-1")

        result = SubscriptionResolver.cancel_subscription(user.pk)

        assert result.success
        assert result.data.subscription_status == SubscriptionStatus.CANCELED
        assert result.data.plan == free_plan
        assert CreditLedger.get_balance(user.pk) == 100

    def test_resubscribe_after_cancel(self, user, pro_plan, free_plan):
        SubscriptionResolver.activate_subscription(user.pk, "pro", "record-1")
        SubscriptionResolver.cancel_subscription(user.pk)

        result = SubscriptionResolver.activate_subscription(user.pk, "pro", "record-2")

        assert result.data.subscription_status == SubscriptionStatus.ACTIVE

    def test_unknown_user(self, db):
        result = SubscriptionResolver.cancel_subscription(999_999)

        assert result.error_code == "ACCOUNT_NOT_FOUND"


class TestMarkPastDue:
    def test_active_becomes_past_due(self, user, pro_plan, django_capture_on_commit_callbacks):
        SubscriptionResolver.activate_subscription(user.pk, "pro", "record-1")

        with django_capture_on_commit_callbacks(execute=True):
            result = SubscriptionResolver.mark_past_due(user.pk)

        assert result.success
        assert result.data.subscription_status == SubscriptionStatus.PAST_DUE
        assert result.data.plan == pro_plan
        assert AuditEvent.objects.filter(event_type=AuditEventType.SUBSCRIPTION_PAST_DUE).exists()

    def test_past_due_is_idempotent(self, user, pro_plan):
        SubscriptionResolver.activate_subscription(user.pk, "pro", "record-1")
        SubscriptionResolver.mark_past_due(user.pk)

        assert SubscriptionResolver.mark_past_due(user.pk).success

    @pytest.mark.parametrize("status", [SubscriptionStatus.NONE, SubscriptionStatus.CANCELED])
    def test_inactive_subscription_is_rejected(self, user, status):
        """Should refuse to flag accounts that have no active subscription."""
        UserAccount.objects.filter(user=user).update(subscription_status=status)

        result = SubscriptionResolver.mark_past_due(user.pk)

        assert not result.success
        assert result.error_code == "INVALID_STATE_TRANSITION"
        assert UserAccount.objects.get(user=user).subscription_status == status
