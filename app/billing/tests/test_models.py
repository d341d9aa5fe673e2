"""
Tests for billing models.

Covers the subscription FSM on UserAccount, PaymentRecord constraints
and querysets, and the seeded plan catalog.
"""

from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django_fsm import TransitionNotAllowed

from billing.models import PaymentRecord, Plan, UserAccount
from billing.state_machines import Gateway, PaymentStatus, SubscriptionStatus
from billing.tests.factories import PaymentRecordFactory, PlanFactory


class TestSeededPlans:
    def test_catalog(self, db):
        """Should ship the free, basic, pro and enterprise plans."""
        plans = {plan.slug: plan for plan in Plan.objects.all()}

        assert {"free", "basic", "pro", "enterprise"} <= set(plans)
        assert plans["pro"].credits_included == 100
        assert plans["enterprise"].credits_included == 500
        assert plans["free"].is_default is True

    def test_only_one_default_plan(self, free_plan):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PlanFactory(slug="another-default", is_default=True)


class TestUserAccountTransitions:
    def test_new_account_defaults(self, account):
        assert account.credits == 0
        assert account.plan is None
        assert account.subscription_status == SubscriptionStatus.NONE
        assert account.has_active_subscription is False

    def test_activate_from_any_state(self, account):
        for status in SubscriptionStatus.values:
            account.subscription_status = status
            account.activate()
            assert account.subscription_status == SubscriptionStatus.ACTIVE

    def test_past_due_requires_active_subscription(self, account):
        """Should not allow marking an account without a subscription past due."""
        with pytest.raises(TransitionNotAllowed):
            account.mark_past_due()

    def test_past_due_from_active(self, account):
        account.activate()
        account.mark_past_due()

        assert account.subscription_status == SubscriptionStatus.PAST_DUE

    def test_cancel(self, account):
        account.activate()
        account.cancel()

        assert account.subscription_status == SubscriptionStatus.CANCELED

    def test_negative_credits_rejected_by_database(self, account):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                UserAccount.objects.filter(pk=account.pk).update(credits=-1)


class TestPaymentRecordConstraints:
    def test_single_paid_record_per_key(self, db):
        """Should reject a second paid row for the same gateway payment id."""
        PaymentRecordFactory(gateway_payment_id="pay_1", status=PaymentStatus.PAID)

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PaymentRecordFactory(gateway_payment_id="pay_1", status=PaymentStatus.PAID)

    def test_many_non_paid_records_per_key(self, db):
        PaymentRecordFactory(gateway_payment_id="pay_1", status=PaymentStatus.PENDING)
        PaymentRecordFactory(gateway_payment_id="pay_1", status=PaymentStatus.FAILED)
        PaymentRecordFactory(gateway_payment_id="pay_1", status=PaymentStatus.PAID)

        assert PaymentRecord.objects.for_key(Gateway.STRIPE, "pay_1").count() == 3

    def test_same_id_on_other_gateway_allowed(self, db):
        PaymentRecordFactory(gateway_payment_id="pay_1", status=PaymentStatus.PAID)
        PaymentRecordFactory(
            gateway=Gateway.MERCADOPAGO, gateway_payment_id="pay_1", status=PaymentStatus.PAID
        )

        assert PaymentRecord.objects.paid().count() == 2

    def test_negative_amount_rejected(self, db):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PaymentRecordFactory(amount=Decimal("-1.00"))

    def test_user_is_optional(self, db):
        record = PaymentRecordFactory(user=None)

        assert record.user_id is None
        assert record.is_paid is False
