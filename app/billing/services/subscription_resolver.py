"""
SubscriptionResolver: plan and subscription-status changes.

Called by the payment state machine for approved subscription payments
and by the subscription lifecycle handlers (cancel, past due). Credits
granted with a plan go through CreditLedger; this service only ever
writes the plan and subscription_status columns of UserAccount.

Usage:
    from billing.services import SubscriptionResolver

    result = SubscriptionResolver.activate_subscription(
        user_id=user.id,
        plan_slug="pro",
        reference_id=str(record.id),
        gateway=Gateway.STRIPE,
        customer_id="cus_123",
    )
    if not result:
        ...  # result.error_code == "PLAN_NOT_FOUND"
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction

from django_fsm import can_proceed

from billing.audit import AuditSink
from billing.exceptions import PlanNotFoundError
from billing.ledger.exceptions import AccountNotFoundError
from billing.ledger.services import CreditLedger
from billing.models import GatewayCustomer, Plan, UserAccount
from billing.state_machines import AuditEventType, CreditTransactionType
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from typing import Any

ACCOUNT_STATE_FIELDS = ["plan", "subscription_status", "updated_at"]


class SubscriptionResolver(BaseService):
    """
    Service for subscription plan activation, cancellation and dunning.

    All writes lock the account row and save with update_fields so a
    concurrent credit change is never overwritten.
    """

    # ==========================================================================
    # Lookups
    # ==========================================================================

    @staticmethod
    def get_plan(slug: str | None) -> Plan | None:
        """Plan by slug. Inactive plans still resolve so renewals keep working."""
        if not slug:
            return None
        return Plan.objects.filter(slug=slug).first()

    @staticmethod
    def get_default_plan() -> Plan | None:
        plan = Plan.objects.filter(is_default=True).first()
        if plan is None:
            plan = Plan.objects.filter(slug=settings.BILLING_DEFAULT_PLAN_SLUG).first()
        return plan

    @staticmethod
    def plan_slug_for_price(price_id: str | None) -> str | None:
        """Plan slug for a Stripe price id (STRIPE_PRICE_PLAN_MAP)."""
        if not price_id:
            return None
        return settings.STRIPE_PRICE_PLAN_MAP.get(price_id)

    @staticmethod
    def resolve_user_for_customer(gateway: str, customer_id: str | None) -> Any:
        """User id linked to a gateway customer id, or None."""
        if not customer_id:
            return None
        return (
            GatewayCustomer.objects.filter(gateway=gateway, customer_id=customer_id)
            .values_list("account_id", flat=True)
            .first()
        )

    @classmethod
    def link_customer(cls, account: UserAccount, gateway: str, customer_id: str) -> GatewayCustomer:
        """
        Record that a gateway customer id belongs to this account.

        A customer id that was linked to another account is moved.
        """
        customer, created = GatewayCustomer.objects.update_or_create(
            gateway=gateway,
            customer_id=customer_id,
            defaults={"account": account},
        )
        if created:
            cls.get_logger().info(
                "Gateway customer linked",
                extra={"user_id": str(account.pk), "gateway": gateway, "customer_id": customer_id},
            )
        return customer

    # ==========================================================================
    # Transitions
    # ==========================================================================

    @classmethod
    def activate_subscription(
        cls,
        user_id: Any,
        plan_slug: str | None,
        reference_id: str,
        gateway: str | None = None,
        customer_id: str | None = None,
    ) -> ServiceResult[UserAccount]:
        """
        Activate (or renew) a plan and grant its included credits.

        The bonus credit uses the idempotency key "bonus:<reference_id>",
        so replaying the same payment never grants it twice.

        Args:
            user_id: Account owner
            plan_slug: Plan from checkout metadata
            reference_id: PaymentRecord id of the approved payment
            gateway: Gateway of the payment, for customer linking
            customer_id: Gateway customer id, for customer linking

        Returns:
            ServiceResult with the updated account, or failure with
            PLAN_NOT_FOUND / ACCOUNT_NOT_FOUND
        """
        logger = cls.get_logger()
        plan = cls.get_plan(plan_slug)
        if plan is None:
            error = PlanNotFoundError(
                f"Unknown plan slug: {plan_slug!r}",
                details={"plan_slug": plan_slug, "reference_id": reference_id},
            )
            logger.error(
                "Cannot activate subscription: unknown plan",
                extra={"user_id": str(user_id), "plan_slug": plan_slug, "reference_id": reference_id},
            )
            return ServiceResult.from_exception(error)

        try:
            with cls.atomic():
                account = CreditLedger.lock_account(user_id)
                previous_status = account.subscription_status
                account.activate()
                account.plan = plan
                account.save(update_fields=ACCOUNT_STATE_FIELDS)

                if plan.credits_included > 0:
                    CreditLedger.apply_credit(
                        user_id=account.pk,
                        amount=plan.credits_included,
                        type=CreditTransactionType.BONUS,
                        description=f"{plan.name} plan credits",
                        reference_id=reference_id,
                        idempotency_key=f"bonus:{reference_id}",
                    )

                if gateway and customer_id:
                    cls.link_customer(account, gateway, customer_id)

                transaction.on_commit(
                    lambda: AuditSink.record(
                        account.pk,
                        AuditEventType.SUBSCRIPTION_ACTIVATED,
                        {
                            "plan": plan.slug,
                            "previous_status": previous_status,
                            "credits_included": plan.credits_included,
                        },
                        resource_type="payment_record",
                        resource_id=reference_id,
                    )
                )
        except AccountNotFoundError as e:
            logger.error(
                "Cannot activate subscription: no account",
                extra={"user_id": str(user_id), "plan_slug": plan_slug},
            )
            return ServiceResult.from_exception(e)

        account.refresh_from_db(fields=["credits"])
        logger.info(
            "Subscription activated",
            extra={
                "user_id": str(account.pk),
                "plan_slug": plan.slug,
                "previous_status": previous_status,
                "reference_id": reference_id,
            },
        )
        return ServiceResult.success(account)

    @classmethod
    def cancel_subscription(cls, user_id: Any) -> ServiceResult[UserAccount]:
        """
        Cancel the subscription and move the account to the default plan.

        Credits already granted stay on the balance.
        """
        logger = cls.get_logger()
        default_plan = cls.get_default_plan()
        if default_plan is None:
            logger.warning("No default plan configured; canceling without downgrade")

        try:
            with cls.atomic():
                account = CreditLedger.lock_account(user_id)
                previous_plan = account.plan.slug if account.plan_id else None
                account.cancel()
                if default_plan is not None:
                    account.plan = default_plan
                account.save(update_fields=ACCOUNT_STATE_FIELDS)

                transaction.on_commit(
                    lambda: AuditSink.record(
                        account.pk,
                        AuditEventType.SUBSCRIPTION_CANCELED,
                        {
                            "previous_plan": previous_plan,
                            "plan": default_plan.slug if default_plan else None,
                        },
                    )
                )
        except AccountNotFoundError as e:
            return cls.handle_exception(e, "Cannot cancel subscription")

        logger.info(
            "Subscription canceled",
            extra={"user_id": str(account.pk), "previous_plan": previous_plan},
        )
        return ServiceResult.success(account)

    @classmethod
    def mark_past_due(cls, user_id: Any) -> ServiceResult[UserAccount]:
        """
        Flag a failed renewal charge. Plan and credits are untouched.

        Only active (or already past-due) subscriptions can become past
        due; other states return failure INVALID_STATE_TRANSITION.
        """
        logger = cls.get_logger()
        try:
            with cls.atomic():
                account = CreditLedger.lock_account(user_id)
                if not can_proceed(account.mark_past_due):
                    logger.info(
                        "Subscription not active; past-due ignored",
                        extra={"user_id": str(user_id), "status": account.subscription_status},
                    )
                    return ServiceResult.failure(
                        f"Cannot mark {account.subscription_status} subscription as past due",
                        error_code="INVALID_STATE_TRANSITION",
                    )
                account.mark_past_due()
                account.save(update_fields=ACCOUNT_STATE_FIELDS)

                transaction.on_commit(
                    lambda: AuditSink.record(
                        account.pk,
                        AuditEventType.SUBSCRIPTION_PAST_DUE,
                        {"plan": account.plan.slug if account.plan_id else None},
                    )
                )
        except AccountNotFoundError as e:
            return cls.handle_exception(e, "Cannot mark subscription past due")

        logger.warning("Subscription past due", extra={"user_id": str(account.pk)})
        return ServiceResult.success(account)
