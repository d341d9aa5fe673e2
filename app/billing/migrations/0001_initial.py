import uuid
from decimal import Decimal

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


GATEWAY_CHOICES = [("stripe", "Stripe"), ("mercadopago", "Mercado Pago")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("slug", models.SlugField(help_text="Stable identifier referenced by checkout metadata", unique=True)),
                ("name", models.CharField(help_text="Display name", max_length=100)),
                ("credits_included", models.PositiveIntegerField(default=0, help_text="Credits granted when the plan is activated or renewed")),
                ("price_monthly", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Monthly price", max_digits=10)),
                ("price_annual", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Annual price", max_digits=10)),
                ("is_default", models.BooleanField(default=False, help_text="Plan users fall back to when a subscription is canceled")),
                ("is_active", models.BooleanField(default=True, help_text="Whether the plan can be purchased")),
            ],
            options={
                "verbose_name": "Plan",
                "verbose_name_plural": "Plans",
                "ordering": ["price_monthly"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_default", True)),
                        fields=("is_default",),
                        name="plan_single_default",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="UserAccount",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                (
                    "user",
                    models.OneToOneField(
                        help_text="User this billing account belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="billing_account",
                        serialize=False,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                ("credits", models.IntegerField(default=0, help_text="Current credit balance (denormalized sum of the ledger)")),
                (
                    "subscription_status",
                    django_fsm.FSMField(
                        choices=[
                            ("none", "None"),
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("canceled", "Canceled"),
                        ],
                        db_index=True,
                        default="none",
                        help_text="Subscription state (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        blank=True,
                        help_text="Current plan",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="accounts",
                        to="billing.plan",
                    ),
                ),
            ],
            options={
                "verbose_name": "User Account",
                "verbose_name_plural": "User Accounts",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("credits__gte", 0)),
                        name="user_account_credits_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="GatewayCustomer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("gateway", models.CharField(choices=GATEWAY_CHOICES, help_text="Gateway that issued the customer id", max_length=20)),
                ("customer_id", models.CharField(help_text="Customer identifier at the gateway", max_length=255)),
                (
                    "account",
                    models.ForeignKey(
                        help_text="Account the customer id belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="gateway_customers",
                        to="billing.useraccount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Gateway Customer",
                "verbose_name_plural": "Gateway Customers",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("gateway", "customer_id"),
                        name="gateway_customer_unique_id",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentRecord",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("gateway", models.CharField(choices=GATEWAY_CHOICES, help_text="Gateway that reported this payment", max_length=20)),
                ("gateway_payment_id", models.CharField(db_index=True, help_text="Payment identifier issued by the gateway", max_length=255)),
                ("amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Amount in gateway currency units", max_digits=12)),
                ("currency", models.CharField(help_text="ISO 4217 currency code", max_length=3)),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("subscription", "Subscription"),
                            ("credits", "Credit Purchase"),
                            ("one_time", "One-time"),
                        ],
                        help_text="What the payment buys",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        help_text="Reconciled payment status",
                        max_length=20,
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict, help_text="Checkout metadata and gateway context")),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        help_text="Owning user (empty when the payment could not be matched)",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Record",
                "verbose_name_plural": "Payment Records",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["gateway", "gateway_payment_id"], name="payrec_gateway_payment_idx"),
                    models.Index(fields=["user", "created_at"], name="payrec_user_created_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "paid")),
                        fields=("gateway", "gateway_payment_id"),
                        name="payment_record_single_paid_per_key",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gte", 0)),
                        name="payment_record_amount_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CreditTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this entry was recorded")),
                ("amount", models.IntegerField(help_text="Signed credit delta (positive credit, negative consumption)")),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("purchase", "Purchase"),
                            ("bonus", "Subscription Bonus"),
                            ("consumption", "Consumption"),
                            ("refund", "Refund"),
                        ],
                        help_text="Reason for the balance change",
                        max_length=20,
                    ),
                ),
                ("description", models.CharField(blank=True, default="", help_text="Human-readable description of this entry", max_length=255)),
                ("reference_id", models.CharField(blank=True, db_index=True, default="", help_text="PaymentRecord id or document action that caused this entry", max_length=255)),
                ("idempotency_key", models.CharField(blank=True, help_text="Unique key to prevent duplicate entries", max_length=255, null=True, unique=True)),
                ("balance_after", models.IntegerField(help_text="Account balance immediately after this entry")),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Owner of the credited/debited account",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credit_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Credit Transaction",
                "verbose_name_plural": "Credit Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "created_at"], name="credit_tx_user_created_idx"),
                    models.Index(fields=["type"], name="credit_tx_type_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount", 0), _negated=True),
                        name="credit_transaction_amount_non_zero",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("payment.completed", "Payment Completed"),
                            ("payment.pending", "Payment Pending"),
                            ("payment.failed", "Payment Failed"),
                            ("payment.unmatched", "Payment Unmatched"),
                            ("subscription.activated", "Subscription Activated"),
                            ("subscription.past_due", "Subscription Past Due"),
                            ("subscription.canceled", "Subscription Canceled"),
                            ("credit.consumed", "Credit Consumed"),
                        ],
                        help_text="What happened",
                        max_length=50,
                    ),
                ),
                ("resource_type", models.CharField(blank=True, default="", help_text="Kind of object the event refers to", max_length=50)),
                ("resource_id", models.CharField(blank=True, default="", help_text="Identifier of the object the event refers to", max_length=255)),
                ("payload", models.JSONField(blank=True, default=dict, help_text="Event details")),
                ("ip_address", models.GenericIPAddressField(blank=True, help_text="Source address of the triggering request", null=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        help_text="User the event is about",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_events",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Audit Event",
                "verbose_name_plural": "Audit Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "created_at"], name="audit_user_created_idx"),
                    models.Index(fields=["event_type", "created_at"], name="audit_type_created_idx"),
                ],
            },
        ),
    ]
