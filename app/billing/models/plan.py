"""
Plan catalog model.

Plans are seeded by migration 0002 and edited through the admin. The
reconciliation path only reads them.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.models import BaseModel


class Plan(BaseModel):
    """
    A subscription plan.

    Fields:
        slug: Stable identifier carried in checkout metadata ("pro")
        name: Display name
        credits_included: Bonus credits granted on each activation/renewal
        price_monthly: Monthly price in the default billing currency
        price_annual: Annual price in the default billing currency
        is_default: Plan assigned when a subscription is canceled
        is_active: Whether the plan can still be purchased
    """

    slug = models.SlugField(
        max_length=50,
        unique=True,
        help_text="Stable identifier referenced by checkout metadata",
    )
    name = models.CharField(
        max_length=100,
        help_text="Display name",
    )
    credits_included = models.PositiveIntegerField(
        default=0,
        help_text="Credits granted when the plan is activated or renewed",
    )
    price_monthly = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Monthly price",
    )
    price_annual = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Annual price",
    )
    is_default = models.BooleanField(
        default=False,
        help_text="Plan users fall back to when a subscription is canceled",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether the plan can be purchased",
    )

    class Meta:
        ordering = ["price_monthly"]
        verbose_name = "Plan"
        verbose_name_plural = "Plans"
        constraints = [
            models.UniqueConstraint(
                fields=["is_default"],
                condition=models.Q(is_default=True),
                name="plan_single_default",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.slug})"
