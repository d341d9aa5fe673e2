"""
Seed the plan catalog.

free is the default plan accounts fall back to on cancellation.
"""

from decimal import Decimal

from django.db import migrations

PLANS = [
    {
        "slug": "free",
        "name": "Free",
        "price_monthly": Decimal("0.00"),
        "price_annual": Decimal("0.00"),
        "credits_included": 3,
        "is_default": True,
    },
    {
        "slug": "basic",
        "name": "Basic",
        "price_monthly": Decimal("19.00"),
        "price_annual": Decimal("190.00"),
        "credits_included": 0,
        "is_default": False,
    },
    {
        "slug": "pro",
        "name": "Pro",
        "price_monthly": Decimal("49.00"),
        "price_annual": Decimal("490.00"),
        "credits_included": 100,
        "is_default": False,
    },
    {
        "slug": "enterprise",
        "name": "Enterprise",
        "price_monthly": Decimal("150.00"),
        "price_annual": Decimal("1500.00"),
        "credits_included": 500,
        "is_default": False,
    },
]


def create_plans(apps, schema_editor):
    Plan = apps.get_model("billing", "Plan")

    for plan in PLANS:
        Plan.objects.update_or_create(
            slug=plan["slug"],
            defaults={key: value for key, value in plan.items() if key != "slug"},
        )


def remove_plans(apps, schema_editor):
    Plan = apps.get_model("billing", "Plan")

    Plan.objects.filter(slug__in=[plan["slug"] for plan in PLANS]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(create_plans, remove_plans),
    ]
