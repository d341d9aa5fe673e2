"""
Add celery-beat schedule for the ledger consistency check.

Runs verify_ledger_consistency every hour; any account whose balance
differs from its ledger sum is logged at ERROR.
"""

from django.db import migrations


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for the ledger consistency check."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="hours",
    )

    PeriodicTask.objects.get_or_create(
        name="Verify Credit Ledger Consistency",
        defaults={
            "task": "billing.tasks.verify_ledger_consistency",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Compares every UserAccount balance with the sum of its "
                "CreditTransaction entries and logs any drift."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name="Verify Credit Ledger Consistency",
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0002_seed_plans"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
