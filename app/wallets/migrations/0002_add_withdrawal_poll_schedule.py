"""
Add celery-beat schedules for wallet background work.

Creates periodic tasks for:
    - poll_pending_withdrawals: reconcile open withdrawals with Flutterwave
      (every WITHDRAWAL_POLL_INTERVAL_MINUTES, default 5)
    - redeliver_pending_notifications: resend outbox emails whose dispatch
      was lost (every 10 minutes)
    - retry_failed_webhooks / cleanup_stuck_webhooks: webhook recovery
      (every 15 minutes)
"""

from django.conf import settings
from django.db import migrations

PERIODIC_TASKS = [
    (
        "Poll Pending Withdrawals",
        "wallets.tasks.poll_pending_withdrawals",
        settings.WITHDRAWAL_POLL_INTERVAL_MINUTES,
        "Verifies PENDING and UNKNOWN withdrawals with Flutterwave and "
        "finalizes them when the webhook never arrived.",
    ),
    (
        "Redeliver Wallet Notifications",
        "wallets.tasks.redeliver_pending_notifications",
        10,
        "Re-queues wallet emails still pending after their dispatch was lost.",
    ),
    (
        "Retry Failed Wallet Webhooks",
        "wallets.tasks.retry_failed_webhooks",
        15,
        "Re-queues Flutterwave webhook events that failed processing.",
    ),
    (
        "Cleanup Stuck Wallet Webhooks",
        "wallets.tasks.cleanup_stuck_webhooks",
        15,
        "Resets webhook events stuck in processing so they can be retried.",
    ),
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for wallet reconciliation."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for name, task, minutes, description in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=minutes,
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=name,
            defaults={
                "task": task,
                "interval": schedule,
                "enabled": True,
                "description": description,
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[name for name, _, _, _ in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("wallets", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
