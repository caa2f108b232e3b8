"""
Celery configuration for the Django application.

Celery runs the wallet subsystem's background work:
- Notification outbox delivery (withdrawal emails, operator alerts)
- Flutterwave webhook processing
- The periodic withdrawal reconciliation poller (via django-celery-beat)

Redis is both the message broker and result backend. Tasks are
auto-discovered from all installed Django apps.

Usage:
    from wallets.tasks import poll_pending_withdrawals

    poll_pending_withdrawals.delay()
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
