"""
Webhook handling for Flutterwave transfer events.

Webhooks are verified, stored idempotently, and processed asynchronously
via Celery tasks.

Usage:
    # In urls.py
    from wallets.webhooks.views import flutterwave_webhook

    urlpatterns = [
        path("webhooks/flutterwave/", flutterwave_webhook, name="flutterwave_webhook"),
    ]
"""

from wallets.webhooks.handlers import (
    TransferWebhookHandler,
    dispatch_webhook,
    register_handler,
)
from wallets.webhooks.views import flutterwave_webhook

__all__ = [
    "TransferWebhookHandler",
    "dispatch_webhook",
    "flutterwave_webhook",
    "register_handler",
]
