"""
Wallets app configuration.

This app provides the organizer wallet subsystem:
- Per-owner wallets with an append-only ledger
- Withdrawals paid out through Flutterwave
- Webhook and polling based withdrawal reconciliation
- Outbox-driven wallet notifications
"""

from django.apps import AppConfig


class WalletsConfig(AppConfig):
    """Configuration for the wallets application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "wallets"
    verbose_name = "Wallets"
