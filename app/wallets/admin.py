"""
Django admin configuration for wallet models.

Balances move only through LedgerService, so wallets, ledger entries and
withdrawals are read-only here. Corrections are made with
WalletAdjustmentService, which writes a new ADJUSTMENT entry.

Key features:
- LedgerEntry is immutable (no add/edit/delete)
- Withdrawal status is shown but never edited
- Outbox, refund and webhook rows are visible for support and debugging
"""

from django.contrib import admin

from wallets.models import (
    BankAccount,
    LedgerEntry,
    Wallet,
    WalletNotification,
    WalletRefund,
    WebhookEvent,
    Withdrawal,
)
from wallets.types import format_naira


class ReadOnlyAdmin(admin.ModelAdmin):
    """Admin that only lists and displays records."""

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Wallet)
class WalletAdmin(ReadOnlyAdmin):
    list_display = [
        "id",
        "owner_type",
        "owner_id",
        "balance_display",
        "currency",
        "is_active",
        "created_at",
    ]
    list_filter = ["owner_type", "currency", "is_active"]
    search_fields = ["id", "owner_id"]
    ordering = ["-created_at"]

    def balance_display(self, obj: Wallet) -> str:
        return format_naira(obj.balance)

    balance_display.short_description = "Balance"


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyAdmin):
    """
    Ledger entries are immutable; corrections are new adjustment entries.
    """

    list_display = [
        "id",
        "created_at",
        "wallet",
        "sequence",
        "entry_type",
        "direction",
        "amount",
        "balance_after",
        "transaction_reference",
    ]
    list_filter = ["entry_type", "direction", "owner_type", "created_at"]
    search_fields = [
        "id",
        "owner_id",
        "idempotency_key",
        "transaction_reference",
        "external_reference",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            "Entry Details",
            {
                "fields": (
                    "id",
                    "wallet",
                    "sequence",
                    "entry_type",
                    "direction",
                    "amount",
                    "balance_after",
                    "created_at",
                ),
            },
        ),
        (
            "Reference",
            {
                "fields": (
                    "transaction_reference",
                    "external_reference",
                    "hangout_id",
                    "idempotency_key",
                ),
            },
        ),
        (
            "Additional Info",
            {
                "fields": ("owner_type", "owner_id", "metadata"),
            },
        ),
    )


@admin.register(Withdrawal)
class WithdrawalAdmin(ReadOnlyAdmin):
    """
    State changes come from the webhook handler and the poller, not admin.
    """

    list_display = [
        "id",
        "payout_reference",
        "owner_type",
        "owner_id",
        "amount",
        "fee_amount",
        "status",
        "created_at",
    ]
    list_filter = ["status", "owner_type", "created_at"]
    search_fields = ["id", "payout_reference", "provider_transfer_id", "owner_id", "user__email"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "wallet", "user", "owner_type", "owner_id", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "fee_amount", "currency"),
            },
        ),
        (
            "Provider",
            {
                "fields": ("payout_reference", "provider_transfer_id", "bank_account"),
            },
        ),
        (
            "Outcome",
            {
                "fields": ("failure_reason", "finalized_at"),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata", "version"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )


@admin.register(BankAccount)
class BankAccountAdmin(ReadOnlyAdmin):
    list_display = ["id", "user", "bank_name", "masked_number", "account_name", "is_default"]
    list_filter = ["bank_name", "is_default"]
    search_fields = ["id", "user__email", "account_name"]
    exclude = ["account_number"]


@admin.register(WalletNotification)
class WalletNotificationAdmin(ReadOnlyAdmin):
    list_display = ["id", "kind", "status", "attempt_count", "sent_at", "created_at"]
    list_filter = ["kind", "status", "is_permanent_failure"]
    search_fields = ["id", "dedupe_key"]
    ordering = ["-created_at"]


@admin.register(WalletRefund)
class WalletRefundAdmin(ReadOnlyAdmin):
    list_display = [
        "refund_key",
        "transaction_id",
        "owner_debited",
        "owner_shortfall",
        "platform_shortfall",
        "created_at",
    ]
    search_fields = ["refund_key", "transaction_id"]
    ordering = ["-created_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlyAdmin):
    list_display = ["id", "event_type", "event_key", "status", "retry_count", "created_at"]
    list_filter = ["event_type", "status"]
    search_fields = ["id", "event_key"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
