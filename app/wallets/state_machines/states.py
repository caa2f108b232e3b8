"""
State and choice enums for wallet models.

These are Django TextChoices for database storage and admin integration.
Withdrawal status is managed by django-fsm.

State Machines Overview:

Withdrawal Status:
    pending → successful
    pending → failed
    unknown → pending (transfer found at the provider, still in flight)
    unknown → successful / failed (resolved by the reconciliation poller)

Notification Status:
    pending → sent
    pending → failed (permanent) / skipped (no recipient)

WebhookEvent Status:
    pending → processing → processed
    pending → processing → failed (can retry)
"""

from django.db import models


class WalletOwnerType(models.TextChoices):
    """
    Kind of entity a wallet belongs to.

    PLATFORM is a singleton wallet with no owner id that collects fees.
    """

    EVENT = "EVENT", "Event"
    GROUP = "GROUP", "Group"
    PLATFORM = "PLATFORM", "Platform"


class LedgerEntryType(models.TextChoices):
    """
    Business reason for a ledger entry.

    CREDIT is money in from ticket sales; the others may move either way.
    """

    CREDIT = "CREDIT", "Ticket sale credit"
    WITHDRAWAL = "WITHDRAWAL", "Withdrawal"
    ADJUSTMENT = "ADJUSTMENT", "Adjustment"
    REFUND = "REFUND", "Refund"


class LedgerDirection(models.TextChoices):
    """Whether an entry increases or decreases the wallet balance."""

    CREDIT = "CREDIT", "Credit"
    DEBIT = "DEBIT", "Debit"


class WithdrawalStatus(models.TextChoices):
    """
    States for the Withdrawal lifecycle.

    Terminal states: SUCCESSFUL, FAILED. A terminal withdrawal never
    changes status again.

    UNKNOWN marks a create-transfer call whose outcome was never observed
    (read timeout, gateway error). The funds stay debited until the poller
    learns what the provider did.
    """

    PENDING = "pending", "Pending"
    UNKNOWN = "unknown", "Unknown"
    SUCCESSFUL = "successful", "Successful"
    FAILED = "failed", "Failed"


OPEN_WITHDRAWAL_STATUSES = (WithdrawalStatus.PENDING, WithdrawalStatus.UNKNOWN)


class FeeMode(models.TextChoices):
    """
    How the withdrawal fee relates to the requested amount.

    Only EXCLUSIVE is supported: the fee is carved out of the requested
    amount and the recipient receives the remainder.
    """

    EXCLUSIVE = "EXCLUSIVE", "Exclusive"
    INCLUSIVE = "INCLUSIVE", "Inclusive"
    NONE = "NONE", "None"


class NotificationKind(models.TextChoices):
    """Email messages sent through the notification outbox."""

    WITHDRAWAL_RECEIPT_ADMIN = "withdrawal_receipt_admin", "Withdrawal receipt (admin)"
    WITHDRAWAL_SUCCESS = "withdrawal_success", "Withdrawal successful"
    WITHDRAWAL_FAILED = "withdrawal_failed", "Withdrawal failed"
    WALLET_ADJUSTED = "wallet_adjusted_manual", "Manual wallet adjustment"
    WALLET_ADJUSTED_REFUND = "wallet_adjusted_refund", "Wallet adjusted for refund"
    EVENT_WALLET_CREDITED = "event_wallet_credited", "Event wallet credited"
    GROUP_WALLET_CREDITED = "group_wallet_credited", "Group wallet credited"
    OPERATOR_ROLLBACK_ALERT = "operator_rollback_alert", "Operator rollback alert"


class NotificationStatus(models.TextChoices):
    """
    Delivery status for outbox notifications.

    State Flow:
        PENDING → SENT
        PENDING → FAILED (permanent failure or retries exhausted)
        PENDING → SKIPPED (no recipient could be resolved)
    """

    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"
    SKIPPED = "skipped", "Skipped"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
