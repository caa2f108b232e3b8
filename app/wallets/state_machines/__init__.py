"""
State machine enums for wallet models.
"""

from wallets.state_machines.states import (
    OPEN_WITHDRAWAL_STATUSES,
    FeeMode,
    LedgerDirection,
    LedgerEntryType,
    NotificationKind,
    NotificationStatus,
    WalletOwnerType,
    WebhookEventStatus,
    WithdrawalStatus,
)

__all__ = [
    "OPEN_WITHDRAWAL_STATUSES",
    "FeeMode",
    "LedgerDirection",
    "LedgerEntryType",
    "NotificationKind",
    "NotificationStatus",
    "WalletOwnerType",
    "WebhookEventStatus",
    "WithdrawalStatus",
]
