"""
Wallet domain models.

- Wallet: Balance per owner (event, group, platform)
- LedgerEntry: Append-only journal of balance movements
- Withdrawal: One payout attempt to a bank account
- BankAccount: Payout destinations saved by users
- WalletNotification: Outbox for wallet emails
- WebhookEvent: Flutterwave webhook tracking for idempotent processing
- WalletRefund: Applied refund clawbacks, keyed by refund_key
"""

from wallets.models.bank_account import BankAccount
from wallets.models.ledger_entry import LedgerEntry
from wallets.models.notification import WalletNotification
from wallets.models.refund import WalletRefund
from wallets.models.wallet import Wallet
from wallets.models.webhook_event import WebhookEvent
from wallets.models.withdrawal import Withdrawal

__all__ = [
    "BankAccount",
    "LedgerEntry",
    "WalletNotification",
    "WalletRefund",
    "Wallet",
    "WebhookEvent",
    "Withdrawal",
]
