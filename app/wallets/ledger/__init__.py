"""
Wallet ledger.

Public API:
    LedgerService - Class with all ledger operations

Usage:
    from wallets.ledger import LedgerService

    wallet = LedgerService.get_or_create_wallet("EVENT", event_id)
    LedgerService.reconstruct_balance(wallet) == wallet.balance  # True
"""

from .services import LedgerService

__all__ = [
    "LedgerService",
]
