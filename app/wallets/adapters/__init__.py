"""
Payout provider adapters.

- FlutterwaveAdapter: Flutterwave v3 bank transfers
"""

from wallets.adapters.flutterwave_adapter import (
    CreateTransferParams,
    FlutterwaveAdapter,
    TransferResult,
    TransferStatus,
)

__all__ = [
    "CreateTransferParams",
    "FlutterwaveAdapter",
    "TransferResult",
    "TransferStatus",
]
