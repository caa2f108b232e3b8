"""
Wallet services.

Usage:
    from wallets.services import WithdrawalOrchestrator

    receipt = WithdrawalOrchestrator.default().execute(
        owner_type=WalletOwnerType.EVENT,
        owner_id=event_id,
        requested_by=request.user,
        amount=Decimal("100000"),
    )
"""

from wallets.services.adjustment import WalletAdjustmentService
from wallets.services.authorization import WalletAuthorizationService
from wallets.services.funding import WalletFundingService
from wallets.services.notifications import WalletNotifier
from wallets.services.orchestrator import WithdrawalOrchestrator
from wallets.services.queries import WalletQueryService
from wallets.services.refund import WalletRefundService
from wallets.services.withdrawal import WithdrawalService

__all__ = [
    "WalletAdjustmentService",
    "WalletAuthorizationService",
    "WalletFundingService",
    "WalletNotifier",
    "WalletQueryService",
    "WalletRefundService",
    "WithdrawalOrchestrator",
    "WithdrawalService",
]
