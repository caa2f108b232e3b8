"""
Manual wallet adjustments by an administrator.

A positive amount credits the wallet, a negative amount debits it. Each
adjustment is one ADJUSTMENT ledger entry carrying the reason and the
admin who made it. Callers are expected to have checked that the actor is
an admin; this service only validates the input.

Usage:
    from wallets.services import WalletAdjustmentService

    result = WalletAdjustmentService.default().execute(
        owner_type=WalletOwnerType.EVENT,
        owner_id=event_id,
        amount=Decimal("-2500"),
        reason="Chargeback on ticket TX-41",
        adjusted_by=admin.id,
    )
    result.balance_after
"""

from __future__ import annotations

from decimal import Decimal

from core.services import BaseService

from wallets.exceptions import WalletValidationError
from wallets.ledger import LedgerService
from wallets.services.notifications import WalletNotifier
from wallets.state_machines import LedgerDirection, LedgerEntryType, WalletOwnerType
from wallets.types import (
    AdjustmentResult,
    ManualAdjustmentMetadata,
    PostEntryParams,
    to_amount,
)


class WalletAdjustmentService(BaseService):
    """Credits or debits a wallet outside the ticket/withdrawal flows."""

    def __init__(self, notifier: WalletNotifier) -> None:
        self.notifier = notifier

    @classmethod
    def default(cls) -> WalletAdjustmentService:
        return cls(notifier=WalletNotifier.default())

    def execute(
        self,
        owner_type: str,
        owner_id: str | None,
        amount,
        reason: str,
        adjusted_by,
    ) -> AdjustmentResult:
        """
        Apply a manual adjustment.

        Raises:
            WalletValidationError: Missing owner, zero amount, blank reason
                or missing admin id
            InsufficientBalanceError: A debit larger than the balance
        """
        logger = self.get_logger()

        if not owner_type:
            raise WalletValidationError("ownerType is required")
        if owner_type != WalletOwnerType.PLATFORM and (
            owner_id is None or not str(owner_id).strip()
        ):
            raise WalletValidationError(
                "ownerId is required for non-platform wallets",
                details={"owner_type": owner_type},
            )

        try:
            value = to_amount(amount)
        except WalletValidationError as exc:
            if exc.error_code == "AMOUNT_TOO_LARGE":
                raise
            value = Decimal("0")
        if value == 0:
            raise WalletValidationError(
                "Amount must be a non-zero number",
                details={"amount": repr(amount)},
            )
        if not reason or not str(reason).strip():
            raise WalletValidationError("Reason is required for wallet adjustments")
        if adjusted_by is None or not str(adjusted_by).strip():
            raise WalletValidationError("adjustedBy (admin user ID) is required")

        reason = str(reason).strip()
        wallet = LedgerService.get_or_create_wallet(owner_type, owner_id)

        entry = LedgerService.post(
            wallet,
            PostEntryParams(
                entry_type=LedgerEntryType.ADJUSTMENT,
                direction=LedgerDirection.CREDIT if value > 0 else LedgerDirection.DEBIT,
                amount=abs(value),
                metadata=ManualAdjustmentMetadata(
                    reason=reason,
                    adjusted_by=str(adjusted_by),
                ),
            ),
        )

        logger.info(
            "Wallet adjusted manually",
            extra={
                "wallet_id": str(wallet.id),
                "owner_type": wallet.owner_type,
                "owner_id": wallet.owner_id,
                "amount": str(value),
                "adjusted_by": str(adjusted_by),
                "balance_after": str(entry.balance_after),
            },
        )

        if not wallet.is_platform:
            try:
                self.notifier.wallet_adjusted(wallet, value, reason, str(entry.id))
            except Exception:
                logger.exception(
                    "Failed to queue adjustment email",
                    extra={"wallet_id": str(wallet.id), "entry_id": str(entry.id)},
                )

        return AdjustmentResult(
            wallet_id=str(wallet.id),
            owner_type=wallet.owner_type,
            owner_id=wallet.owner_id,
            balance_before=entry.balance_after - entry.signed_amount,
            balance_after=entry.balance_after,
            adjustment_amount=value,
        )
