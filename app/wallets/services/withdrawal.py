"""
Withdrawal domain service: fee, balance check and ledger debit.

This is the money step of a withdrawal. It knows nothing about payout
providers; WithdrawalOrchestrator calls it first and compensates with a
ledger ADJUSTMENT if the transfer later fails.

Fee rules (EXCLUSIVE mode, the only supported mode):
    EVENT owners: WALLET_EVENT_WITHDRAWAL_FEE_PERCENT (5%) of the gross amount
    GROUP owners: no fee
    The wallet is debited the full requested amount; the payout is
    requested_amount - fee_amount.

Usage:
    from wallets.services import WithdrawalService

    debit = WithdrawalService.default().request_withdrawal(
        owner_type=WalletOwnerType.EVENT,
        owner_id=event_id,
        requested_by=user.id,
        requested_amount=Decimal("100000"),
    )
    debit.fee_amount     # Decimal("5000.00")
    debit.payout_amount  # Decimal("95000.00")
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings

from wallets.exceptions import (
    InsufficientBalanceError,
    WalletAuthorizationError,
    WalletValidationError,
)
from wallets.ledger import LedgerService
from wallets.services.authorization import WalletAuthorizationService
from wallets.state_machines import (
    FeeMode,
    LedgerDirection,
    LedgerEntryType,
    WalletOwnerType,
)
from wallets.types import (
    PostEntryParams,
    WithdrawalDebit,
    WithdrawalDebitMetadata,
    percent_of,
    to_amount,
)

logger = logging.getLogger(__name__)


class WithdrawalService:
    """Validates and books the ledger debit for a withdrawal."""

    def __init__(
        self,
        authorization: WalletAuthorizationService,
        event_fee_percent: Decimal | str = "5",
    ) -> None:
        self.authorization = authorization
        self.event_fee_percent = Decimal(str(event_fee_percent))

    @classmethod
    def default(cls) -> WithdrawalService:
        return cls(
            authorization=WalletAuthorizationService.default(),
            event_fee_percent=settings.WALLET_EVENT_WITHDRAWAL_FEE_PERCENT,
        )

    def calculate_fee(self, owner_type: str, amount: Decimal) -> Decimal:
        if owner_type == WalletOwnerType.EVENT:
            return percent_of(amount, self.event_fee_percent)
        return Decimal("0.00")

    def request_withdrawal(
        self,
        owner_type: str,
        owner_id: str | None,
        requested_by,
        requested_amount,
        fee_mode: str = FeeMode.EXCLUSIVE,
        reference: str | None = None,
    ) -> WithdrawalDebit:
        """
        Debit the wallet for a withdrawal.

        Args:
            owner_type: EVENT or GROUP
            owner_id: Event or group id
            requested_by: Requesting user id
            requested_amount: Gross amount to debit
            fee_mode: Must be EXCLUSIVE
            reference: Payout reference, stored on the ledger entry and used
                for its idempotency key

        Returns:
            WithdrawalDebit with the fee breakdown and the new balance

        Raises:
            WalletValidationError: Bad amount, owner or fee mode
            WalletAuthorizationError: Requester may not withdraw
            InsufficientBalanceError: No wallet or balance too low
        """
        amount = to_amount(requested_amount, field_name="requestedAmount")
        if amount <= 0:
            raise WalletValidationError(
                "requestedAmount must be a positive number",
                details={"requested_amount": str(amount)},
            )
        if requested_by is None:
            raise WalletValidationError("requestedBy is required")
        if fee_mode != FeeMode.EXCLUSIVE:
            raise WalletValidationError(
                f"Unsupported fee mode: {fee_mode}",
                details={"fee_mode": fee_mode, "supported": [FeeMode.EXCLUSIVE]},
            )

        owner_type, owner_id = LedgerService.validate_owner(owner_type, owner_id)

        decision = self.authorization.can_withdraw(owner_type, owner_id, requested_by)
        if not decision.allowed:
            raise WalletAuthorizationError(
                decision.reason,
                details={"owner_type": owner_type, "owner_id": owner_id},
            )

        wallet = LedgerService.get_wallet(owner_type, owner_id)
        if wallet is None:
            raise InsufficientBalanceError(
                None,
                required=amount,
                available=Decimal("0.00"),
                message="Insufficient wallet balance for withdrawal",
            )
        if wallet.balance < amount:
            raise InsufficientBalanceError(
                wallet.id,
                required=amount,
                available=wallet.balance,
                message="Insufficient wallet balance for withdrawal",
            )

        fee_amount = self.calculate_fee(owner_type, amount)
        payout_amount = amount - fee_amount

        entry = LedgerService.post(
            wallet,
            PostEntryParams(
                entry_type=LedgerEntryType.WITHDRAWAL,
                direction=LedgerDirection.DEBIT,
                amount=amount,
                metadata=WithdrawalDebitMetadata(
                    requested_amount=amount,
                    fee_amount=fee_amount,
                    payout_amount=payout_amount,
                    fee_mode=fee_mode,
                    requested_by=str(requested_by),
                ),
                idempotency_key=f"withdrawal:{reference}:debit" if reference else None,
                transaction_reference=reference,
            ),
        )

        logger.info(
            "Withdrawal debited",
            extra={
                "wallet_id": str(wallet.id),
                "owner_type": owner_type,
                "owner_id": owner_id,
                "requested_by": str(requested_by),
                "amount": str(amount),
                "fee_amount": str(fee_amount),
                "balance_after": str(entry.balance_after),
            },
        )

        return WithdrawalDebit(
            fee_amount=fee_amount,
            payout_amount=payout_amount,
            wallet_balance_after=entry.balance_after,
            wallet=wallet,
            ledger_entry=entry,
        )
