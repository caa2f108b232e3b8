"""
Wallet funding from ticket sales.

When a ticket payment succeeds, the event (or group) wallet is credited with
the ticket's base amount and the platform wallet with the fee the buyer
paid on top. Both entries are posted in one transaction and keyed on the
payment transaction id, so a redelivered payment webhook cannot credit
twice.

Usage:
    from wallets.services import WalletFundingService

    result = WalletFundingService.default().fund_from_transaction(
        owner_type=WalletOwnerType.EVENT,
        owner_id=event_id,
        transaction_id=str(payment.id),
        amount=Decimal("20000"),
        fee_amount=Decimal("2000"),
        reference=payment.reference,
    )
    result.wallet_balance
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings

from core.services import BaseService

from wallets.exceptions import WalletValidationError
from wallets.ledger import LedgerService
from wallets.models import LedgerEntry
from wallets.services.notifications import WalletNotifier
from wallets.state_machines import LedgerDirection, LedgerEntryType, WalletOwnerType
from wallets.types import (
    FundingResult,
    PostEntryParams,
    TicketSaleMetadata,
    percent_of,
    to_amount,
)

FUNDABLE_OWNER_TYPES = (WalletOwnerType.EVENT, WalletOwnerType.GROUP)


def owner_funding_key(transaction_id: str) -> str:
    return f"ticket-sale:{transaction_id}:owner"


def platform_funding_key(transaction_id: str) -> str:
    return f"ticket-sale:{transaction_id}:platform"


class WalletFundingService(BaseService):
    """Credits owner and platform wallets for a successful ticket payment."""

    def __init__(
        self,
        notifier: WalletNotifier,
        ticket_fee_percent: Decimal | str = "10",
    ) -> None:
        self.notifier = notifier
        self.ticket_fee_percent = Decimal(str(ticket_fee_percent))

    @classmethod
    def default(cls) -> WalletFundingService:
        return cls(
            notifier=WalletNotifier.default(),
            ticket_fee_percent=settings.WALLET_TICKET_FEE_PERCENT,
        )

    def calculate_fee(self, amount: Decimal) -> Decimal:
        return percent_of(amount, self.ticket_fee_percent)

    def fund_from_transaction(
        self,
        owner_type: str,
        owner_id: str,
        transaction_id: str,
        amount,
        fee_amount=None,
        reference: str | None = None,
        provider: str | None = None,
        hangout_id: str | None = None,
    ) -> FundingResult:
        """
        Credit a wallet for one paid transaction.

        Args:
            owner_type: EVENT or GROUP
            owner_id: Event or group id
            transaction_id: Payment transaction id (idempotency scope)
            amount: Base ticket amount, credited to the owner
            fee_amount: Fee charged to the buyer; defaults to
                WALLET_TICKET_FEE_PERCENT of the base amount
            reference: Payment provider reference
            provider: Payment provider name, kept in the log only
            hangout_id: Event the sale belongs to, for group wallets

        Returns:
            FundingResult; ``already_applied`` is True on a repeat call

        Raises:
            WalletValidationError: Missing transaction id, bad amount or owner
        """
        logger = self.get_logger()

        if not transaction_id:
            raise WalletValidationError("transactionId is required")
        if owner_type not in FUNDABLE_OWNER_TYPES:
            raise WalletValidationError(
                "Only EVENT and GROUP wallets can be funded",
                details={"owner_type": owner_type},
            )

        base_amount = to_amount(amount)
        if base_amount <= 0:
            raise WalletValidationError(
                "Invalid transaction amount for wallet funding",
                details={"amount": str(base_amount)},
            )
        fee = to_amount(fee_amount, field_name="feeAmount") if fee_amount is not None else None
        if fee is None:
            fee = self.calculate_fee(base_amount)
        if fee < 0:
            raise WalletValidationError(
                "feeAmount cannot be negative",
                details={"fee_amount": str(fee)},
            )

        transaction_id = str(transaction_id)
        already_applied = LedgerEntry.objects.filter(
            idempotency_key=owner_funding_key(transaction_id)
        ).exists()

        wallet = LedgerService.get_or_create_wallet(owner_type, owner_id)
        platform_wallet = LedgerService.get_or_create_platform_wallet()

        postings = [
            (
                wallet,
                PostEntryParams(
                    entry_type=LedgerEntryType.CREDIT,
                    direction=LedgerDirection.CREDIT,
                    amount=base_amount,
                    metadata=TicketSaleMetadata(
                        transaction_id=transaction_id,
                        gross_amount=base_amount + fee,
                        fee_amount=fee,
                    ),
                    idempotency_key=owner_funding_key(transaction_id),
                    transaction_reference=transaction_id,
                    external_reference=reference,
                    hangout_id=hangout_id,
                ),
            ),
        ]
        if fee > 0:
            postings.append(
                (
                    platform_wallet,
                    PostEntryParams(
                        entry_type=LedgerEntryType.CREDIT,
                        direction=LedgerDirection.CREDIT,
                        amount=fee,
                        metadata=TicketSaleMetadata(
                            transaction_id=transaction_id,
                            gross_amount=base_amount + fee,
                            fee_amount=fee,
                            role="platform_fee",
                        ),
                        idempotency_key=platform_funding_key(transaction_id),
                        transaction_reference=transaction_id,
                        external_reference=reference,
                        hangout_id=hangout_id,
                    ),
                )
            )

        entries = LedgerService.post_entries(postings)
        owner_entry = entries[0]
        platform_entry = entries[1] if len(entries) > 1 else None

        if already_applied:
            logger.info(
                "Ticket sale already credited",
                extra={"transaction_id": transaction_id, "wallet_id": str(wallet.id)},
            )
        else:
            logger.info(
                "Wallet funded from ticket sale",
                extra={
                    "transaction_id": transaction_id,
                    "wallet_id": str(wallet.id),
                    "owner_type": owner_type,
                    "owner_id": wallet.owner_id,
                    "amount": str(base_amount),
                    "fee_amount": str(fee),
                    "provider": provider,
                },
            )
            try:
                self.notifier.wallet_credited(wallet, base_amount, transaction_id)
            except Exception:
                logger.exception(
                    "Failed to queue wallet credited email",
                    extra={"transaction_id": transaction_id, "wallet_id": str(wallet.id)},
                )

        return FundingResult(
            owner_entry=owner_entry,
            platform_entry=platform_entry,
            wallet_balance=wallet.balance,
            platform_balance=platform_wallet.balance,
            already_applied=already_applied,
        )
