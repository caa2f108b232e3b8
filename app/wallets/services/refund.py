"""
Refund clawback from wallets.

When a ticket is refunded, the money the sale put into wallets is taken
back in proportion to the refund:

    fee_share   = refund_amount / original_amount * fee_amount
    owner_share = refund_amount - fee_share

The owner wallet is debited owner_share and the platform wallet fee_share.
Both debits are clamped to the available balance; if the owner already
withdrew the money, the uncovered part is recorded as a shortfall on the
WalletRefund row and logged for follow-up. That row also makes a replay
of the same refund_key a no-op, even when nothing could be debited.

Usage:
    from wallets.services import WalletRefundService

    result = WalletRefundService.default().process_refund(
        owner_type=WalletOwnerType.EVENT,
        owner_id=event_id,
        transaction_id=str(payment.id),
        refund_amount=Decimal("11000"),
        original_amount=Decimal("22000"),
    )
    result.owner_shortfall
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import transaction

from core.services import BaseService

from wallets.exceptions import WalletNotFoundError, WalletValidationError
from wallets.ledger import LedgerService
from wallets.models import LedgerEntry, Wallet, WalletRefund
from wallets.services.notifications import WalletNotifier
from wallets.state_machines import LedgerDirection, LedgerEntryType, WalletOwnerType
from wallets.types import (
    CENT,
    PostEntryParams,
    RefundMetadata,
    RefundResult,
    TicketSaleMetadata,
    parse_metadata,
    percent_of,
    to_amount,
)

ZERO = Decimal("0.00")


class WalletRefundService(BaseService):
    """Debits owner and platform wallets for a refunded ticket payment."""

    def __init__(
        self,
        notifier: WalletNotifier,
        ticket_fee_percent: Decimal | str = "10",
    ) -> None:
        self.notifier = notifier
        self.ticket_fee_percent = Decimal(str(ticket_fee_percent))

    @classmethod
    def default(cls) -> WalletRefundService:
        return cls(
            notifier=WalletNotifier.default(),
            ticket_fee_percent=settings.WALLET_TICKET_FEE_PERCENT,
        )

    def process_refund(
        self,
        owner_type: str,
        owner_id: str,
        transaction_id: str,
        refund_amount,
        original_amount,
        fee_amount=None,
        reason: str | None = None,
        refund_key: str | None = None,
    ) -> RefundResult:
        """
        Claw back a refund from the owner and platform wallets.

        Args:
            owner_type: EVENT or GROUP
            owner_id: Event or group id
            transaction_id: Original payment transaction id
            refund_amount: Amount returned to the buyer
            original_amount: Amount the buyer originally paid
            fee_amount: Platform fee on the original payment; defaults to the
                fee recorded when the sale was credited, else
                WALLET_TICKET_FEE_PERCENT of the original amount
            reason: Free text kept in the entry metadata
            refund_key: Distinguishes partial refunds of one transaction;
                defaults to the transaction id

        Returns:
            RefundResult with amounts debited and any shortfall

        Raises:
            WalletValidationError: Bad refund or original amount
            WalletNotFoundError: Owner or platform wallet does not exist
        """
        logger = self.get_logger()

        try:
            refund = to_amount(refund_amount)
            original = to_amount(original_amount)
        except WalletValidationError:
            raise WalletValidationError("Invalid refund amount")
        if refund <= 0 or original <= 0:
            raise WalletValidationError(
                "Invalid refund amount",
                details={"refund_amount": str(refund), "original_amount": str(original)},
            )
        if refund > original:
            raise WalletValidationError(
                "Refund amount cannot exceed original transaction amount",
                details={"refund_amount": str(refund), "original_amount": str(original)},
            )

        transaction_id = str(transaction_id)
        refund_key = str(refund_key or transaction_id)
        owner_key = f"refund:{refund_key}:owner"
        platform_key = f"refund:{refund_key}:platform"

        wallet = LedgerService.get_wallet(owner_type, owner_id)
        if wallet is None:
            raise WalletNotFoundError(
                f"Wallet not found for {owner_type} {owner_id}",
                details={"owner_type": owner_type, "owner_id": owner_id},
            )
        platform_wallet = LedgerService.get_wallet(WalletOwnerType.PLATFORM, None)
        if platform_wallet is None:
            raise WalletNotFoundError("Platform wallet not found")

        existing = WalletRefund.objects.filter(refund_key=refund_key).first()
        if existing is not None:
            return self._replayed(existing, wallet, platform_wallet)

        fee = self._original_fee(transaction_id, original, fee_amount)
        fee_share = (refund / original * fee).quantize(CENT, rounding=ROUND_HALF_UP)
        owner_share = refund - fee_share

        with transaction.atomic():
            locked = {
                w.pk: w
                for w in Wallet.objects.filter(pk__in=[wallet.pk, platform_wallet.pk])
                .select_for_update()
                .order_by("pk")
            }
            # A concurrent call with the same key may have committed while we waited
            existing = WalletRefund.objects.filter(refund_key=refund_key).first()
            if existing is not None:
                return self._replayed(existing, wallet, platform_wallet)

            owner_shortfall = max(owner_share - locked[wallet.pk].balance, ZERO)
            platform_shortfall = max(fee_share - locked[platform_wallet.pk].balance, ZERO)

            postings = []
            if owner_share > 0:
                postings.append(
                    (
                        wallet,
                        self._debit(
                            owner_share,
                            owner_shortfall,
                            transaction_id,
                            refund,
                            original,
                            reason,
                            owner_key,
                        ),
                    )
                )
            if fee_share > 0:
                postings.append(
                    (
                        platform_wallet,
                        self._debit(
                            fee_share,
                            platform_shortfall,
                            transaction_id,
                            refund,
                            original,
                            reason,
                            platform_key,
                        ),
                    )
                )
            LedgerService.post_entries(postings)

            owner_debited = owner_share - owner_shortfall
            platform_debited = fee_share - platform_shortfall
            WalletRefund.objects.create(
                refund_key=refund_key,
                transaction_id=transaction_id,
                wallet=wallet,
                refund_amount=refund,
                original_amount=original,
                owner_debited=owner_debited,
                platform_debited=platform_debited,
                owner_shortfall=owner_shortfall,
                platform_shortfall=platform_shortfall,
                reason=reason,
            )

        if owner_shortfall > 0 or platform_shortfall > 0:
            logger.warning(
                "Refund exceeds wallet balance, debit clamped",
                extra={
                    "transaction_id": transaction_id,
                    "owner_type": wallet.owner_type,
                    "owner_id": wallet.owner_id,
                    "owner_shortfall": str(owner_shortfall),
                    "platform_shortfall": str(platform_shortfall),
                },
            )

        logger.info(
            "Refund clawed back from wallets",
            extra={
                "transaction_id": transaction_id,
                "refund_key": refund_key,
                "wallet_id": str(wallet.id),
                "owner_debited": str(owner_debited),
                "platform_debited": str(platform_debited),
            },
        )

        if owner_debited > 0:
            try:
                self.notifier.refund_adjusted(wallet, owner_debited, transaction_id, refund_key)
            except Exception:
                logger.exception(
                    "Failed to queue refund email",
                    extra={"transaction_id": transaction_id, "wallet_id": str(wallet.id)},
                )

        return RefundResult(
            owner_debited=owner_debited,
            platform_debited=platform_debited,
            owner_shortfall=owner_shortfall,
            platform_shortfall=platform_shortfall,
            wallet_balance=wallet.balance,
            platform_balance=platform_wallet.balance,
        )

    def _original_fee(self, transaction_id: str, original: Decimal, fee_amount) -> Decimal:
        if fee_amount is not None:
            return to_amount(fee_amount, field_name="feeAmount")
        sale = LedgerEntry.objects.filter(
            idempotency_key=f"ticket-sale:{transaction_id}:owner"
        ).first()
        if sale is not None:
            metadata = parse_metadata(sale.metadata)
            if isinstance(metadata, TicketSaleMetadata):
                return metadata.fee_amount
        return percent_of(original, self.ticket_fee_percent)

    @staticmethod
    def _debit(
        amount: Decimal,
        shortfall: Decimal,
        transaction_id: str,
        refund: Decimal,
        original: Decimal,
        reason: str | None,
        idempotency_key: str,
    ) -> PostEntryParams:
        return PostEntryParams(
            entry_type=LedgerEntryType.REFUND,
            direction=LedgerDirection.DEBIT,
            amount=amount,
            metadata=RefundMetadata(
                transaction_id=transaction_id,
                refund_amount=refund,
                original_amount=original,
                requested_debit=amount,
                shortfall=shortfall,
                reason=reason,
            ),
            idempotency_key=idempotency_key,
            transaction_reference=transaction_id,
            clamp_to_balance=True,
        )

    def _replayed(
        self,
        record: WalletRefund,
        wallet: Wallet,
        platform_wallet: Wallet,
    ) -> RefundResult:
        self.get_logger().info(
            "Refund already applied",
            extra={"transaction_id": record.transaction_id, "refund_key": record.refund_key},
        )
        return RefundResult(
            owner_debited=record.owner_debited,
            platform_debited=record.platform_debited,
            owner_shortfall=record.owner_shortfall,
            platform_shortfall=record.platform_shortfall,
            wallet_balance=wallet.balance,
            platform_balance=platform_wallet.balance,
            already_applied=True,
        )
