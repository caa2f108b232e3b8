"""
Withdrawal orchestrator: debit, transfer, record, compensate.

Flow:
    1. Validate amount bounds
    2. Under a per-user Redis lock: check the daily limit and resolve the
       bank account
    3. Debit the wallet (WithdrawalService)
    4. Create the Flutterwave transfer for the payout amount
       - rejected: credit the debit back with a compensating ADJUSTMENT and
         raise ProviderError
       - timed out / gateway error: record the withdrawal as UNKNOWN; the
         poller looks the transfer up by reference later
       - created: record the withdrawal as PENDING; the webhook or the
         poller finalizes it
    5. Queue the admin receipt email

Usage:
    from wallets.services import WithdrawalOrchestrator

    receipt = WithdrawalOrchestrator.default().execute(
        owner_type=WalletOwnerType.EVENT,
        owner_id=event_id,
        requested_by=request.user,
        amount=Decimal("100000"),
    )
    receipt.withdrawal.status     # "pending"
    receipt.bank_account_masked   # "••6789"
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Callable

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from core.services import BaseService

from wallets.adapters import CreateTransferParams, FlutterwaveAdapter
from wallets.exceptions import (
    BankAccountNotFoundError,
    ProviderError,
    WalletValidationError,
    WithdrawalLimitError,
    WithdrawalRollbackError,
)
from wallets.ledger import LedgerService
from wallets.locks import withdrawal_request_lock
from wallets.models import BankAccount, Withdrawal
from wallets.services.notifications import WalletNotifier
from wallets.services.withdrawal import WithdrawalService
from wallets.state_machines import (
    FeeMode,
    LedgerDirection,
    LedgerEntryType,
    WithdrawalStatus,
)
from wallets.types import (
    PostEntryParams,
    WithdrawalMetadata,
    WithdrawalReceipt,
    WithdrawalRollbackMetadata,
    format_naira,
    to_amount,
)

if TYPE_CHECKING:
    from wallets.locks import DistributedLock
    from wallets.protocols import PayoutProvider
    from wallets.types import WithdrawalDebit

ROLLBACK_REASON = "withdrawal_transfer_failed_rollback"


class WithdrawalOrchestrator(BaseService):
    """Runs a withdrawal end to end against the payout provider."""

    def __init__(
        self,
        withdrawal_service: WithdrawalService,
        provider: PayoutProvider,
        notifier: WalletNotifier,
        min_amount: Decimal | str = "10000",
        max_amount: Decimal | str = "500000",
        daily_limit: int = 2,
        brand_name: str = "Jaaiye",
        currency: str = "NGN",
        lock_factory: Callable[[object], DistributedLock] = withdrawal_request_lock,
    ) -> None:
        self.withdrawal_service = withdrawal_service
        self.provider = provider
        self.notifier = notifier
        self.min_amount = Decimal(str(min_amount))
        self.max_amount = Decimal(str(max_amount))
        self.daily_limit = daily_limit
        self.brand_name = brand_name
        self.currency = currency
        self.lock_factory = lock_factory

    @classmethod
    def default(cls) -> WithdrawalOrchestrator:
        return cls(
            withdrawal_service=WithdrawalService.default(),
            provider=FlutterwaveAdapter.default(),
            notifier=WalletNotifier.default(),
            min_amount=settings.WALLET_WITHDRAWAL_MIN_AMOUNT,
            max_amount=settings.WALLET_WITHDRAWAL_MAX_AMOUNT,
            daily_limit=settings.WALLET_WITHDRAWAL_DAILY_LIMIT,
            brand_name=settings.WALLET_BRAND_NAME,
            currency=settings.WALLET_CURRENCY,
        )

    def execute(
        self,
        owner_type: str,
        owner_id: str | None,
        requested_by,
        amount,
        bank_account_id=None,
    ) -> WithdrawalReceipt:
        """
        Request a withdrawal and start the bank transfer.

        Args:
            owner_type: EVENT or GROUP
            owner_id: Event or group id
            requested_by: User instance or user id
            amount: Gross amount to withdraw
            bank_account_id: Destination; the requester's default if omitted

        Returns:
            WithdrawalReceipt (outcome_unknown=True if the provider did not answer)

        Raises:
            WalletValidationError: Amount out of bounds
            WithdrawalLimitError: Daily limit reached
            BankAccountNotFoundError: No usable bank account
            WalletAuthorizationError / InsufficientBalanceError: From the debit
            ProviderError: Transfer rejected; the debit was credited back
            WithdrawalRollbackError: Transfer rejected and the credit back failed
            LockAcquisitionError: Another request from this user is in progress
        """
        amount = self._validate_amount(amount)
        user = self._resolve_user(requested_by)

        with self.lock_factory(user.pk):
            self._check_daily_limit(user)
            bank_account = self._resolve_bank_account(user, bank_account_id)
            payout_reference = self.generate_payout_reference(owner_type, owner_id)

            try:
                debit = self.withdrawal_service.request_withdrawal(
                    owner_type=owner_type,
                    owner_id=owner_id,
                    requested_by=user.pk,
                    requested_amount=amount,
                    fee_mode=FeeMode.EXCLUSIVE,
                    reference=payout_reference,
                )
            except Exception as e:
                self.get_logger().error(
                    "Wallet withdrawal failed",
                    extra={
                        "owner_type": owner_type,
                        "owner_id": owner_id,
                        "requested_by": str(user.pk),
                        "amount": str(amount),
                        "error": str(e),
                    },
                )
                raise

            return self._transfer(
                owner_type=owner_type,
                owner_id=debit.wallet.owner_id,
                user=user,
                amount=amount,
                bank_account=bank_account,
                payout_reference=payout_reference,
                debit=debit,
            )

    # ==========================================================================
    # Preconditions
    # ==========================================================================

    def _validate_amount(self, amount) -> Decimal:
        amount = to_amount(amount)
        if amount <= 0:
            raise WalletValidationError("Amount must be a positive number")
        if amount < self.min_amount:
            raise WalletValidationError(
                f"Minimum withdrawal amount is {format_naira(self.min_amount)}",
                error_code="WITHDRAWAL_BELOW_MINIMUM",
                details={"amount": str(amount), "min_amount": str(self.min_amount)},
            )
        if amount > self.max_amount:
            raise WalletValidationError(
                f"Maximum withdrawal amount is {format_naira(self.max_amount)}",
                error_code="WITHDRAWAL_ABOVE_MAXIMUM",
                details={"amount": str(amount), "max_amount": str(self.max_amount)},
            )
        return amount

    @staticmethod
    def _resolve_user(requested_by):
        user_model = get_user_model()
        if isinstance(requested_by, user_model):
            return requested_by
        user = user_model.objects.filter(pk=requested_by).first()
        if user is None:
            raise WalletValidationError(
                "requestedBy is required",
                details={"requested_by": str(requested_by)},
            )
        return user

    def _check_daily_limit(self, user) -> None:
        count = Withdrawal.objects.requested_today_by(user).count()
        if count >= self.daily_limit:
            raise WithdrawalLimitError(
                f"You have reached the daily withdrawal limit "
                f"({self.daily_limit} withdrawals per day)",
                details={"limit": self.daily_limit, "count": count},
            )

    @staticmethod
    def _resolve_bank_account(user, bank_account_id) -> BankAccount:
        if bank_account_id:
            bank_account = BankAccount.objects.for_user(user).owned(bank_account_id)
            if bank_account is None:
                raise BankAccountNotFoundError(
                    "Bank account not found or does not belong to you",
                    details={"bank_account_id": str(bank_account_id)},
                )
            return bank_account

        bank_account = BankAccount.objects.default_for(user)
        if bank_account is None:
            raise BankAccountNotFoundError(
                "No default bank account found. Please add a bank account first."
            )
        return bank_account

    @staticmethod
    def generate_payout_reference(owner_type: str, owner_id: str | None) -> str:
        """wd_<epoch-ms>_<owner_type>_<owner_id>_<random>"""
        epoch_ms = int(timezone.now().timestamp() * 1000)
        return f"wd_{epoch_ms}_{owner_type}_{owner_id}_{uuid.uuid4().hex[:8]}"

    # ==========================================================================
    # Transfer
    # ==========================================================================

    def _transfer(
        self,
        owner_type: str,
        owner_id: str | None,
        user,
        amount: Decimal,
        bank_account: BankAccount,
        payout_reference: str,
        debit: WithdrawalDebit,
    ) -> WithdrawalReceipt:
        logger = self.get_logger()
        log_context = {
            "owner_type": owner_type,
            "owner_id": owner_id,
            "requested_by": str(user.pk),
            "amount": str(amount),
            "payout_reference": payout_reference,
        }

        params = CreateTransferParams(
            amount=debit.payout_amount,
            bank_code=bank_account.bank_code,
            account_number=bank_account.account_number,
            account_name=bank_account.account_name,
            reference=payout_reference,
            narration=f"{self.brand_name} {owner_type} wallet withdrawal",
            currency=self.currency,
        )

        try:
            transfer = self.provider.create_transfer(params)
        except ProviderError as e:
            if e.outcome_unknown:
                logger.warning(
                    "Transfer outcome unknown, leaving withdrawal for reconciliation",
                    extra={**log_context, "error": str(e)},
                )
                return self._record(
                    debit, user, bank_account, payout_reference,
                    status=WithdrawalStatus.UNKNOWN,
                    provider_message=e.message,
                )
            logger.error(
                "Transfer creation failed, rolling back wallet debit",
                extra={**log_context, "error": str(e)},
            )
            self._rollback(debit, owner_type, owner_id, amount, payout_reference, e)
            raise ProviderError(
                f"Failed to initiate transfer: {e.message}. "
                f"The full amount has been returned to your wallet.",
                error_code=e.error_code,
                provider_code=e.provider_code,
                details={"payout_reference": payout_reference},
            ) from e
        except Exception as e:
            # The request may have reached the provider; resolve by reference
            logger.exception(
                "Unexpected error creating transfer, leaving withdrawal for reconciliation",
                extra={**log_context, "error": str(e)},
            )
            return self._record(
                debit, user, bank_account, payout_reference,
                status=WithdrawalStatus.UNKNOWN,
                provider_message=str(e),
            )

        return self._record(
            debit, user, bank_account, payout_reference,
            status=WithdrawalStatus.PENDING,
            transfer_id=transfer.id,
            transfer_status=transfer.status,
        )

    def _record(
        self,
        debit: WithdrawalDebit,
        user,
        bank_account: BankAccount,
        payout_reference: str,
        status: str,
        transfer_id: str | None = None,
        transfer_status: str | None = None,
        provider_message: str | None = None,
    ) -> WithdrawalReceipt:
        wallet = debit.wallet
        withdrawal = Withdrawal.objects.create(
            wallet=wallet,
            user=user,
            bank_account=bank_account,
            owner_type=wallet.owner_type,
            owner_id=wallet.owner_id,
            amount=debit.ledger_entry.amount,
            fee_amount=debit.fee_amount,
            currency=wallet.currency,
            status=status,
            payout_reference=payout_reference,
            provider_transfer_id=transfer_id,
            metadata=WithdrawalMetadata(
                transfer_status=transfer_status,
                payout_amount=debit.payout_amount,
                fee_mode=FeeMode.EXCLUSIVE,
                provider_message=provider_message,
            ).to_dict(),
        )

        self.get_logger().info(
            "Withdrawal recorded",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "status": status,
                "payout_reference": payout_reference,
                "provider_transfer_id": transfer_id,
            },
        )

        try:
            self.notifier.withdrawal_receipt(withdrawal, bank_account.masked_number)
        except Exception as e:
            self.get_logger().error(
                f"Failed to queue withdrawal receipt: {e}",
                extra={"withdrawal_id": str(withdrawal.id)},
            )

        return WithdrawalReceipt(
            withdrawal=withdrawal,
            wallet_balance_after=debit.wallet_balance_after,
            transfer_id=transfer_id,
            transfer_status=transfer_status,
            bank_account_masked=bank_account.masked_number,
            outcome_unknown=status == WithdrawalStatus.UNKNOWN,
        )

    def _rollback(
        self,
        debit: WithdrawalDebit,
        owner_type: str,
        owner_id: str | None,
        amount: Decimal,
        payout_reference: str,
        error: ProviderError,
    ) -> None:
        """Credit the full debited amount back with a compensating entry."""
        logger = self.get_logger()
        try:
            LedgerService.post(
                debit.wallet,
                PostEntryParams(
                    entry_type=LedgerEntryType.ADJUSTMENT,
                    direction=LedgerDirection.CREDIT,
                    amount=amount,
                    metadata=WithdrawalRollbackMetadata(
                        reason=ROLLBACK_REASON,
                        payout_reference=payout_reference,
                        error=error.message,
                    ),
                    idempotency_key=f"withdrawal:{payout_reference}:rollback",
                    transaction_reference=payout_reference,
                ),
            )
        except Exception as rollback_error:
            logger.critical(
                "Failed to roll back wallet after transfer failure",
                extra={
                    "owner_type": owner_type,
                    "owner_id": owner_id,
                    "amount": str(amount),
                    "payout_reference": payout_reference,
                    "error": str(error),
                    "rollback_error": str(rollback_error),
                },
                exc_info=True,
            )
            try:
                self.notifier.rollback_alert(
                    owner_type, owner_id, amount, payout_reference, str(rollback_error)
                )
            except Exception:
                logger.exception(
                    "Failed to queue rollback alert",
                    extra={"payout_reference": payout_reference},
                )
            raise WithdrawalRollbackError(
                "Transfer failed and the wallet could not be re-credited. "
                "Support has been notified.",
                details={
                    "owner_type": owner_type,
                    "owner_id": owner_id,
                    "amount": str(amount),
                    "payout_reference": payout_reference,
                },
            ) from rollback_error

        logger.info(
            "Rolled back wallet debit after transfer failure",
            extra={
                "owner_type": owner_type,
                "owner_id": owner_id,
                "amount": str(amount),
                "payout_reference": payout_reference,
            },
        )
