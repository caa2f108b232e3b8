"""
Tests for WithdrawalService.

Covers the fee rules, validation order and the ledger debit.
"""

from decimal import Decimal

import pytest

from wallets.conftest import EVENT_ID, GROUP_ID
from wallets.exceptions import (
    InsufficientBalanceError,
    WalletAuthorizationError,
    WalletValidationError,
)
from wallets.ledger import LedgerService
from wallets.models import LedgerEntry, Wallet
from wallets.state_machines import (
    FeeMode,
    LedgerDirection,
    LedgerEntryType,
    WalletOwnerType,
)

EVENT = WalletOwnerType.EVENT
GROUP = WalletOwnerType.GROUP


class TestCalculateFee:
    """Fee rules per owner type."""

    def test_event_fee_is_five_percent(self, withdrawal_service):
        assert withdrawal_service.calculate_fee(EVENT, Decimal("100000")) == Decimal("5000.00")

    def test_event_fee_rounds_half_up(self, withdrawal_service):
        assert withdrawal_service.calculate_fee(EVENT, Decimal("10000.10")) == Decimal("500.01")

    def test_group_has_no_fee(self, withdrawal_service):
        assert withdrawal_service.calculate_fee(GROUP, Decimal("100000")) == Decimal("0.00")


@pytest.mark.django_db
class TestRequestWithdrawal:
    """Tests for request_withdrawal."""

    def test_event_withdrawal_debits_gross_amount(
        self, withdrawal_service, funded_event_wallet, organizer
    ):
        """Should debit the full amount and report the fee split."""
        debit = withdrawal_service.request_withdrawal(
            owner_type=EVENT,
            owner_id=EVENT_ID,
            requested_by=organizer.pk,
            requested_amount=Decimal("100000"),
            reference="wd_ref_1",
        )

        funded_event_wallet.refresh_from_db()
        assert debit.fee_amount == Decimal("5000.00")
        assert debit.payout_amount == Decimal("95000.00")
        assert debit.wallet_balance_after == Decimal("100000.00")
        assert funded_event_wallet.balance == Decimal("100000.00")

        entry = debit.ledger_entry
        assert entry.entry_type == LedgerEntryType.WITHDRAWAL
        assert entry.direction == LedgerDirection.DEBIT
        assert entry.amount == Decimal("100000.00")
        assert entry.idempotency_key == "withdrawal:wd_ref_1:debit"
        assert entry.metadata["kind"] == "withdrawal_debit"
        assert entry.metadata["fee_amount"] == "5000.00"
        assert entry.metadata["requested_by"] == str(organizer.pk)

    def test_group_withdrawal_pays_out_everything(
        self, withdrawal_service, funded_group_wallet, organizer
    ):
        debit = withdrawal_service.request_withdrawal(
            owner_type=GROUP,
            owner_id=GROUP_ID,
            requested_by=organizer.pk,
            requested_amount="20000",
        )

        assert debit.fee_amount == Decimal("0.00")
        assert debit.payout_amount == Decimal("20000.00")
        assert debit.wallet_balance_after == Decimal("30000.00")

    def test_exact_balance_allowed(self, withdrawal_service, funded_event_wallet, organizer):
        debit = withdrawal_service.request_withdrawal(
            EVENT, EVENT_ID, organizer.pk, Decimal("200000")
        )

        assert debit.wallet_balance_after == Decimal("0.00")

    def test_insufficient_balance(self, withdrawal_service, funded_event_wallet, organizer):
        """Should refuse before writing any ledger entry."""
        with pytest.raises(InsufficientBalanceError, match="Insufficient wallet balance"):
            withdrawal_service.request_withdrawal(
                EVENT, EVENT_ID, organizer.pk, Decimal("200000.01")
            )

        assert not LedgerEntry.objects.filter(
            entry_type=LedgerEntryType.WITHDRAWAL
        ).exists()

    def test_stale_reads_cannot_both_debit(
        self, withdrawal_service, funded_event_wallet, organizer, mocker
    ):
        """Two requests that both saw ₦200,000 must not both take ₦150,000."""
        first_read = Wallet.objects.get(pk=funded_event_wallet.pk)
        second_read = Wallet.objects.get(pk=funded_event_wallet.pk)
        mocker.patch.object(
            LedgerService, "get_wallet", side_effect=[first_read, second_read]
        )

        withdrawal_service.request_withdrawal(EVENT, EVENT_ID, organizer.pk, "150000")
        with pytest.raises(InsufficientBalanceError):
            withdrawal_service.request_withdrawal(EVENT, EVENT_ID, organizer.pk, "150000")

        funded_event_wallet.refresh_from_db()
        assert funded_event_wallet.balance == Decimal("50000.00")
        assert LedgerService.reconstruct_balance(funded_event_wallet) == Decimal("50000.00")
        assert LedgerEntry.objects.filter(entry_type=LedgerEntryType.WITHDRAWAL).count() == 1

    def test_missing_wallet_is_insufficient_balance(
        self, withdrawal_service, owner_directory, organizer
    ):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            withdrawal_service.request_withdrawal(EVENT, EVENT_ID, organizer.pk, "1000")

        assert exc_info.value.available == Decimal("0.00")

    def test_non_creator_denied(self, withdrawal_service, funded_event_wallet, co_organizer):
        with pytest.raises(WalletAuthorizationError, match="Only the event creator"):
            withdrawal_service.request_withdrawal(EVENT, EVENT_ID, co_organizer.pk, "1000")

    def test_platform_wallet_denied(self, withdrawal_service, owner_directory, organizer):
        with pytest.raises(WalletAuthorizationError, match="platform wallet"):
            withdrawal_service.request_withdrawal(
                WalletOwnerType.PLATFORM, None, organizer.pk, "1000"
            )

    @pytest.mark.parametrize("amount", ["0", "-5", 0])
    def test_non_positive_amount(self, withdrawal_service, organizer, amount):
        with pytest.raises(WalletValidationError, match="requestedAmount must be a positive"):
            withdrawal_service.request_withdrawal(EVENT, EVENT_ID, organizer.pk, amount)

    def test_non_numeric_amount(self, withdrawal_service, organizer):
        with pytest.raises(WalletValidationError, match="requestedAmount must be a number"):
            withdrawal_service.request_withdrawal(EVENT, EVENT_ID, organizer.pk, "lots")

    def test_requested_by_required(self, withdrawal_service):
        with pytest.raises(WalletValidationError, match="requestedBy is required"):
            withdrawal_service.request_withdrawal(EVENT, EVENT_ID, None, "1000")

    def test_only_exclusive_fee_mode(self, withdrawal_service, organizer):
        """Should reject INCLUSIVE and NONE fee modes."""
        with pytest.raises(WalletValidationError, match="Unsupported fee mode"):
            withdrawal_service.request_withdrawal(
                EVENT, EVENT_ID, organizer.pk, "1000", fee_mode=FeeMode.INCLUSIVE
            )
