"""
Tests for WalletFundingService.

The buyer pays base + fee. The owner wallet is credited the base amount
and the platform wallet the fee, atomically and at most once per
transaction.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from wallets.conftest import EVENT_ID, GROUP_ID
from wallets.exceptions import WalletValidationError
from wallets.ledger import LedgerService
from wallets.models import LedgerEntry, WalletNotification
from wallets.services import WalletFundingService
from wallets.state_machines import LedgerEntryType, NotificationKind, WalletOwnerType

EVENT = WalletOwnerType.EVENT
GROUP = WalletOwnerType.GROUP


@pytest.fixture
def funding(notifier):
    return WalletFundingService(notifier=notifier, ticket_fee_percent="10")


@pytest.mark.django_db
class TestFundFromTransaction:
    """Tests for fund_from_transaction."""

    def test_credits_owner_and_platform(self, funding, owner_directory):
        result = funding.fund_from_transaction(
            EVENT, EVENT_ID, "txn-1", Decimal("10000"), fee_amount=Decimal("1000")
        )

        assert result.already_applied is False
        assert result.wallet_balance == Decimal("10000.00")
        assert result.platform_balance == Decimal("1000.00")
        assert result.owner_entry.entry_type == LedgerEntryType.CREDIT
        assert result.owner_entry.idempotency_key == "ticket-sale:txn-1:owner"
        assert result.platform_entry.idempotency_key == "ticket-sale:txn-1:platform"
        assert result.owner_entry.metadata["gross_amount"] == "11000.00"
        assert result.platform_entry.metadata["role"] == "platform_fee"

    def test_default_fee_is_ten_percent(self, funding, owner_directory):
        result = funding.fund_from_transaction(EVENT, EVENT_ID, "txn-2", "20000")

        assert result.platform_entry.amount == Decimal("2000.00")
        assert result.owner_entry.amount == Decimal("20000.00")

    def test_zero_fee_skips_platform_entry(self, funding, owner_directory):
        result = funding.fund_from_transaction(
            GROUP, GROUP_ID, "txn-3", "5000", fee_amount="0", hangout_id="evt-77"
        )

        assert result.platform_entry is None
        assert result.owner_entry.hangout_id == "evt-77"
        assert LedgerService.get_or_create_platform_wallet().balance == Decimal("0.00")

    def test_repeat_call_is_noop(self, funding, owner_directory):
        """Should credit once however often the payment is confirmed."""
        first = funding.fund_from_transaction(EVENT, EVENT_ID, "txn-4", "10000")
        second = funding.fund_from_transaction(EVENT, EVENT_ID, "txn-4", "10000")

        assert second.already_applied is True
        assert second.owner_entry.pk == first.owner_entry.pk
        assert second.wallet_balance == Decimal("10000.00")
        assert LedgerEntry.objects.count() == 2

    def test_queues_event_credited_email(
        self, funding, owner_directory, django_capture_on_commit_callbacks
    ):
        with patch("wallets.tasks.deliver_wallet_notification.delay"):
            with django_capture_on_commit_callbacks(execute=True):
                funding.fund_from_transaction(EVENT, EVENT_ID, "txn-5", "10000")
                funding.fund_from_transaction(EVENT, EVENT_ID, "txn-5", "10000")

        notification = WalletNotification.objects.get()
        assert notification.kind == NotificationKind.EVENT_WALLET_CREDITED
        assert notification.recipients == ["organizer@example.com"]
        assert notification.context["amount"] == "₦10,000"

    def test_group_credited_email_kind(self, funding, owner_directory):
        funding.fund_from_transaction(GROUP, GROUP_ID, "txn-6", "10000")

        assert WalletNotification.objects.get().kind == NotificationKind.GROUP_WALLET_CREDITED

    def test_email_failure_does_not_undo_credit(self, funding, owner_directory):
        with patch.object(funding.notifier, "wallet_credited", side_effect=RuntimeError("boom")):
            result = funding.fund_from_transaction(EVENT, EVENT_ID, "txn-7", "10000")

        assert result.wallet_balance == Decimal("10000.00")

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"transaction_id": ""}, "transactionId is required"),
            ({"owner_type": WalletOwnerType.PLATFORM}, "Only EVENT and GROUP wallets"),
            ({"amount": "0"}, "Invalid transaction amount for wallet funding"),
            ({"fee_amount": "-1"}, "feeAmount cannot be negative"),
        ],
    )
    def test_validation(self, funding, owner_directory, kwargs, message):
        call = {
            "owner_type": EVENT,
            "owner_id": EVENT_ID,
            "transaction_id": "txn-8",
            "amount": "10000",
            **kwargs,
        }

        with pytest.raises(WalletValidationError, match=message):
            funding.fund_from_transaction(**call)

        assert not LedgerEntry.objects.exists()
