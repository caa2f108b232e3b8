"""
Tests for wallet models.

Tests verify:
- Ledger entries cannot be changed or removed once written
- Only one default bank account per user
- Withdrawal state transitions are enforced by django-fsm
- Daily withdrawal counting uses the UTC day
"""

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from django_fsm import TransitionNotAllowed
from freezegun import freeze_time

from wallets.exceptions import LedgerImmutableError
from wallets.ledger import LedgerService
from wallets.models import BankAccount, LedgerEntry, Withdrawal
from wallets.state_machines import (
    LedgerDirection,
    LedgerEntryType,
    WebhookEventStatus,
    WithdrawalStatus,
)
from wallets.tests.factories import (
    BankAccountFactory,
    UserFactory,
    WalletFactory,
    WebhookEventFactory,
    WithdrawalFactory,
)
from wallets.types import PostEntryParams


@pytest.fixture
def entry(db):
    wallet = WalletFactory()
    return LedgerService.post(
        wallet,
        PostEntryParams(
            entry_type=LedgerEntryType.CREDIT,
            direction=LedgerDirection.CREDIT,
            amount=Decimal("5000"),
        ),
    )


# =============================================================================
# LedgerEntry
# =============================================================================


@pytest.mark.django_db
class TestLedgerEntryImmutability:
    def test_save_after_create_raises(self, entry):
        entry.amount = Decimal("1")

        with pytest.raises(LedgerImmutableError):
            entry.save()

    def test_delete_raises(self, entry):
        with pytest.raises(LedgerImmutableError):
            entry.delete()

        assert LedgerEntry.objects.filter(pk=entry.pk).exists()

    def test_queryset_update_raises(self, entry):
        with pytest.raises(LedgerImmutableError):
            LedgerEntry.objects.filter(pk=entry.pk).update(amount=Decimal("1"))

    def test_queryset_delete_raises(self, entry):
        with pytest.raises(LedgerImmutableError):
            LedgerEntry.objects.all().delete()

    def test_signed_amount(self, entry):
        assert entry.signed_amount == Decimal("5000.00")


# =============================================================================
# BankAccount
# =============================================================================


@pytest.mark.django_db
class TestBankAccount:
    def test_masked_number(self):
        account = BankAccountFactory(account_number="0123456789")

        assert account.masked_number == "••6789"
        assert "0123456789" not in str(account)

    def test_set_default_clears_previous(self):
        user = UserFactory()
        first = BankAccountFactory(user=user, is_default=True)
        second = BankAccountFactory(user=user, is_default=False)

        second.set_default()

        first.refresh_from_db()
        assert first.is_default is False
        assert BankAccount.objects.default_for(user) == second

    def test_owned_ignores_malformed_ids(self):
        user = UserFactory()

        assert BankAccount.objects.for_user(user).owned("not-a-uuid") is None


# =============================================================================
# Withdrawal
# =============================================================================


@pytest.mark.django_db
class TestWithdrawalTransitions:
    def test_mark_successful(self):
        withdrawal = WithdrawalFactory()

        withdrawal.mark_successful()

        assert withdrawal.status == WithdrawalStatus.SUCCESSFUL
        assert withdrawal.finalized_at is not None

    def test_mark_failed_default_reason(self):
        withdrawal = WithdrawalFactory(status=WithdrawalStatus.UNKNOWN)

        withdrawal.mark_failed()

        assert withdrawal.status == WithdrawalStatus.FAILED
        assert withdrawal.failure_reason == "Transfer failed"

    def test_confirm_submitted_sets_transfer_id(self):
        withdrawal = WithdrawalFactory(
            status=WithdrawalStatus.UNKNOWN, provider_transfer_id=None
        )

        withdrawal.confirm_submitted("777")

        assert withdrawal.status == WithdrawalStatus.PENDING
        assert withdrawal.provider_transfer_id == "777"

    def test_confirm_submitted_requires_unknown(self):
        withdrawal = WithdrawalFactory()

        with pytest.raises(TransitionNotAllowed):
            withdrawal.confirm_submitted("777")

    @pytest.mark.parametrize(
        "terminal", [WithdrawalStatus.SUCCESSFUL, WithdrawalStatus.FAILED]
    )
    def test_terminal_states_are_final(self, terminal):
        withdrawal = WithdrawalFactory(status=terminal)

        with pytest.raises(TransitionNotAllowed):
            withdrawal.mark_failed("late")
        with pytest.raises(TransitionNotAllowed):
            withdrawal.mark_successful()
        assert withdrawal.is_open is False

    def test_payout_amount(self):
        withdrawal = WithdrawalFactory(
            amount=Decimal("100000.00"), fee_amount=Decimal("5000.00")
        )

        assert withdrawal.payout_amount == Decimal("95000.00")


@pytest.mark.django_db
class TestRequestedToday:
    def test_counts_since_utc_midnight(self):
        user = UserFactory()
        account = BankAccountFactory(user=user)
        with freeze_time("2026-03-01 23:30:00"):
            WithdrawalFactory(user=user, bank_account=account)
        with freeze_time("2026-03-02 00:15:00"):
            WithdrawalFactory(user=user, bank_account=account)
            WithdrawalFactory()

            assert Withdrawal.objects.requested_today_by(user).count() == 1

    def test_explicit_now(self):
        user = UserFactory()
        with freeze_time("2026-03-01 10:00:00"):
            WithdrawalFactory(user=user)

        now = datetime(2026, 3, 1, 18, 0, tzinfo=dt_timezone.utc)
        assert Withdrawal.objects.requested_today_by(user, now=now).count() == 1


# =============================================================================
# WebhookEvent
# =============================================================================


@pytest.mark.django_db
class TestWebhookEvent:
    def test_status_helpers(self):
        event = WebhookEventFactory()

        event.mark_processing()
        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 1

        event.mark_failed("boom")
        assert event.error_message == "boom"

        event.mark_processed()
        assert event.is_processed
        assert event.error_message is None

    def test_data_of_malformed_payload(self):
        event = WebhookEventFactory(payload={"data": "x"})

        assert event.data == {}
