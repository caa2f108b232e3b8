"""
Tests for WalletNotifier.

Tests verify:
- Outbox rows are deduplicated and dispatched after commit
- Recipient resolution for event and group owners
- Delivery marks rows SENT, permanently FAILED, or raises for retry
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.template import TemplateDoesNotExist

from wallets.conftest import EVENT_ID, GROUP_ID
from wallets.exceptions import NotificationError
from wallets.models import WalletNotification
from wallets.protocols import EventRecord
from wallets.state_machines import (
    NotificationKind,
    NotificationStatus,
    WalletOwnerType,
    WithdrawalStatus,
)
from wallets.tests.factories import WalletNotificationFactory, WithdrawalFactory


# =============================================================================
# Outbox
# =============================================================================


@pytest.mark.django_db
class TestEnqueue:
    """Tests for the outbox insert."""

    def test_dispatches_after_commit(self, notifier, django_capture_on_commit_callbacks):
        with patch("wallets.tasks.deliver_wallet_notification.delay") as mock_delay:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                notification = notifier.enqueue(
                    NotificationKind.WITHDRAWAL_SUCCESS,
                    recipients=["a@example.com"],
                    context={"amount": "₦10,000"},
                    dedupe_key="withdrawal:1:final",
                )

        assert len(callbacks) == 1
        mock_delay.assert_called_once_with(str(notification.id))
        assert notification.status == NotificationStatus.PENDING

    def test_dedupe_key_returns_existing_row(self, notifier, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks() as callbacks:
            first = notifier.enqueue(
                NotificationKind.WITHDRAWAL_SUCCESS, ["a@example.com"], {}, "dup"
            )
            second = notifier.enqueue(
                NotificationKind.WITHDRAWAL_SUCCESS, ["a@example.com"], {}, "dup"
            )

        assert first.pk == second.pk
        assert len(callbacks) == 1
        assert WalletNotification.objects.count() == 1

    def test_no_recipients_skips(self, notifier):
        assert notifier.enqueue(NotificationKind.WITHDRAWAL_SUCCESS, [None, ""], {}, "k") is None
        assert not WalletNotification.objects.exists()

    def test_broker_down_leaves_row_pending(self, notifier, django_capture_on_commit_callbacks):
        with patch(
            "wallets.tasks.deliver_wallet_notification.delay",
            side_effect=ConnectionError("broker down"),
        ):
            with django_capture_on_commit_callbacks(execute=True):
                notification = notifier.enqueue(
                    NotificationKind.WITHDRAWAL_SUCCESS, ["a@example.com"], {}, "k2"
                )

        notification.refresh_from_db()
        assert notification.status == NotificationStatus.PENDING


# =============================================================================
# Recipients
# =============================================================================


@pytest.mark.django_db
class TestOwnerContact:
    def test_event_creator(self, notifier):
        assert notifier.owner_contact(WalletOwnerType.EVENT, EVENT_ID) == (
            "organizer@example.com",
            "Lagos Jazz Night",
        )

    def test_group_creator(self, notifier):
        assert notifier.owner_contact(WalletOwnerType.GROUP, GROUP_ID) == (
            "organizer@example.com",
            "Owambe Crew",
        )

    def test_platform_event_has_no_owner_email(self, notifier, owner_directory, organizer):
        """Should not email anyone for events not created by a user."""
        owner_directory.add_event(
            EventRecord(
                id="evt-platform",
                title="Jaaiye Fest",
                creator_id=str(organizer.pk),
                origin="jaaiye",
            )
        )

        assert notifier.owner_contact(WalletOwnerType.EVENT, "evt-platform") == (
            None,
            "Jaaiye Fest",
        )

    def test_unknown_event(self, notifier):
        assert notifier.owner_contact(WalletOwnerType.EVENT, "evt-x") == (None, "event evt-x")


# =============================================================================
# Messages
# =============================================================================


@pytest.mark.django_db
class TestMessages:
    def test_withdrawal_finalized_success(self, notifier, funded_event_wallet, organizer):
        withdrawal = WithdrawalFactory(
            wallet=funded_event_wallet, user=organizer, status=WithdrawalStatus.SUCCESSFUL
        )

        notifier.withdrawal_finalized(withdrawal)
        notifier.withdrawal_finalized(withdrawal)

        notification = WalletNotification.objects.get()
        assert notification.kind == NotificationKind.WITHDRAWAL_SUCCESS
        assert notification.recipients == ["organizer@example.com"]
        assert notification.dedupe_key == f"withdrawal:{withdrawal.id}:final"
        assert notification.context["payout_amount"] == "₦95,000"
        assert notification.context["bank_account"] == withdrawal.bank_account.masked_number
        assert notification.context["balance"] == "₦200,000"

    def test_withdrawal_finalized_failed(self, notifier, funded_event_wallet, organizer):
        withdrawal = WithdrawalFactory(
            wallet=funded_event_wallet,
            user=organizer,
            status=WithdrawalStatus.FAILED,
            failure_reason="Account blocked",
        )

        notifier.withdrawal_finalized(withdrawal)

        notification = WalletNotification.objects.get()
        assert notification.kind == NotificationKind.WITHDRAWAL_FAILED
        assert notification.context["failure_reason"] == "Account blocked"

    def test_open_withdrawal_sends_nothing(self, notifier, funded_event_wallet, organizer):
        notifier.withdrawal_finalized(
            WithdrawalFactory(wallet=funded_event_wallet, user=organizer)
        )

        assert not WalletNotification.objects.exists()

    def test_wallet_adjusted_direction(self, notifier, funded_event_wallet):
        notifier.wallet_adjusted(funded_event_wallet, Decimal("2500"), "Goodwill", "entry-1")

        notification = WalletNotification.objects.get()
        assert notification.context["direction"] == "credited"
        assert notification.context["balance"] == "₦200,000"


# =============================================================================
# Delivery
# =============================================================================


@pytest.mark.django_db
class TestDeliver:
    """Tests for deliver (worker side)."""

    def test_sends_and_marks_sent(self, notifier, email_sender):
        notification = WalletNotificationFactory()

        assert notifier.deliver(str(notification.id)) is True

        notification.refresh_from_db()
        assert notification.status == NotificationStatus.SENT
        assert notification.sent_at is not None
        assert notification.attempt_count == 1
        email_sender.send.assert_called_once_with(
            to=["organizer@example.com"],
            subject="Your withdrawal was successful",
            template_name="wallets/emails/withdrawal_success",
            context=notification.context,
            fail_silently=False,
        )

    def test_subject_uses_owner_label(self, notifier, email_sender):
        notification = WalletNotificationFactory(kind=NotificationKind.WITHDRAWAL_RECEIPT_ADMIN)

        notifier.deliver(str(notification.id))

        assert email_sender.send.call_args.kwargs["subject"] == (
            "Withdrawal request from Lagos Jazz Night"
        )

    def test_already_sent_is_skipped(self, notifier, email_sender):
        notification = WalletNotificationFactory(status=NotificationStatus.SENT)

        assert notifier.deliver(str(notification.id)) is True
        email_sender.send.assert_not_called()

    def test_missing_row(self, notifier, email_sender):
        assert notifier.deliver("00000000-0000-0000-0000-000000000000") is True

    def test_missing_template_is_permanent(self, notifier, email_sender):
        email_sender.send.side_effect = TemplateDoesNotExist("wallets/emails/x.txt")
        notification = WalletNotificationFactory()

        assert notifier.deliver(str(notification.id)) is False

        notification.refresh_from_db()
        assert notification.status == NotificationStatus.FAILED
        assert notification.is_permanent_failure is True
        assert notification.failure_code == "template_missing"

    def test_transient_failure_raises_for_retry(self, notifier, email_sender):
        email_sender.send.side_effect = ConnectionError("SMTP down")
        notification = WalletNotificationFactory()

        with pytest.raises(NotificationError):
            notifier.deliver(str(notification.id))

        notification.refresh_from_db()
        assert notification.status == NotificationStatus.PENDING
        assert notification.attempt_count == 1
        assert notification.failure_code == "send_failed"


class TestTemplates:
    """Every notification kind renders with its own template."""

    @pytest.mark.parametrize("kind", NotificationKind.values)
    def test_template_exists(self, kind):
        from django.template.loader import get_template

        assert get_template(f"wallets/emails/{kind}.txt") is not None
