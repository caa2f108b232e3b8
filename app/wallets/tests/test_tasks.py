"""
Tests for wallet Celery tasks.

Tasks are called synchronously; ``.delay`` is patched where a task
queues another.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from django.utils import timezone

from wallets.exceptions import NotificationError
from wallets.models import WalletNotification, WebhookEvent
from wallets.state_machines import (
    NotificationStatus,
    WebhookEventStatus,
    WithdrawalStatus,
)
from wallets.tasks import (
    MAX_WEBHOOK_RETRIES,
    cleanup_stuck_webhooks,
    deliver_wallet_notification,
    poll_pending_withdrawals,
    process_flutterwave_webhook_event,
    redeliver_pending_notifications,
    retry_failed_webhooks,
)
from wallets.tests.factories import (
    WalletNotificationFactory,
    WebhookEventFactory,
    transfer_payload,
)
from wallets.types import PollSummary


# =============================================================================
# Webhook Processing
# =============================================================================


@pytest.mark.django_db
class TestProcessFlutterwaveWebhookEvent:
    def test_processes_and_finalizes(self, pending_withdrawal):
        event = WebhookEventFactory(
            payload=transfer_payload(
                408221, "SUCCESSFUL", reference=pending_withdrawal.payout_reference
            )
        )

        result = process_flutterwave_webhook_event(str(event.id))

        assert result["status"] == "processed"
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.processed_at is not None
        assert event.retry_count == 1
        pending_withdrawal.refresh_from_db()
        assert pending_withdrawal.status == WithdrawalStatus.SUCCESSFUL

    def test_already_processed(self, db):
        event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        result = process_flutterwave_webhook_event(str(event.id))

        assert result["status"] == "already_processed"

    def test_not_found(self, db):
        result = process_flutterwave_webhook_event("00000000-0000-0000-0000-000000000000")

        assert result["status"] == "not_found"

    def test_handler_failure_marks_failed(self, db, owner_directory):
        event = WebhookEventFactory(payload=transfer_payload(1, "SUCCESSFUL", reference="wd_x"))

        result = process_flutterwave_webhook_event(str(event.id))

        assert result["status"] == "handler_failed"
        assert result["error_code"] == "WITHDRAWAL_NOT_FOUND"
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == "Withdrawal not found"

    def test_exception_marks_failed_and_reraises(self, db):
        event = WebhookEventFactory()

        with patch(
            "wallets.webhooks.handlers.dispatch_webhook",
            side_effect=RuntimeError("database gone"),
        ):
            with pytest.raises(RuntimeError):
                process_flutterwave_webhook_event(str(event.id))

        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == "RuntimeError: database gone"


@pytest.mark.django_db
class TestRetryFailedWebhooks:
    def test_queues_retryable_events(self):
        retryable = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)
        WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=MAX_WEBHOOK_RETRIES)
        WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        with patch("wallets.tasks.process_flutterwave_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        mock_delay.assert_called_once_with(str(retryable.id))


@pytest.mark.django_db
class TestCleanupStuckWebhooks:
    def test_resets_old_processing_events(self):
        stuck = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        fresh = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        WebhookEvent.objects.filter(pk=stuck.pk).update(
            updated_at=timezone.now() - timedelta(minutes=31)
        )

        result = cleanup_stuck_webhooks()

        assert result == {"reset_count": 1}
        stuck.refresh_from_db()
        fresh.refresh_from_db()
        assert stuck.status == WebhookEventStatus.FAILED
        assert fresh.status == WebhookEventStatus.PROCESSING


# =============================================================================
# Notifications
# =============================================================================


@pytest.mark.django_db
class TestDeliverWalletNotification:
    def test_delegates_to_notifier(self):
        notification = WalletNotificationFactory()
        notifier = MagicMock()
        notifier.deliver.return_value = True

        with patch(
            "wallets.services.notifications.WalletNotifier.default", return_value=notifier
        ):
            assert deliver_wallet_notification(str(notification.id)) is True

        notifier.deliver.assert_called_once_with(str(notification.id))

    def test_sends_real_template(self, owner_directory, mailoutbox):
        notification = WalletNotificationFactory()

        assert deliver_wallet_notification(str(notification.id)) is True

        notification.refresh_from_db()
        assert notification.status == NotificationStatus.SENT
        assert len(mailoutbox) == 1
        assert mailoutbox[0].subject == "Your withdrawal was successful"
        assert "₦95,000" in mailoutbox[0].body

    def test_transient_failure_propagates(self):
        notifier = MagicMock()
        notifier.deliver.side_effect = NotificationError("SMTP down")

        with patch(
            "wallets.services.notifications.WalletNotifier.default", return_value=notifier
        ):
            with pytest.raises(NotificationError):
                deliver_wallet_notification.run("any-id")


@pytest.mark.django_db
class TestRedeliverPendingNotifications:
    def test_queues_old_pending_rows(self):
        old = WalletNotificationFactory()
        WalletNotificationFactory()
        WalletNotificationFactory(status=NotificationStatus.SENT)
        WalletNotification.objects.filter(pk=old.pk).update(
            created_at=timezone.now() - timedelta(minutes=11)
        )

        with patch("wallets.tasks.deliver_wallet_notification.delay") as mock_delay:
            result = redeliver_pending_notifications()

        assert result == {"queued_count": 1}
        mock_delay.assert_called_once_with(str(old.id))


# =============================================================================
# Withdrawal Polling
# =============================================================================


class TestPollPendingWithdrawals:
    def test_runs_poller_under_lock(self, mock_redis):
        poller = MagicMock()
        poller.execute.return_value = PollSummary(total_found=2, total_processed=2)

        with patch("wallets.workers.WithdrawalPoller.default", return_value=poller):
            result = poll_pending_withdrawals()

        assert result["status"] == "completed"
        assert result["total_processed"] == 2
        assert mock_redis.set.call_args.args[0] == "lock:wallets:withdrawal-poller"

    def test_skips_when_another_run_holds_the_lock(self, mock_redis):
        mock_redis.set.return_value = None

        with patch("wallets.workers.WithdrawalPoller.default") as mock_default:
            result = poll_pending_withdrawals()

        assert result == {"status": "skipped", "reason": "already_running"}
        mock_default.assert_not_called()

