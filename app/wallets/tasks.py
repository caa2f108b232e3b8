"""
Celery tasks for wallets.

This module provides async tasks for:
- Delivering queued wallet emails (outbox)
- Redelivering notifications whose dispatch was lost
- Processing Flutterwave webhook events
- Retrying failed webhook events and resetting stuck ones
- Polling open withdrawals (celery-beat, every WITHDRAWAL_POLL_INTERVAL_MINUTES)

Usage:
    from wallets.tasks import process_flutterwave_webhook_event

    # Queue a webhook for async processing
    process_flutterwave_webhook_event.delay(str(webhook_event.id))

    # Reconcile open withdrawals now
    from wallets.tasks import poll_pending_withdrawals
    poll_pending_withdrawals.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.db import transaction
from django.utils import timezone

from wallets.exceptions import LockAcquisitionError
from wallets.locks import poller_run_lock
from wallets.models import WalletNotification, WebhookEvent
from wallets.state_machines import NotificationStatus, WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = 5
STUCK_PROCESSING_THRESHOLD_MINUTES = 30

# Pending notifications younger than this are left to their own dispatch
REDELIVERY_MIN_AGE_MINUTES = 10
MAX_NOTIFICATION_ATTEMPTS = 5


# =============================================================================
# Notification Outbox
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def deliver_wallet_notification(self, notification_id: str) -> bool:
    """
    Send one queued wallet email.

    Flow:
        1. Fetch the notification; skip unless PENDING
        2. Render and send the template for its kind
        3. Mark SENT, or FAILED if the template is missing

    Returns:
        True if sent or skipped, False on permanent failure

    Raises:
        NotificationError: On transient failure (triggers retry)
    """
    from wallets.services.notifications import WalletNotifier

    return WalletNotifier.default().deliver(notification_id)


@shared_task
def redeliver_pending_notifications() -> dict:
    """
    Periodic sweep for notifications still PENDING.

    Covers a broker outage at commit time and deliveries whose retries
    ran out on a transient error.

    Returns:
        Dict with count of notifications queued
    """
    threshold = timezone.now() - timedelta(minutes=REDELIVERY_MIN_AGE_MINUTES)
    pending = WalletNotification.objects.filter(
        status=NotificationStatus.PENDING,
        created_at__lt=threshold,
        attempt_count__lt=MAX_NOTIFICATION_ATTEMPTS,
    ).order_by("created_at")[:100]

    queued_count = 0
    for notification in pending:
        try:
            deliver_wallet_notification.delay(str(notification.id))
            queued_count += 1
        except Exception as e:
            logger.error(
                f"Failed to queue notification for redelivery: {e}",
                extra={"notification_id": str(notification.id)},
            )

    if queued_count > 0:
        logger.info(
            f"Queued {queued_count} wallet notifications for redelivery",
            extra={"queued_count": queued_count},
        )

    return {"queued_count": queued_count}


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_flutterwave_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a Flutterwave webhook event asynchronously.

    This task:
    1. Loads the WebhookEvent by ID
    2. Checks if already processed (idempotency)
    3. Marks as processing
    4. Dispatches to the handler for its event type
    5. Marks as processed or failed

    Returns:
        Dict with processing result status

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    from wallets.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.status == WebhookEventStatus.PROCESSED:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={"webhook_event_id": str(webhook_event_id), "event_key": webhook_event.event_key},
        )
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save()

    logger.info(
        f"Dispatching webhook: {webhook_event.event_type}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "event_key": webhook_event.event_key,
            "retry_count": webhook_event.retry_count,
        },
    )

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)

        if result.success:
            webhook_event.mark_processed()
            webhook_event.save()
            logger.info(
                "Webhook processed successfully",
                extra={"webhook_event_id": str(webhook_event_id), "event_key": webhook_event.event_key},
            )
            return {
                "status": "processed",
                "webhook_event_id": str(webhook_event_id),
                "event_key": webhook_event.event_key,
            }

        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "event_key": webhook_event.event_key,
                "error_code": result.error_code,
            },
        )
        return {
            "status": "handler_failed",
            "webhook_event_id": str(webhook_event_id),
            "error": error_msg,
            "error_code": result.error_code,
        }

    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()

        logger.exception(
            "Webhook processing failed with exception",
            extra={"webhook_event_id": str(webhook_event_id), "error": error_msg},
        )
        raise


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed_webhooks:
        try:
            process_flutterwave_webhook_event.delay(str(webhook.id))
            queued_count += 1
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Reset webhooks stuck in PROCESSING (worker crashed) to FAILED.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={"webhook_event_id": str(webhook.id), "event_key": webhook.event_key},
        )

    return {"reset_count": reset_count}


# =============================================================================
# Withdrawal Reconciliation
# =============================================================================


@shared_task(bind=True)
def poll_pending_withdrawals(self) -> dict:
    """
    Reconcile open withdrawals with Flutterwave.

    Runs under a non-blocking Redis lock; if another run holds it, this
    run is skipped.

    Returns:
        PollSummary as a dict, or {"status": "skipped"} when locked out
    """
    from wallets.workers import WithdrawalPoller

    try:
        with poller_run_lock():
            summary = WithdrawalPoller.default().execute()
    except LockAcquisitionError:
        logger.info("Withdrawal poll already running, skipping")
        return {"status": "skipped", "reason": "already_running"}

    return {"status": "completed", **summary.to_dict()}
