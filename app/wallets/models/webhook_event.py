"""
WebhookEvent model for Flutterwave webhook event tracking.

Stores every transfer webhook received from Flutterwave for idempotent
processing and audit. Flutterwave does not send a unique event id, so
``event_key`` is built from the event type, the transfer id and the
reported status; a provider retry of the same notification maps to the
same row.

Usage:
    from wallets.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        event_key="transfer.completed:408221:SUCCESSFUL",
        defaults={"event_type": "transfer.completed", "payload": payload},
    )
    if not created and event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from wallets.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks Flutterwave webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, verify the secret hash
        2. Insert/get WebhookEvent by event_key
        3. If exists and PROCESSED -> return 200 (duplicate)
        4. Queue processing task, return 200
        5. Task sets PROCESSING, finalizes the withdrawal, sets PROCESSED
           or FAILED

    Fields:
        event_key: Unique key derived from event type, transfer id and status
        event_type: Flutterwave event name (e.g., 'transfer.completed')
        payload: Full JSON payload
        status: Processing status
        processed_at: When the event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    event_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key for idempotency (event:transfer_id:status)",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Flutterwave event type (e.g., 'transfer.completed')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Flutterwave (JSON)",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(
                fields=["status", "created_at"],
                name="wallet_webhook_status_idx",
            ),
            models.Index(
                fields=["event_type", "created_at"],
                name="wallet_webhook_type_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.event_key})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    @property
    def data(self) -> dict:
        """The ``data`` object of the payload (empty dict if malformed)."""
        data = self.payload.get("data") if isinstance(self.payload, dict) else None
        return data if isinstance(data, dict) else {}
