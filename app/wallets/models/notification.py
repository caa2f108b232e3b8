"""
WalletNotification model: the outbox for wallet emails.

Money-moving code never sends email directly. It inserts a row here in the
same transaction as the ledger change, and a Celery task delivers it after
commit. A failed delivery is retried by the task and by the periodic
redelivery sweep; it never rolls back the money movement.

``dedupe_key`` is unique, so queuing the same logical message twice
(e.g. a duplicate webhook racing the poller) yields one email.

Usage:
    from wallets.services.notifications import WalletNotifier

    WalletNotifier.default().enqueue(
        NotificationKind.WITHDRAWAL_SUCCESS,
        recipients=[owner_email],
        context={...},
        dedupe_key=f"withdrawal:{withdrawal.id}:final",
    )
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from wallets.state_machines import NotificationKind, NotificationStatus


class WalletNotification(UUIDPrimaryKeyMixin, BaseModel):
    """
    A queued wallet email.

    Fields:
        kind: Which message to render
        recipients: List of email addresses (empty means resolve failed)
        context: JSON-serializable template context
        dedupe_key: Unique key for the logical message
        status: Delivery status
        attempt_count: Number of delivery attempts
        sent_at: When the email backend accepted the message
        failure_reason: Last delivery error
        failure_code: Error code of the last failure
        is_permanent_failure: True if retrying won't help
        withdrawal: Related withdrawal, if any
    """

    kind = models.CharField(
        max_length=40,
        choices=NotificationKind.choices,
        help_text="Which email to render",
    )

    recipients = models.JSONField(
        default=list,
        blank=True,
        help_text="Email addresses to deliver to",
    )

    context = models.JSONField(
        default=dict,
        blank=True,
        help_text="Template context (JSON-serializable)",
    )

    dedupe_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key for the logical message",
    )

    status = models.CharField(
        max_length=20,
        choices=NotificationStatus.choices,
        default=NotificationStatus.PENDING,
        db_index=True,
        help_text="Current delivery status",
    )

    attempt_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of delivery attempts",
    )

    sent_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the email was handed to the email backend",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Last delivery error",
    )

    failure_code = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Error code of the last failure",
    )

    is_permanent_failure = models.BooleanField(
        default=False,
        help_text="True if retry won't help (e.g., template missing)",
    )

    withdrawal = models.ForeignKey(
        "wallets.Withdrawal",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
        help_text="Withdrawal this notification is about",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Wallet Notification"
        verbose_name_plural = "Wallet Notifications"
        indexes = [
            models.Index(
                fields=["status", "created_at"],
                name="wallet_notif_status_idx",
            ),
            models.Index(
                fields=["kind", "status"],
                name="wallet_notif_kind_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"WalletNotification({self.kind}, {self.status})"
