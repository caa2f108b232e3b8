"""
Wallet notification outbox.

Money-moving services call WalletNotifier to queue emails. A queued email
is a WalletNotification row written in the caller's transaction; after the
transaction commits, deliver_wallet_notification is sent to Celery. If the
broker is down the row stays PENDING and the redelivery sweep picks it up.

Nothing here raises into the caller. Resolution problems (no owner email,
unknown event) are logged and the message is skipped.

Usage:
    from wallets.services.notifications import WalletNotifier

    notifier = WalletNotifier.default()
    notifier.withdrawal_finalized(withdrawal)

    # Celery worker side
    notifier.deliver(notification_id)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.template import TemplateDoesNotExist
from django.utils import timezone

from toolkit.services import EmailService

from wallets.directory import get_owner_directory
from wallets.exceptions import NotificationError
from wallets.models import Wallet, WalletNotification
from wallets.state_machines import (
    NotificationKind,
    NotificationStatus,
    WalletOwnerType,
    WithdrawalStatus,
)
from wallets.types import format_naira

if TYPE_CHECKING:
    from toolkit.protocols import EmailSender

    from wallets.models import Withdrawal
    from wallets.protocols import OwnerDirectory

logger = logging.getLogger(__name__)


SUBJECTS = {
    NotificationKind.WITHDRAWAL_RECEIPT_ADMIN: "Withdrawal request from {owner_label}",
    NotificationKind.WITHDRAWAL_SUCCESS: "Your withdrawal was successful",
    NotificationKind.WITHDRAWAL_FAILED: "Your withdrawal could not be completed",
    NotificationKind.WALLET_ADJUSTED: "Your wallet balance was updated",
    NotificationKind.WALLET_ADJUSTED_REFUND: "Your wallet was adjusted due to a refund",
    NotificationKind.EVENT_WALLET_CREDITED: "Your event wallet has been credited",
    NotificationKind.GROUP_WALLET_CREDITED: "Your group wallet has been funded",
    NotificationKind.OPERATOR_ROLLBACK_ALERT: "[ACTION REQUIRED] Withdrawal rollback failed for {owner_label}",
}


class WalletNotifier:
    """
    Queues wallet emails and delivers them from the worker.

    Dependencies are injected; ``default()`` wires the EmailService and the
    configured owner directory.
    """

    def __init__(
        self,
        email_sender: EmailSender | type[EmailService],
        directory: OwnerDirectory,
    ) -> None:
        self.email_sender = email_sender
        self.directory = directory

    @classmethod
    def default(cls) -> WalletNotifier:
        return cls(email_sender=EmailService, directory=get_owner_directory())

    # ==========================================================================
    # Outbox
    # ==========================================================================

    def enqueue(
        self,
        kind: str,
        recipients: list[str],
        context: dict[str, Any],
        dedupe_key: str,
        withdrawal: Withdrawal | None = None,
    ) -> WalletNotification | None:
        """
        Insert an outbox row and dispatch it after commit.

        A second call with the same dedupe_key returns the existing row and
        dispatches nothing.

        Returns:
            The notification, or None when there is no one to send it to
        """
        recipients = [r for r in recipients if r]
        if not recipients:
            logger.info(
                "Skipping wallet notification without recipients",
                extra={"kind": kind, "dedupe_key": dedupe_key},
            )
            return None

        try:
            with transaction.atomic():
                notification, created = WalletNotification.objects.get_or_create(
                    dedupe_key=dedupe_key,
                    defaults={
                        "kind": kind,
                        "recipients": recipients,
                        "context": context,
                        "withdrawal": withdrawal,
                    },
                )
        except IntegrityError:
            # Concurrent insert of the same logical message
            notification = WalletNotification.objects.get(dedupe_key=dedupe_key)
            created = False

        if not created:
            logger.debug(
                "Wallet notification already queued",
                extra={"kind": kind, "dedupe_key": dedupe_key},
            )
            return notification

        notification_id = str(notification.id)
        transaction.on_commit(lambda: self._dispatch(notification_id))

        logger.info(
            "Queued wallet notification",
            extra={
                "notification_id": notification_id,
                "kind": kind,
                "recipient_count": len(recipients),
            },
        )
        return notification

    @staticmethod
    def _dispatch(notification_id: str) -> None:
        from wallets.tasks import deliver_wallet_notification

        try:
            deliver_wallet_notification.delay(notification_id)
        except Exception as e:
            # Row stays PENDING; redeliver_pending_notifications retries it
            logger.error(
                f"Failed to queue wallet notification delivery: {e}",
                extra={"notification_id": notification_id},
            )

    def deliver(self, notification_id: str) -> bool:
        """
        Send one queued email.

        Returns:
            True if sent (or nothing left to do), False on a permanent failure

        Raises:
            NotificationError: On a transient failure, so the task retries
        """
        try:
            notification = WalletNotification.objects.get(id=notification_id)
        except WalletNotification.DoesNotExist:
            logger.warning(
                "Wallet notification not found",
                extra={"notification_id": notification_id},
            )
            return True

        if notification.status != NotificationStatus.PENDING:
            logger.info(
                f"Wallet notification status is {notification.status}, skipping",
                extra={"notification_id": notification_id},
            )
            return True

        subject = SUBJECTS.get(notification.kind, "Wallet update").format(
            owner_label=notification.context.get("owner_label", "wallet")
        )
        notification.attempt_count += 1

        try:
            self.email_sender.send(
                to=notification.recipients,
                subject=subject,
                template_name=f"wallets/emails/{notification.kind}",
                context=notification.context,
                fail_silently=False,
            )
        except TemplateDoesNotExist as e:
            notification.status = NotificationStatus.FAILED
            notification.failure_reason = f"Template missing: {e}"
            notification.failure_code = "template_missing"
            notification.is_permanent_failure = True
            notification.save(
                update_fields=[
                    "status",
                    "failure_reason",
                    "failure_code",
                    "is_permanent_failure",
                    "attempt_count",
                    "updated_at",
                ]
            )
            logger.error(
                "Wallet notification permanently failed",
                extra={"notification_id": notification_id, "kind": notification.kind},
            )
            return False
        except Exception as e:
            notification.failure_reason = f"{type(e).__name__}: {e}"
            notification.failure_code = "send_failed"
            notification.save(
                update_fields=["failure_reason", "failure_code", "attempt_count", "updated_at"]
            )
            logger.warning(
                "Wallet notification delivery failed, will retry",
                extra={
                    "notification_id": notification_id,
                    "kind": notification.kind,
                    "attempt_count": notification.attempt_count,
                },
            )
            raise NotificationError(
                "Wallet email delivery failed",
                details={"notification_id": notification_id, "error": str(e)},
            ) from e

        notification.status = NotificationStatus.SENT
        notification.sent_at = timezone.now()
        notification.failure_reason = ""
        notification.failure_code = ""
        notification.save(
            update_fields=[
                "status",
                "sent_at",
                "failure_reason",
                "failure_code",
                "attempt_count",
                "updated_at",
            ]
        )
        logger.info(
            "Wallet notification sent",
            extra={"notification_id": notification_id, "kind": notification.kind},
        )
        return True

    # ==========================================================================
    # Recipient Resolution
    # ==========================================================================

    @staticmethod
    def user_email(user_id) -> str | None:
        if user_id is None:
            return None
        user = get_user_model().objects.filter(pk=user_id).only("email").first()
        return user.email if user is not None and user.email else None

    def owner_contact(self, owner_type: str, owner_id: str | None) -> tuple[str | None, str]:
        """
        Email of the person who owns a wallet, and a display label.

        EVENT: the creator of a user-created event. GROUP: the group creator.
        PLATFORM wallets have no individual owner.
        """
        if owner_type == WalletOwnerType.EVENT:
            event = self.directory.get_event(owner_id)
            if event is None:
                return None, f"event {owner_id}"
            if event.origin != "user":
                return None, event.title
            return self.user_email(event.creator_id), event.title
        if owner_type == WalletOwnerType.GROUP:
            group = self.directory.get_group(owner_id)
            if group is None:
                return None, f"group {owner_id}"
            return self.user_email(group.creator_id), group.name
        return None, "platform"

    # ==========================================================================
    # Messages
    # ==========================================================================

    def withdrawal_receipt(self, withdrawal: Withdrawal, bank_account_masked: str) -> None:
        """Admin copy of a new withdrawal request."""
        _, owner_label = self.owner_contact(withdrawal.owner_type, withdrawal.owner_id)
        self.enqueue(
            NotificationKind.WITHDRAWAL_RECEIPT_ADMIN,
            recipients=list(settings.WALLET_ADMIN_NOTIFICATION_EMAILS),
            context={
                **_withdrawal_context(withdrawal),
                "owner_label": owner_label,
                "requested_by": str(withdrawal.user_id),
                "bank_account": bank_account_masked,
            },
            dedupe_key=f"withdrawal:{withdrawal.id}:receipt",
            withdrawal=withdrawal,
        )

    def withdrawal_finalized(self, withdrawal: Withdrawal) -> None:
        """Success or failure email to the requester (one per withdrawal)."""
        if withdrawal.status == WithdrawalStatus.SUCCESSFUL:
            kind = NotificationKind.WITHDRAWAL_SUCCESS
        elif withdrawal.status == WithdrawalStatus.FAILED:
            kind = NotificationKind.WITHDRAWAL_FAILED
        else:
            return

        _, owner_label = self.owner_contact(withdrawal.owner_type, withdrawal.owner_id)
        bank_account = withdrawal.bank_account
        # Read after any credit-back so the email shows the settled balance
        balance = (
            Wallet.objects.filter(pk=withdrawal.wallet_id)
            .values_list("balance", flat=True)
            .first()
        )
        self.enqueue(
            kind,
            recipients=[self.user_email(withdrawal.user_id)],
            context={
                **_withdrawal_context(withdrawal),
                "owner_label": owner_label,
                "failure_reason": withdrawal.failure_reason or "",
                "bank_account": bank_account.masked_number if bank_account else "",
                "balance": format_naira(balance) if balance is not None else "",
            },
            dedupe_key=f"withdrawal:{withdrawal.id}:final",
            withdrawal=withdrawal,
        )

    def wallet_adjusted(
        self,
        wallet: Wallet,
        amount: Decimal,
        reason: str,
        entry_id: str,
    ) -> None:
        email, owner_label = self.owner_contact(wallet.owner_type, wallet.owner_id)
        self.enqueue(
            NotificationKind.WALLET_ADJUSTED,
            recipients=[email],
            context={
                "owner_label": owner_label,
                "amount": format_naira(abs(amount)),
                "direction": "credited" if amount > 0 else "debited",
                "reason": reason,
                "balance": format_naira(wallet.balance),
            },
            dedupe_key=f"ledger:{entry_id}:adjusted",
        )

    def wallet_credited(
        self,
        wallet: Wallet,
        amount: Decimal,
        transaction_id: str,
    ) -> None:
        email, owner_label = self.owner_contact(wallet.owner_type, wallet.owner_id)
        kind = (
            NotificationKind.GROUP_WALLET_CREDITED
            if wallet.owner_type == WalletOwnerType.GROUP
            else NotificationKind.EVENT_WALLET_CREDITED
        )
        self.enqueue(
            kind,
            recipients=[email],
            context={
                "owner_label": owner_label,
                "amount": format_naira(amount),
                "balance": format_naira(wallet.balance),
                "transaction_id": transaction_id,
            },
            dedupe_key=f"funding:{transaction_id}:{wallet.owner_type}:credited",
        )

    def refund_adjusted(
        self,
        wallet: Wallet,
        amount: Decimal,
        transaction_id: str,
        refund_key: str,
    ) -> None:
        email, owner_label = self.owner_contact(wallet.owner_type, wallet.owner_id)
        self.enqueue(
            NotificationKind.WALLET_ADJUSTED_REFUND,
            recipients=[email],
            context={
                "owner_label": owner_label,
                "amount": format_naira(amount),
                "balance": format_naira(wallet.balance),
                "transaction_id": transaction_id,
            },
            dedupe_key=f"refund:{refund_key}:{wallet.owner_type}:adjusted",
        )

    def rollback_alert(
        self,
        owner_type: str,
        owner_id: str | None,
        amount: Decimal,
        payout_reference: str,
        error: str,
    ) -> None:
        """Operator alert: the wallet is short until someone re-credits it."""
        self.enqueue(
            NotificationKind.OPERATOR_ROLLBACK_ALERT,
            recipients=list(settings.WALLET_OPERATOR_ALERT_EMAILS),
            context={
                "owner_label": f"{owner_type} {owner_id or ''}".strip(),
                "owner_type": owner_type,
                "owner_id": owner_id or "",
                "amount": format_naira(amount),
                "payout_reference": payout_reference,
                "error": error,
            },
            dedupe_key=f"rollback:{payout_reference}:alert",
        )


def _withdrawal_context(withdrawal: Withdrawal) -> dict[str, Any]:
    return {
        "withdrawal_id": str(withdrawal.id),
        "owner_type": withdrawal.owner_type,
        "owner_id": withdrawal.owner_id or "",
        "amount": format_naira(withdrawal.amount),
        "fee_amount": format_naira(withdrawal.fee_amount),
        "payout_amount": format_naira(withdrawal.payout_amount),
        "payout_reference": withdrawal.payout_reference,
        "status": withdrawal.status,
    }
