"""
Reconciliation poller for open withdrawals.

Webhooks get lost. Every few minutes celery-beat runs
poll_pending_withdrawals, which asks Flutterwave for the state of each
withdrawal still PENDING or UNKNOWN and finalizes it through the same
TransferWebhookHandler the webhook uses.

Per item:
    PENDING without a transfer id    -> skipped (missing_transfer_id)
    verification empty or raised     -> failed (verification_failed)
    provider PENDING/NEW             -> skipped
    provider SUCCESSFUL/FAILED       -> delegated to the handler (processed)

    UNKNOWN (create call timed out): look the transfer up by reference
        found, in flight             -> promoted to PENDING with the transfer id
        found, terminal              -> delegated
        not found, past grace window -> delegated as failed (credit back)
        not found, inside window     -> skipped

Only withdrawals older than WITHDRAWAL_POLL_MIN_AGE_SECONDS are checked so
the poller does not race a webhook that is about to arrive.

Usage:
    from wallets.workers import WithdrawalPoller

    summary = WithdrawalPoller.default().execute()
    summary.total_processed
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from wallets.adapters import FlutterwaveAdapter
from wallets.models import Withdrawal
from wallets.state_machines import OPEN_WITHDRAWAL_STATUSES, WithdrawalStatus
from wallets.types import PollSummary, TransferOutcome
from wallets.webhooks.handlers import TransferWebhookHandler

if TYPE_CHECKING:
    from wallets.adapters import TransferStatus
    from wallets.protocols import PayoutProvider


class WithdrawalPoller(BaseService):
    """Re-verifies open withdrawals against the payout provider."""

    def __init__(
        self,
        provider: PayoutProvider,
        handler: TransferWebhookHandler,
        min_age_seconds: int = 120,
        batch_size: int = 50,
        unknown_grace_minutes: int = 30,
    ) -> None:
        self.provider = provider
        self.handler = handler
        self.min_age = timedelta(seconds=min_age_seconds)
        self.batch_size = batch_size
        self.unknown_grace = timedelta(minutes=unknown_grace_minutes)

    @classmethod
    def default(cls) -> WithdrawalPoller:
        return cls(
            provider=FlutterwaveAdapter.default(),
            handler=TransferWebhookHandler.default(),
            min_age_seconds=settings.WITHDRAWAL_POLL_MIN_AGE_SECONDS,
            batch_size=settings.WITHDRAWAL_POLL_BATCH_SIZE,
            unknown_grace_minutes=settings.WITHDRAWAL_UNKNOWN_OUTCOME_GRACE_MINUTES,
        )

    def candidates(self) -> list[Withdrawal]:
        """Open withdrawals older than the minimum age, oldest first."""
        cutoff = timezone.now() - self.min_age
        return list(
            Withdrawal.objects.filter(
                status__in=OPEN_WITHDRAWAL_STATUSES,
                created_at__lt=cutoff,
            ).order_by("created_at")[: self.batch_size]
        )

    def execute(self) -> PollSummary:
        logger = self.get_logger()
        summary = PollSummary()

        withdrawals = self.candidates()
        summary.total_found = len(withdrawals)
        if not withdrawals:
            return summary

        logger.info(f"Polling {len(withdrawals)} open withdrawals")

        for withdrawal in withdrawals:
            try:
                if withdrawal.status == WithdrawalStatus.UNKNOWN:
                    self._reconcile_unknown(withdrawal, summary)
                else:
                    self._reconcile_pending(withdrawal, summary)
            except Exception as e:
                logger.error(
                    "Error polling withdrawal",
                    extra={"withdrawal_id": str(withdrawal.id), "error": str(e)},
                    exc_info=True,
                )
                summary.record("failed", withdrawal_id=str(withdrawal.id), error=str(e))

        logger.info(
            "Withdrawal poll complete",
            extra={
                "total_found": summary.total_found,
                "total_processed": summary.total_processed,
                "total_failed": summary.total_failed,
                "total_skipped": summary.total_skipped,
            },
        )
        return summary

    # ==========================================================================
    # PENDING
    # ==========================================================================

    def _reconcile_pending(self, withdrawal: Withdrawal, summary: PollSummary) -> None:
        logger = self.get_logger()
        transfer_id = withdrawal.provider_transfer_id
        if not transfer_id:
            logger.warning(
                "Withdrawal missing provider transfer id",
                extra={"withdrawal_id": str(withdrawal.id)},
            )
            summary.record(
                "skipped",
                withdrawal_id=str(withdrawal.id),
                reason="missing_transfer_id",
            )
            return

        try:
            transfer = self.provider.verify_transfer(transfer_id)
        except Exception as e:
            logger.warning(
                "Failed to verify transfer with provider",
                extra={"withdrawal_id": str(withdrawal.id), "transfer_id": transfer_id, "error": str(e)},
            )
            transfer = None

        if transfer is None:
            summary.record(
                "failed",
                withdrawal_id=str(withdrawal.id),
                transfer_id=transfer_id,
                reason="verification_failed",
            )
            return

        if not transfer.is_terminal:
            summary.record(
                "skipped",
                withdrawal_id=str(withdrawal.id),
                transfer_id=transfer_id,
                status=transfer.status,
            )
            return

        self._delegate(withdrawal, transfer, summary)

    # ==========================================================================
    # UNKNOWN
    # ==========================================================================

    def _reconcile_unknown(self, withdrawal: Withdrawal, summary: PollSummary) -> None:
        logger = self.get_logger()
        reference = withdrawal.payout_reference

        try:
            transfer = self.provider.find_transfer_by_reference(reference)
        except Exception as e:
            logger.warning(
                "Failed to look up transfer by reference",
                extra={"withdrawal_id": str(withdrawal.id), "reference": reference, "error": str(e)},
            )
            summary.record(
                "failed",
                withdrawal_id=str(withdrawal.id),
                reference=reference,
                reason="verification_failed",
            )
            return

        if transfer is None:
            age = timezone.now() - withdrawal.created_at
            if age < self.unknown_grace:
                summary.record(
                    "skipped",
                    withdrawal_id=str(withdrawal.id),
                    reference=reference,
                    reason="transfer_not_found_yet",
                )
                return

            logger.warning(
                "Transfer never reached the provider, failing withdrawal",
                extra={"withdrawal_id": str(withdrawal.id), "reference": reference},
            )
            result = self.handler.handle(
                TransferOutcome(
                    ok=False,
                    reference=reference,
                    failure_reason="Transfer was not created by the provider",
                )
            )
            summary.record(
                "processed",
                withdrawal_id=str(withdrawal.id),
                reference=reference,
                status="NOT_FOUND",
                already_processed=bool(result.data and result.data.already_processed),
                polled_at=timezone.now().isoformat(),
            )
            return

        if transfer.in_flight:
            self._promote(withdrawal, transfer)
            summary.record(
                "skipped",
                withdrawal_id=str(withdrawal.id),
                transfer_id=transfer.id,
                status=transfer.status,
                reason="promoted_to_pending",
            )
            return

        if not transfer.is_terminal:
            summary.record(
                "skipped",
                withdrawal_id=str(withdrawal.id),
                transfer_id=transfer.id,
                status=transfer.status,
            )
            return

        self._delegate(withdrawal, transfer, summary)

    def _promote(self, withdrawal: Withdrawal, transfer: TransferStatus) -> None:
        """UNKNOWN -> PENDING with the transfer id, guarded on the current status."""
        withdrawal.confirm_submitted(transfer.id)
        metadata = dict(withdrawal.metadata or {})
        metadata["transfer_status"] = transfer.status
        rows = Withdrawal.objects.filter(
            pk=withdrawal.pk,
            status=WithdrawalStatus.UNKNOWN,
        ).update(
            status=WithdrawalStatus.PENDING,
            provider_transfer_id=transfer.id,
            metadata=metadata,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        self.get_logger().info(
            "Withdrawal confirmed at provider",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "transfer_id": transfer.id,
                "updated": bool(rows),
            },
        )

    # ==========================================================================
    # Delegation
    # ==========================================================================

    def _delegate(
        self,
        withdrawal: Withdrawal,
        transfer: TransferStatus,
        summary: PollSummary,
    ) -> None:
        result = self.handler.handle(
            TransferOutcome(
                ok=transfer.is_successful,
                reference=withdrawal.payout_reference,
                transfer_id=transfer.id,
                failure_reason=None if transfer.is_successful else transfer.failure_reason,
                raw=transfer.raw_response,
            )
        )
        summary.record(
            "processed",
            withdrawal_id=str(withdrawal.id),
            transfer_id=transfer.id,
            status=transfer.status,
            already_processed=bool(result.data and result.data.already_processed),
            polled_at=timezone.now().isoformat(),
        )
        self.get_logger().info(
            "Withdrawal status updated via polling",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "transfer_id": transfer.id,
                "status": transfer.status,
            },
        )
