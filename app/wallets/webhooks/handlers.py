"""
Flutterwave transfer webhook handling.

This module has two layers:

1. A handler registry mapping Flutterwave event names to functions that
   turn a stored WebhookEvent into a TransferOutcome.
2. TransferWebhookHandler, which finalizes a Withdrawal from a
   TransferOutcome. The reconciliation poller calls it too, so webhook
   and poller finalization share one code path.

Finalization is idempotent. The status change is persisted with
``UPDATE ... WHERE status IN (pending, unknown)``; whichever of the webhook
and the poller gets there second sees zero rows and reports the withdrawal
as already processed.

Usage:
    from wallets.webhooks.handlers import TransferWebhookHandler, dispatch_webhook

    result = dispatch_webhook(webhook_event)

    result = TransferWebhookHandler.default().handle(
        TransferOutcome(ok=False, reference=ref, failure_reason="Account closed")
    )
"""

from __future__ import annotations

import logging
from typing import Callable

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.services import BaseService, ServiceResult

from wallets.exceptions import InvalidStateTransitionError
from wallets.ledger import LedgerService
from wallets.models import WebhookEvent, Withdrawal
from wallets.services.notifications import WalletNotifier
from wallets.state_machines import (
    OPEN_WITHDRAWAL_STATUSES,
    LedgerDirection,
    LedgerEntryType,
    WithdrawalStatus,
)
from wallets.types import (
    FinalizationResult,
    PostEntryParams,
    TransferOutcome,
    WithdrawalRollbackMetadata,
)

logger = logging.getLogger(__name__)

CREDIT_BACK_REASON = "withdrawal_failed_credit_back"


# =============================================================================
# Withdrawal Finalization
# =============================================================================


class TransferWebhookHandler(BaseService):
    """
    Moves a Withdrawal to SUCCESSFUL or FAILED exactly once.

    On FAILED, the full debited amount is credited back in the same
    transaction. One success/failure email is queued per withdrawal.
    """

    def __init__(self, notifier: WalletNotifier) -> None:
        self.notifier = notifier

    @classmethod
    def default(cls) -> TransferWebhookHandler:
        return cls(notifier=WalletNotifier.default())

    def handle(self, outcome: TransferOutcome) -> ServiceResult[FinalizationResult]:
        logger = self.get_logger()

        if not outcome.reference and not outcome.transfer_id:
            logger.warning("Transfer outcome missing reference and transfer id")
            return ServiceResult.failure(
                "Transfer webhook missing reference",
                error_code="MISSING_REFERENCE",
            )

        withdrawal = self.find_withdrawal(outcome.reference, outcome.transfer_id)
        if withdrawal is None:
            logger.warning(
                "Withdrawal not found for transfer",
                extra={"reference": outcome.reference, "transfer_id": outcome.transfer_id},
            )
            return ServiceResult.failure(
                "Withdrawal not found",
                error_code="WITHDRAWAL_NOT_FOUND",
            )

        if not withdrawal.is_open:
            logger.info(
                "Withdrawal already processed",
                extra={"withdrawal_id": str(withdrawal.id), "status": withdrawal.status},
            )
            return ServiceResult.success(self._already_processed(withdrawal))

        with transaction.atomic():
            try:
                if outcome.ok:
                    withdrawal.mark_successful()
                else:
                    withdrawal.mark_failed(reason=outcome.failure_reason)
            except TransitionNotAllowed as e:
                raise InvalidStateTransitionError(
                    f"Cannot finalize withdrawal in status {withdrawal.status}",
                    details={"withdrawal_id": str(withdrawal.id)},
                ) from e

            metadata = dict(withdrawal.metadata or {})
            metadata.update(
                {
                    "transfer_status": "SUCCESSFUL" if outcome.ok else "FAILED",
                    "provider_message": outcome.failure_reason,
                }
            )
            metadata.setdefault("kind", "withdrawal")
            withdrawal.metadata = metadata
            if outcome.transfer_id and not withdrawal.provider_transfer_id:
                withdrawal.provider_transfer_id = str(outcome.transfer_id)

            rows = Withdrawal.objects.filter(
                pk=withdrawal.pk,
                status__in=OPEN_WITHDRAWAL_STATUSES,
            ).update(
                status=withdrawal.status,
                finalized_at=withdrawal.finalized_at,
                failure_reason=withdrawal.failure_reason,
                provider_transfer_id=withdrawal.provider_transfer_id,
                metadata=withdrawal.metadata,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
            if rows == 0:
                # Lost the race against another finalizer
                withdrawal.refresh_from_db()
                logger.info(
                    "Withdrawal finalized concurrently",
                    extra={"withdrawal_id": str(withdrawal.id), "status": withdrawal.status},
                )
                return ServiceResult.success(self._already_processed(withdrawal))

            credited_back = None
            if withdrawal.status == WithdrawalStatus.FAILED:
                LedgerService.post(
                    withdrawal.wallet,
                    PostEntryParams(
                        entry_type=LedgerEntryType.ADJUSTMENT,
                        direction=LedgerDirection.CREDIT,
                        amount=withdrawal.amount,
                        metadata=WithdrawalRollbackMetadata(
                            reason=CREDIT_BACK_REASON,
                            payout_reference=withdrawal.payout_reference,
                            error=withdrawal.failure_reason,
                        ),
                        idempotency_key=f"withdrawal:{withdrawal.payout_reference}:credit-back",
                        transaction_reference=withdrawal.payout_reference,
                        external_reference=withdrawal.provider_transfer_id,
                    ),
                )
                credited_back = withdrawal.amount
                logger.info(
                    "Wallet credited back after failed withdrawal",
                    extra={
                        "withdrawal_id": str(withdrawal.id),
                        "amount": str(withdrawal.amount),
                        "owner_type": withdrawal.owner_type,
                        "owner_id": withdrawal.owner_id,
                    },
                )

            try:
                self.notifier.withdrawal_finalized(withdrawal)
            except Exception:
                logger.exception(
                    "Failed to queue withdrawal email",
                    extra={"withdrawal_id": str(withdrawal.id)},
                )

        logger.info(
            f"Withdrawal finalized as {withdrawal.status}",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "payout_reference": withdrawal.payout_reference,
                "status": withdrawal.status,
            },
        )
        return ServiceResult.success(
            FinalizationResult(
                withdrawal_id=str(withdrawal.id),
                status=withdrawal.status,
                credited_back=credited_back,
            )
        )

    @staticmethod
    def find_withdrawal(reference: str | None, transfer_id: str | None) -> Withdrawal | None:
        """
        Look the withdrawal up by payout reference, then transfer id.

        Flutterwave sometimes sends the transfer id where the reference
        belongs, so the transfer id is tried against both columns.
        """
        queryset = Withdrawal.objects.select_related("wallet")
        if reference:
            withdrawal = queryset.filter(payout_reference=reference).first()
            if withdrawal is not None:
                return withdrawal
        if transfer_id:
            transfer_id = str(transfer_id)
            withdrawal = queryset.filter(payout_reference=transfer_id).first()
            if withdrawal is not None:
                return withdrawal
            return queryset.filter(provider_transfer_id=transfer_id).first()
        return None

    @staticmethod
    def _already_processed(withdrawal: Withdrawal) -> FinalizationResult:
        return FinalizationResult(
            withdrawal_id=str(withdrawal.id),
            status=withdrawal.status,
            already_processed=True,
        )


# =============================================================================
# Handler Registry
# =============================================================================


# Maps Flutterwave event names to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("transfer.completed")
        def handle_transfer_completed(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types are logged and treated as success so Flutterwave
    does not keep retrying them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"event_key": webhook_event.event_key},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"event_key": webhook_event.event_key},
    )

    return handler(webhook_event)


def transfer_outcome_from_payload(data: dict) -> TransferOutcome | None:
    """
    Normalize a Flutterwave transfer ``data`` object.

    Returns None while the transfer is still in flight (NEW/PENDING).
    """
    status = str(data.get("status") or "").upper()
    if status not in ("SUCCESSFUL", "FAILED"):
        return None

    transfer_id = data.get("id")
    ok = status == "SUCCESSFUL"
    return TransferOutcome(
        ok=ok,
        reference=data.get("reference") or data.get("tx_ref"),
        transfer_id=str(transfer_id) if transfer_id is not None else None,
        failure_reason=None
        if ok
        else (data.get("complete_message") or data.get("narration") or "Transfer failed"),
        raw=data,
    )


@register_handler("transfer.completed")
@register_handler("transfer.failed")
def handle_transfer_event(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Finalize the withdrawal a transfer event refers to.

    ``transfer.completed`` carries SUCCESSFUL or FAILED in ``data.status``;
    ``transfer.failed`` is always a failure.
    """
    data = dict(webhook_event.data)
    if webhook_event.event_type == "transfer.failed":
        data["status"] = "FAILED"

    outcome = transfer_outcome_from_payload(data)
    if outcome is None:
        logger.info(
            "Transfer still in flight, nothing to finalize",
            extra={"event_key": webhook_event.event_key, "status": data.get("status")},
        )
        return ServiceResult.success(None)

    return TransferWebhookHandler.default().handle(outcome)
