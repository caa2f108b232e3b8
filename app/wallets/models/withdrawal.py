"""
Withdrawal model tracking one payout attempt from a wallet to a bank account.

A Withdrawal is created only after the wallet has been debited. Its status
leaves PENDING or UNKNOWN exactly once, for SUCCESSFUL or FAILED, and never
moves again.

Usage:
    from wallets.models import Withdrawal
    from wallets.state_machines import WithdrawalStatus

    withdrawal = Withdrawal.objects.get(payout_reference=reference)

    # State transitions using django-fsm (validated in memory)
    withdrawal.mark_failed(reason="Insufficient provider balance")

    # Persisted by the transfer webhook handler with a status-guarded UPDATE
"""

from __future__ import annotations

from datetime import datetime, time, timezone as dt_timezone

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from wallets.state_machines import (
    OPEN_WITHDRAWAL_STATUSES,
    WalletOwnerType,
    WithdrawalStatus,
)
from wallets.types import parse_metadata


class WithdrawalQuerySet(models.QuerySet):
    def open(self):
        return self.filter(status__in=OPEN_WITHDRAWAL_STATUSES)

    def requested_today_by(self, user, now: datetime | None = None):
        """Withdrawals requested by this user since 00:00 UTC today."""
        now = now or timezone.now()
        start_of_day = datetime.combine(
            now.astimezone(dt_timezone.utc).date(), time.min, tzinfo=dt_timezone.utc
        )
        return self.filter(user=user, created_at__gte=start_of_day)

    def for_owner(self, owner_type: str, owner_id: str | None):
        return self.filter(owner_type=owner_type, owner_id=owner_id)


class Withdrawal(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    One payout attempt from a wallet to a bank account.

    State Flow:
        PENDING -> SUCCESSFUL / FAILED (webhook or poller)
        UNKNOWN -> PENDING (poller found the transfer still in flight)
        UNKNOWN -> SUCCESSFUL / FAILED (poller)

    Fields:
        wallet: Debited wallet
        owner_type / owner_id: Wallet owner
        user: Requester
        amount: Gross requested (and debited) amount
        fee_amount: Fee retained from the gross amount
        status: Current FSM status
        payout_reference: Unique idempotency key sent to the provider
        provider_transfer_id: Provider transfer id, once known
        bank_account: Destination account
        failure_reason: Provider message when failed
        finalized_at: When a terminal status was reached
        metadata: Typed provider metadata (WithdrawalMetadata)
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    wallet = models.ForeignKey(
        "wallets.Wallet",
        on_delete=models.PROTECT,
        related_name="withdrawals",
        help_text="Wallet that was debited",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="withdrawals",
        help_text="User who requested the withdrawal",
    )

    bank_account = models.ForeignKey(
        "wallets.BankAccount",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="withdrawals",
        help_text="Destination bank account",
    )

    owner_type = models.CharField(
        max_length=16,
        choices=WalletOwnerType.choices,
        help_text="Owner type of the debited wallet",
    )

    owner_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Owner id of the debited wallet",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        help_text="Gross requested amount (the full amount debited)",
    )

    fee_amount = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        default=0,
        help_text="Fee retained by the platform",
    )

    currency = models.CharField(
        max_length=3,
        default="NGN",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=WithdrawalStatus.PENDING,
        choices=WithdrawalStatus.choices,
        db_index=True,
        help_text="Current status of the withdrawal (managed by FSM)",
    )

    # ==========================================================================
    # Provider Integration
    # ==========================================================================

    payout_reference = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique reference sent to the provider (idempotency key)",
    )

    provider_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider transfer id",
    )

    # ==========================================================================
    # Outcome
    # ==========================================================================

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Provider message if the transfer failed",
    )

    finalized_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the withdrawal reached a terminal status",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Typed provider metadata",
    )

    objects = WithdrawalQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Withdrawal"
        verbose_name_plural = "Withdrawals"
        indexes = [
            models.Index(
                fields=["owner_type", "owner_id", "status"],
                name="withdrawal_owner_status_idx",
            ),
            models.Index(
                fields=["user", "created_at"],
                name="withdrawal_user_created_idx",
            ),
            models.Index(
                fields=["status", "created_at"],
                name="withdrawal_status_created_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="withdrawal_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(fee_amount__gte=0),
                name="withdrawal_fee_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Withdrawal({self.payout_reference}, {self.status}, {self.amount} {self.currency})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=list(OPEN_WITHDRAWAL_STATUSES),
        target=WithdrawalStatus.SUCCESSFUL,
    )
    def mark_successful(self):
        """
        Transition: PENDING/UNKNOWN -> SUCCESSFUL

        Called when the provider reports the transfer completed.
        """
        self.finalized_at = timezone.now()
        self.failure_reason = None

    @transition(
        field=status,
        source=list(OPEN_WITHDRAWAL_STATUSES),
        target=WithdrawalStatus.FAILED,
    )
    def mark_failed(self, reason: str | None = None):
        """
        Transition: PENDING/UNKNOWN -> FAILED

        The debited amount is credited back by the caller in the same
        transaction that persists this status.
        """
        self.finalized_at = timezone.now()
        self.failure_reason = reason or "Transfer failed"

    @transition(
        field=status,
        source=WithdrawalStatus.UNKNOWN,
        target=WithdrawalStatus.PENDING,
    )
    def confirm_submitted(self, transfer_id: str):
        """
        Transition: UNKNOWN -> PENDING

        The poller found the transfer at the provider after a timed-out
        create call; it now waits for a webhook like any other transfer.
        """
        self.provider_transfer_id = transfer_id

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_WITHDRAWAL_STATUSES

    @property
    def payout_amount(self):
        return self.amount - self.fee_amount

    @property
    def typed_metadata(self):
        return parse_metadata(self.metadata)
