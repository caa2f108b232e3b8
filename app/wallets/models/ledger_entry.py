"""
LedgerEntry model: the append-only journal behind every wallet balance.

Each entry records one balance movement on one wallet together with the
balance right after it. Entries carry a per-wallet ``sequence`` so folding
them in order from zero reproduces the wallet balance exactly.

Entries are immutable. Updating a saved entry, deleting it, or running a
bulk update/delete on the queryset raises LedgerImmutableError.
Corrections are new ADJUSTMENT entries.

Usage:
    from wallets.models import LedgerEntry

    entries = LedgerEntry.objects.filter(wallet=wallet).order_by("sequence")
    entries.update(amount=0)  # raises LedgerImmutableError
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin

from wallets.exceptions import LedgerImmutableError
from wallets.state_machines import LedgerDirection, LedgerEntryType, WalletOwnerType
from wallets.types import parse_metadata


class LedgerEntryQuerySet(models.QuerySet):
    """QuerySet that refuses bulk mutation of ledger rows."""

    def update(self, **kwargs):
        raise LedgerImmutableError("Ledger entries cannot be updated")

    def delete(self):
        raise LedgerImmutableError("Ledger entries cannot be deleted")

    def for_wallet(self, wallet):
        return self.filter(wallet=wallet).order_by("sequence")


class LedgerEntry(UUIDPrimaryKeyMixin, models.Model):
    """
    A single balance movement on a wallet.

    Fields:
        wallet: Wallet whose balance moved
        owner_type / owner_id: Denormalized wallet owner for reporting
        entry_type: CREDIT, WITHDRAWAL, ADJUSTMENT or REFUND
        direction: CREDIT (balance up) or DEBIT (balance down)
        amount: Movement amount, always positive
        balance_after: Wallet balance immediately after this entry
        sequence: Position of this entry in the wallet's history (0-based)
        transaction_reference: Ticket transaction id or payout reference
        external_reference: Provider side identifier
        hangout_id: Event the money relates to, if any
        idempotency_key: Unique key preventing duplicate posts
        metadata: Typed metadata (see wallets.types)

    Constraints:
        - amount must be positive
        - balance_after must be non-negative
        - (wallet, sequence) is unique
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )

    wallet = models.ForeignKey(
        "wallets.Wallet",
        on_delete=models.PROTECT,
        related_name="entries",
        help_text="Wallet whose balance this entry moved",
    )

    owner_type = models.CharField(
        max_length=16,
        choices=WalletOwnerType.choices,
        help_text="Owner type of the wallet (denormalized)",
    )

    owner_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Owner id of the wallet (denormalized)",
    )

    entry_type = models.CharField(
        max_length=16,
        choices=LedgerEntryType.choices,
        help_text="Business reason for this entry",
    )

    direction = models.CharField(
        max_length=8,
        choices=LedgerDirection.choices,
        help_text="Whether the balance went up or down",
    )

    amount = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        help_text="Amount moved (always positive)",
    )

    balance_after = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        help_text="Wallet balance immediately after this entry",
    )

    sequence = models.PositiveIntegerField(
        help_text="0-based position of this entry in the wallet history",
    )

    transaction_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Ticket transaction id or payout reference",
    )

    external_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Provider side identifier (e.g., transfer id)",
    )

    hangout_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Event this money relates to",
    )

    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Unique key to prevent duplicate entries",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Typed metadata with a 'kind' discriminator",
    )

    objects = LedgerEntryQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Ledger Entry"
        verbose_name_plural = "Ledger Entries"
        indexes = [
            models.Index(
                fields=["wallet", "created_at"],
                name="ledger_wallet_created_idx",
            ),
            models.Index(
                fields=["owner_type", "owner_id"],
                name="ledger_owner_idx",
            ),
            models.Index(
                fields=["entry_type"],
                name="ledger_entry_type_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["wallet", "sequence"],
                name="unique_ledger_sequence_per_wallet",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="ledger_entry_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(balance_after__gte=0),
                name="ledger_entry_balance_after_non_negative",
            ),
        ]

    def __str__(self) -> str:
        sign = "+" if self.direction == LedgerDirection.CREDIT else "-"
        return f"{self.get_entry_type_display()}: {sign}{self.amount} (#{self.sequence})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LedgerImmutableError(
                "Ledger entries cannot be updated",
                details={"entry_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerImmutableError(
            "Ledger entries cannot be deleted",
            details={"entry_id": str(self.pk)},
        )

    @property
    def signed_amount(self):
        if self.direction == LedgerDirection.DEBIT:
            return -self.amount
        return self.amount

    @property
    def typed_metadata(self):
        return parse_metadata(self.metadata)
