"""
WalletRefund model: one row per applied refund clawback.

A clawback clamped to an empty wallet moves no money and writes no ledger
entry, so the ledger alone cannot tell whether a refund_key was applied.
This row is written in the same transaction as the REFUND entries and is
the idempotency marker for replays.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class WalletRefund(UUIDPrimaryKeyMixin, BaseModel):
    """
    Amounts computed and debited for a refunded ticket payment.

    Fields:
        refund_key: Unique per refund (transaction id or partial refund key)
        transaction_id: Original payment transaction id
        wallet: Owner wallet the refund was taken from
        refund_amount / original_amount: As supplied by the caller
        owner_debited / platform_debited: What actually left each wallet
        owner_shortfall / platform_shortfall: What could not be recovered
    """

    refund_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Idempotency key for the refund",
    )

    transaction_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Original payment transaction id",
    )

    wallet = models.ForeignKey(
        "wallets.Wallet",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Owner wallet the refund was clawed back from",
    )

    refund_amount = models.DecimalField(max_digits=18, decimal_places=2)
    original_amount = models.DecimalField(max_digits=18, decimal_places=2)

    owner_debited = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    platform_debited = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )
    owner_shortfall = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Owner share not recovered because the balance was too low",
    )
    platform_shortfall = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00")
    )

    reason = models.TextField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Wallet Refund"
        verbose_name_plural = "Wallet Refunds"

    def __str__(self) -> str:
        return f"WalletRefund({self.refund_key})"
