"""
Wallet model holding the balance owed to an event, group or the platform.

Exactly one wallet exists per (owner_type, owner_id). Wallets are created
lazily on the first credit, debit or adjustment. The balance is a cached
projection of the ledger: it changes only through LedgerService, which
appends a LedgerEntry and moves the balance in the same transaction.

Usage:
    from wallets.ledger import LedgerService
    from wallets.state_machines import WalletOwnerType

    wallet = LedgerService.get_or_create_wallet(WalletOwnerType.EVENT, event_id)
    wallet.balance  # Decimal("0.00")
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from wallets.state_machines import WalletOwnerType


class Wallet(UUIDPrimaryKeyMixin, BaseModel):
    """
    Balance holder for a single owner.

    Fields:
        owner_type: EVENT, GROUP or PLATFORM
        owner_id: Owning event/group id (null for the platform wallet)
        balance: Current balance in major units, never negative
        currency: ISO 4217 currency code
        is_active: Inactive wallets are kept for audit but not used
    """

    owner_type = models.CharField(
        max_length=16,
        choices=WalletOwnerType.choices,
        help_text="Kind of entity owning this wallet",
    )

    owner_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        help_text="Identifier of the owning event or group (null for PLATFORM)",
    )

    balance = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Current balance; equals the balance_after of the latest ledger entry",
    )

    currency = models.CharField(
        max_length=3,
        default="NGN",
        help_text="ISO 4217 currency code",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this wallet accepts new ledger entries",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Wallet"
        verbose_name_plural = "Wallets"
        constraints = [
            models.UniqueConstraint(
                fields=["owner_type", "owner_id"],
                name="unique_wallet_per_owner",
            ),
            models.UniqueConstraint(
                fields=["owner_type"],
                condition=models.Q(owner_id__isnull=True),
                name="unique_ownerless_wallet_per_type",
            ),
            models.CheckConstraint(
                condition=models.Q(balance__gte=0),
                name="wallet_balance_non_negative",
            ),
        ]

    def __str__(self) -> str:
        owner = self.owner_id or "-"
        return f"Wallet({self.owner_type}:{owner}, {self.balance} {self.currency})"

    @property
    def is_platform(self) -> bool:
        return self.owner_type == WalletOwnerType.PLATFORM
