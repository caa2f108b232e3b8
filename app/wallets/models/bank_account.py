"""
BankAccount model: payout destinations saved by users.

A user may save several accounts; at most one is the default. Withdrawals
without an explicit bank account go to the default.

Usage:
    from wallets.models import BankAccount

    account = BankAccount.objects.for_user(user).owned(bank_account_id)
    default = BankAccount.objects.default_for(user)
    account.set_default()
"""

from __future__ import annotations

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models, transaction

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class BankAccountQuerySet(models.QuerySet):
    def for_user(self, user):
        return self.filter(user=user)

    def owned(self, bank_account_id):
        """Return the account with this id within the queryset, or None."""
        try:
            return self.filter(pk=bank_account_id).first()
        except (DjangoValidationError, ValueError, TypeError):
            return None

    def default_for(self, user):
        return self.filter(user=user, is_default=True).first()


class BankAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    A user's bank account for receiving withdrawals.

    Fields:
        user: Owner of the account
        bank_code: Provider bank code (e.g., "058")
        bank_name: Display name of the bank
        account_number: NUBAN account number
        account_name: Account holder name as resolved by the provider
        is_default: Whether withdrawals go here by default
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bank_accounts",
        help_text="User who owns this bank account",
    )

    bank_code = models.CharField(
        max_length=16,
        help_text="Provider bank code",
    )

    bank_name = models.CharField(
        max_length=128,
        help_text="Bank display name",
    )

    account_number = models.CharField(
        max_length=20,
        help_text="Bank account number",
    )

    account_name = models.CharField(
        max_length=255,
        help_text="Account holder name",
    )

    is_default = models.BooleanField(
        default=False,
        help_text="Whether withdrawals go to this account by default",
    )

    objects = BankAccountQuerySet.as_manager()

    class Meta:
        ordering = ["-is_default", "-created_at"]
        verbose_name = "Bank Account"
        verbose_name_plural = "Bank Accounts"
        constraints = [
            models.UniqueConstraint(
                fields=["user"],
                condition=models.Q(is_default=True),
                name="one_default_bank_account_per_user",
            ),
        ]

    def __str__(self) -> str:
        return f"BankAccount({self.bank_name} {self.masked_number})"

    @property
    def masked_number(self) -> str:
        from toolkit.helpers import mask_account_number

        return mask_account_number(self.account_number)

    def set_default(self) -> None:
        """Make this the user's only default account."""
        with transaction.atomic():
            BankAccount.objects.filter(user_id=self.user_id, is_default=True).exclude(
                pk=self.pk
            ).update(is_default=False)
            self.is_default = True
            self.save(update_fields=["is_default", "updated_at"])
