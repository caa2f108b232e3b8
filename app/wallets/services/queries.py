"""
Read-side queries for wallets and withdrawals.

Nothing here writes. Wallet details are gated by the authorization
service; withdrawal lists are paginated newest first.

Usage:
    from wallets.services import WalletQueryService

    queries = WalletQueryService.default()
    details = queries.get_wallet_details(WalletOwnerType.EVENT, event_id, user)
    page = queries.withdrawals_for_user(user, limit=20)
    detail = queries.get_withdrawal_detail(withdrawal_id, user_id=user.id)
"""

from __future__ import annotations

from typing import Any

from django.core.exceptions import ValidationError as DjangoValidationError

from wallets.exceptions import WalletAuthorizationError, WithdrawalNotFoundError
from wallets.ledger import LedgerService
from wallets.models import BankAccount, Withdrawal
from wallets.services.authorization import WalletAuthorizationService
from wallets.types import Page, WalletDetails

DEFAULT_PAGE_SIZE = 50


class WalletQueryService:
    """Wallet pages, withdrawal history and withdrawal detail."""

    def __init__(self, authorization: WalletAuthorizationService) -> None:
        self.authorization = authorization

    @classmethod
    def default(cls) -> WalletQueryService:
        return cls(authorization=WalletAuthorizationService.default())

    def get_wallet_details(
        self,
        owner_type: str,
        owner_id: str | None,
        user,
        is_admin: bool = False,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> WalletDetails:
        """
        Wallet, a page of its ledger and the viewer's bank accounts.

        Raises:
            WalletValidationError: Bad owner reference
            WalletAuthorizationError: The user may not view this wallet
        """
        owner_type, owner_id = LedgerService.validate_owner(owner_type, owner_id)
        decision = self.authorization.can_view(owner_type, owner_id, user.pk, is_admin=is_admin)
        if not decision.allowed:
            raise WalletAuthorizationError(
                decision.reason,
                details={"owner_type": owner_type, "owner_id": owner_id},
            )

        wallet = LedgerService.get_wallet(owner_type, owner_id)
        if wallet is None:
            return WalletDetails(wallet=None, ledger=[], bank_accounts=[])

        return WalletDetails(
            wallet=wallet,
            ledger=LedgerService.entries_for(wallet, limit=limit, offset=offset),
            bank_accounts=list(BankAccount.objects.for_user(user)),
        )

    def withdrawals_for_wallet(
        self,
        owner_type: str,
        owner_id: str | None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> Page:
        owner_type, owner_id = LedgerService.validate_owner(owner_type, owner_id)
        queryset = Withdrawal.objects.for_owner(owner_type, owner_id)
        return _paginate(queryset, limit, offset)

    def withdrawals_for_user(
        self,
        user,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> Page:
        queryset = Withdrawal.objects.filter(user=user)
        return _paginate(queryset, limit, offset)

    def get_withdrawal_detail(self, withdrawal_id, user_id=None) -> dict[str, Any]:
        """
        One withdrawal with its bank account masked.

        When ``user_id`` is given, a withdrawal requested by someone else is
        reported exactly like a missing one.

        Raises:
            WithdrawalNotFoundError: Unknown id, or not the requester's
        """
        try:
            withdrawal = (
                Withdrawal.objects.select_related("bank_account")
                .filter(pk=withdrawal_id)
                .first()
            )
        except (DjangoValidationError, ValueError, TypeError):
            withdrawal = None
        if withdrawal is None:
            raise WithdrawalNotFoundError(
                "Withdrawal not found",
                details={"withdrawal_id": str(withdrawal_id)},
            )

        if user_id is not None and str(withdrawal.user_id) != str(user_id):
            raise WithdrawalNotFoundError(
                "Withdrawal not found or access denied",
                details={"withdrawal_id": str(withdrawal_id)},
            )

        bank_account = withdrawal.bank_account
        return {
            "id": str(withdrawal.id),
            "owner_type": withdrawal.owner_type,
            "owner_id": withdrawal.owner_id,
            "amount": withdrawal.amount,
            "fee_amount": withdrawal.fee_amount,
            "payout_amount": withdrawal.payout_amount,
            "status": withdrawal.status,
            "payout_reference": withdrawal.payout_reference,
            "failure_reason": withdrawal.failure_reason,
            "bank_account": {
                "bank_name": bank_account.bank_name,
                "account_number": bank_account.masked_number,
                "account_name": bank_account.account_name,
            }
            if bank_account is not None
            else None,
            "metadata": withdrawal.metadata or {},
            "created_at": withdrawal.created_at,
            "updated_at": withdrawal.updated_at,
        }


def _paginate(queryset, limit: int, offset: int) -> Page:
    queryset = queryset.order_by("-created_at")
    return Page(
        items=list(queryset[offset : offset + limit]),
        total=queryset.count(),
        limit=limit,
        offset=offset,
    )
