"""
Ledger service: the only code path that changes a wallet balance.

Every balance movement goes through LedgerService.post()/post_entries(),
which in one transaction:
    1. Returns the existing entry if the idempotency key was already used
    2. Locks the wallet row (select_for_update, in id order for batches)
    3. Moves the balance with a conditional UPDATE
       (debits: ``WHERE balance >= amount``)
    4. Appends a LedgerEntry with the next per-wallet sequence number and
       the resulting balance_after

A debit that the conditional UPDATE rejects raises InsufficientBalanceError
and writes nothing.

Usage:
    from wallets.ledger import LedgerService
    from wallets.state_machines import LedgerDirection, LedgerEntryType, WalletOwnerType
    from wallets.types import PostEntryParams

    wallet = LedgerService.get_or_create_wallet(WalletOwnerType.EVENT, event_id)
    entry = LedgerService.post(wallet, PostEntryParams(
        entry_type=LedgerEntryType.CREDIT,
        direction=LedgerDirection.CREDIT,
        amount=Decimal("18000.00"),
        idempotency_key=f"ticket-sale:{transaction_id}:owner",
    ))
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Max
from django.utils import timezone

from wallets.exceptions import (
    InsufficientBalanceError,
    WalletError,
    WalletValidationError,
)
from wallets.models import LedgerEntry, Wallet
from wallets.state_machines import LedgerDirection, WalletOwnerType

if TYPE_CHECKING:
    from wallets.types import PostEntryParams

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Service class for wallet ledger operations.

    Key features:
    - Lazy wallet creation, safe under concurrent first use
    - Idempotency via unique keys (safe to retry)
    - Atomic conditional debit; a concurrent overdraft cannot succeed
    - Wallet locking in consistent order to prevent deadlocks

    All methods are static - no instance state is maintained.
    """

    # ==========================================================================
    # Wallets
    # ==========================================================================

    @staticmethod
    def validate_owner(owner_type: str, owner_id: str | None) -> tuple[str, str | None]:
        """
        Normalize and validate an owner reference.

        PLATFORM takes no owner id; EVENT and GROUP require one.

        Raises:
            WalletValidationError: If the owner type is unknown or the id is missing
        """
        if owner_type not in WalletOwnerType.values:
            raise WalletValidationError(
                "Invalid ownerType",
                details={"owner_type": owner_type},
            )
        if owner_type == WalletOwnerType.PLATFORM:
            return owner_type, None
        if owner_id is None or not str(owner_id).strip():
            raise WalletValidationError(
                "ownerId is required",
                details={"owner_type": owner_type},
            )
        return owner_type, str(owner_id)

    @staticmethod
    def get_wallet(owner_type: str, owner_id: str | None) -> Wallet | None:
        owner_type, owner_id = LedgerService.validate_owner(owner_type, owner_id)
        return Wallet.objects.filter(owner_type=owner_type, owner_id=owner_id).first()

    @staticmethod
    def get_or_create_wallet(owner_type: str, owner_id: str | None) -> Wallet:
        """
        Get the owner's wallet, creating it with a zero balance if missing.

        Two concurrent first uses race on the unique (owner_type, owner_id)
        constraint; the loser re-reads the winner's row.
        """
        owner_type, owner_id = LedgerService.validate_owner(owner_type, owner_id)
        wallet = Wallet.objects.filter(owner_type=owner_type, owner_id=owner_id).first()
        if wallet is not None:
            return wallet

        try:
            with transaction.atomic():
                wallet = Wallet.objects.create(
                    owner_type=owner_type,
                    owner_id=owner_id,
                    currency=settings.WALLET_CURRENCY,
                )
        except IntegrityError:
            wallet = Wallet.objects.get(owner_type=owner_type, owner_id=owner_id)
        else:
            logger.info(
                "Created wallet",
                extra={
                    "wallet_id": str(wallet.id),
                    "owner_type": owner_type,
                    "owner_id": owner_id,
                },
            )
        return wallet

    @staticmethod
    def get_or_create_platform_wallet() -> Wallet:
        return LedgerService.get_or_create_wallet(WalletOwnerType.PLATFORM, None)

    # ==========================================================================
    # Posting
    # ==========================================================================

    @staticmethod
    def post(wallet: Wallet, params: PostEntryParams) -> LedgerEntry | None:
        """
        Append one entry to a wallet and move its balance.

        Returns:
            The new entry, the existing entry for a reused idempotency key,
            or None when a clamped debit had nothing left to take

        Raises:
            InsufficientBalanceError: If a debit exceeds the balance
            WalletError: If the wallet is inactive
        """
        return LedgerService.post_entries([(wallet, params)])[0]

    @staticmethod
    def post_entries(
        postings: list[tuple[Wallet, PostEntryParams]],
    ) -> list[LedgerEntry | None]:
        """
        Append several entries atomically (all succeed or all fail).

        Entries are applied in list order, so an earlier credit is visible
        to a later debit on the same wallet.
        """
        if not postings:
            return []

        results: list[LedgerEntry | None] = []

        with transaction.atomic():
            # Lock wallets in consistent order to prevent deadlocks
            wallet_ids = sorted({wallet.pk for wallet, _ in postings}, key=str)
            locked = {
                w.pk: w
                for w in Wallet.objects.filter(pk__in=wallet_ids)
                .select_for_update()
                .order_by("pk")
            }

            for wallet, params in postings:
                # Check idempotency FIRST so a retry never moves money twice
                if params.idempotency_key:
                    existing = LedgerEntry.objects.filter(
                        idempotency_key=params.idempotency_key
                    ).first()
                    if existing is not None:
                        results.append(existing)
                        continue

                locked_wallet = locked.get(wallet.pk)
                if locked_wallet is None:
                    raise WalletError(
                        f"Wallet {wallet.pk} not found",
                        error_code="WALLET_NOT_FOUND",
                        details={"wallet_id": str(wallet.pk)},
                    )

                entry = LedgerService._apply(locked_wallet, params)
                results.append(entry)

                # Keep the caller's instance in step with the database
                wallet.balance = locked_wallet.balance

        return results

    @staticmethod
    def _apply(wallet: Wallet, params: PostEntryParams) -> LedgerEntry | None:
        """Move the balance and append the entry. Caller holds the row lock."""
        if not wallet.is_active:
            raise WalletError(
                "Wallet is inactive",
                error_code="WALLET_INACTIVE",
                details={"wallet_id": str(wallet.pk)},
            )

        amount = params.amount
        now = timezone.now()

        if params.direction == LedgerDirection.DEBIT:
            if params.clamp_to_balance:
                amount = min(amount, wallet.balance)
                if amount <= 0:
                    return None
            rows = Wallet.objects.filter(pk=wallet.pk, balance__gte=amount).update(
                balance=F("balance") - amount,
                updated_at=now,
            )
            if rows == 0:
                wallet.refresh_from_db(fields=["balance"])
                raise InsufficientBalanceError(
                    wallet.pk,
                    required=amount,
                    available=wallet.balance,
                )
        elif params.direction == LedgerDirection.CREDIT:
            Wallet.objects.filter(pk=wallet.pk).update(
                balance=F("balance") + amount,
                updated_at=now,
            )
        else:
            raise WalletValidationError(
                "Invalid ledger direction",
                details={"direction": params.direction},
            )

        wallet.refresh_from_db(fields=["balance", "updated_at"])

        last_sequence = LedgerEntry.objects.filter(wallet=wallet).aggregate(
            last=Max("sequence")
        )["last"]

        metadata = params.metadata.to_dict() if params.metadata else {}
        entry = LedgerEntry.objects.create(
            wallet=wallet,
            owner_type=wallet.owner_type,
            owner_id=wallet.owner_id,
            entry_type=params.entry_type,
            direction=params.direction,
            amount=amount,
            balance_after=wallet.balance,
            sequence=0 if last_sequence is None else last_sequence + 1,
            transaction_reference=params.transaction_reference,
            external_reference=params.external_reference,
            hangout_id=params.hangout_id,
            idempotency_key=params.idempotency_key,
            metadata=metadata,
        )

        logger.info(
            "Posted ledger entry",
            extra={
                "wallet_id": str(wallet.pk),
                "entry_id": str(entry.pk),
                "entry_type": params.entry_type,
                "direction": params.direction,
                "amount": str(amount),
                "balance_after": str(wallet.balance),
            },
        )
        return entry

    # ==========================================================================
    # Queries
    # ==========================================================================

    @staticmethod
    def entries_for(wallet: Wallet, limit: int | None = 50, offset: int = 0):
        """Newest-first ledger page for a wallet."""
        queryset = LedgerEntry.objects.filter(wallet=wallet).order_by("-sequence")
        if limit is None:
            return list(queryset[offset:])
        return list(queryset[offset : offset + limit])

    @staticmethod
    def reconstruct_balance(wallet: Wallet) -> Decimal:
        """
        Fold the wallet's entries in sequence order starting from zero.

        Raises:
            WalletError: If an entry's balance_after does not match the fold
        """
        balance = Decimal("0.00")
        for entry in LedgerEntry.objects.for_wallet(wallet).iterator():
            balance += entry.signed_amount
            if balance != entry.balance_after:
                raise WalletError(
                    "Ledger does not reconcile",
                    error_code="LEDGER_MISMATCH",
                    details={
                        "wallet_id": str(wallet.pk),
                        "sequence": entry.sequence,
                        "expected": str(balance),
                        "recorded": str(entry.balance_after),
                    },
                )
        return balance
