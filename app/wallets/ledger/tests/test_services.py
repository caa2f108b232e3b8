"""
Tests for LedgerService.

Tests verify:
- Lazy wallet creation and owner validation
- Credits and debits move the balance and append sequenced entries
- Idempotency keys never move money twice
- Debits beyond the balance fail without writing
- Clamped debits take only what is there
- Balance reconstruction from the ledger
"""

from decimal import Decimal

import pytest

from wallets.exceptions import (
    InsufficientBalanceError,
    WalletError,
    WalletValidationError,
)
from wallets.ledger import LedgerService
from wallets.models import LedgerEntry, Wallet
from wallets.state_machines import LedgerDirection, LedgerEntryType, WalletOwnerType
from wallets.types import ManualAdjustmentMetadata, PostEntryParams


def params(direction, amount, entry_type=LedgerEntryType.ADJUSTMENT, **kwargs):
    return PostEntryParams(
        entry_type=entry_type,
        direction=direction,
        amount=Decimal(amount),
        **kwargs,
    )


@pytest.fixture
def wallet(db):
    return LedgerService.get_or_create_wallet(WalletOwnerType.EVENT, "evt-ledger")


# =============================================================================
# Wallets
# =============================================================================


@pytest.mark.django_db
class TestWallets:
    """Tests for wallet lookup and creation."""

    def test_get_or_create_creates_zero_balance_wallet(self):
        """Should create an empty NGN wallet on first use."""
        wallet = LedgerService.get_or_create_wallet(WalletOwnerType.GROUP, "grp-1")

        assert wallet.balance == Decimal("0.00")
        assert wallet.currency == "NGN"
        assert wallet.owner_type == WalletOwnerType.GROUP
        assert wallet.owner_id == "grp-1"

    def test_get_or_create_returns_existing_wallet(self):
        """Should return the same wallet on the second call."""
        first = LedgerService.get_or_create_wallet(WalletOwnerType.EVENT, "evt-1")
        second = LedgerService.get_or_create_wallet(WalletOwnerType.EVENT, "evt-1")

        assert first.pk == second.pk
        assert Wallet.objects.count() == 1

    def test_platform_wallet_is_a_singleton(self):
        """Should keep one PLATFORM wallet with no owner id."""
        first = LedgerService.get_or_create_platform_wallet()
        second = LedgerService.get_or_create_platform_wallet()

        assert first.pk == second.pk
        assert first.owner_id is None

    def test_platform_owner_id_is_ignored(self):
        """Should normalize any PLATFORM owner id to None."""
        owner_type, owner_id = LedgerService.validate_owner(WalletOwnerType.PLATFORM, "x")

        assert owner_type == WalletOwnerType.PLATFORM
        assert owner_id is None

    def test_invalid_owner_type_raises(self):
        with pytest.raises(WalletValidationError, match="Invalid ownerType"):
            LedgerService.get_or_create_wallet("USER", "u-1")

    @pytest.mark.parametrize("owner_id", [None, "", "   "])
    def test_missing_owner_id_raises(self, owner_id):
        """Should require an owner id for EVENT and GROUP wallets."""
        with pytest.raises(WalletValidationError, match="ownerId is required"):
            LedgerService.get_or_create_wallet(WalletOwnerType.EVENT, owner_id)

    def test_get_wallet_returns_none_when_missing(self):
        assert LedgerService.get_wallet(WalletOwnerType.EVENT, "nope") is None


# =============================================================================
# Posting
# =============================================================================


@pytest.mark.django_db
class TestPost:
    """Tests for LedgerService.post."""

    def test_credit_increases_balance(self, wallet):
        """Should credit the wallet and record balance_after."""
        entry = LedgerService.post(
            wallet, params(LedgerDirection.CREDIT, "18000", LedgerEntryType.CREDIT)
        )

        wallet.refresh_from_db()
        assert wallet.balance == Decimal("18000.00")
        assert entry.balance_after == Decimal("18000.00")
        assert entry.sequence == 0
        assert entry.owner_type == WalletOwnerType.EVENT
        assert entry.owner_id == "evt-ledger"

    def test_caller_instance_tracks_balance(self, wallet):
        """Should update the passed wallet instance in place."""
        LedgerService.post(wallet, params(LedgerDirection.CREDIT, "500"))

        assert wallet.balance == Decimal("500.00")

    def test_sequence_increments_per_wallet(self, wallet):
        """Should number entries 0, 1, 2 within a wallet."""
        other = LedgerService.get_or_create_wallet(WalletOwnerType.EVENT, "evt-other")

        first = LedgerService.post(wallet, params(LedgerDirection.CREDIT, "100"))
        LedgerService.post(other, params(LedgerDirection.CREDIT, "100"))
        second = LedgerService.post(wallet, params(LedgerDirection.CREDIT, "100"))
        third = LedgerService.post(wallet, params(LedgerDirection.DEBIT, "50"))

        assert [first.sequence, second.sequence, third.sequence] == [0, 1, 2]
        assert third.balance_after == Decimal("150.00")

    def test_debit_exact_balance_leaves_zero(self, wallet):
        LedgerService.post(wallet, params(LedgerDirection.CREDIT, "1000"))

        entry = LedgerService.post(wallet, params(LedgerDirection.DEBIT, "1000"))

        assert entry.balance_after == Decimal("0.00")

    def test_debit_over_balance_raises_and_writes_nothing(self, wallet):
        """Should reject the debit without touching the balance or ledger."""
        LedgerService.post(wallet, params(LedgerDirection.CREDIT, "1000"))

        with pytest.raises(InsufficientBalanceError) as exc_info:
            LedgerService.post(wallet, params(LedgerDirection.DEBIT, "1000.01"))

        wallet.refresh_from_db()
        assert wallet.balance == Decimal("1000.00")
        assert LedgerEntry.objects.filter(wallet=wallet).count() == 1
        assert exc_info.value.required == Decimal("1000.01")
        assert exc_info.value.available == Decimal("1000.00")

    def test_idempotency_key_returns_existing_entry(self, wallet):
        """Should return the first entry and not move money again."""
        first = LedgerService.post(
            wallet, params(LedgerDirection.CREDIT, "700", idempotency_key="sale-1")
        )
        second = LedgerService.post(
            wallet, params(LedgerDirection.CREDIT, "700", idempotency_key="sale-1")
        )

        wallet.refresh_from_db()
        assert first.pk == second.pk
        assert wallet.balance == Decimal("700.00")

    def test_metadata_is_stored_with_kind(self, wallet):
        entry = LedgerService.post(
            wallet,
            params(
                LedgerDirection.CREDIT,
                "100",
                metadata=ManualAdjustmentMetadata(reason="Goodwill", adjusted_by="9"),
            ),
        )

        assert entry.metadata["kind"] == "manual_adjustment"
        assert entry.metadata["reason"] == "Goodwill"
        assert entry.typed_metadata.adjusted_by == "9"

    def test_clamped_debit_takes_available_balance(self, wallet):
        """Should debit only what is in the wallet."""
        LedgerService.post(wallet, params(LedgerDirection.CREDIT, "300"))

        entry = LedgerService.post(
            wallet,
            params(LedgerDirection.DEBIT, "500", LedgerEntryType.REFUND, clamp_to_balance=True),
        )

        assert entry.amount == Decimal("300.00")
        assert entry.balance_after == Decimal("0.00")

    def test_clamped_debit_on_empty_wallet_writes_nothing(self, wallet):
        entry = LedgerService.post(
            wallet,
            params(LedgerDirection.DEBIT, "500", LedgerEntryType.REFUND, clamp_to_balance=True),
        )

        assert entry is None
        assert not LedgerEntry.objects.filter(wallet=wallet).exists()

    def test_inactive_wallet_rejects_postings(self, wallet):
        Wallet.objects.filter(pk=wallet.pk).update(is_active=False)

        with pytest.raises(WalletError, match="Wallet is inactive"):
            LedgerService.post(wallet, params(LedgerDirection.CREDIT, "100"))

    def test_non_positive_amount_rejected_before_posting(self):
        with pytest.raises(WalletValidationError, match="Ledger amount must be positive"):
            params(LedgerDirection.CREDIT, "0")


@pytest.mark.django_db
class TestPostEntries:
    """Tests for multi-entry atomic posting."""

    def test_all_entries_applied(self, wallet):
        platform = LedgerService.get_or_create_platform_wallet()

        owner_entry, platform_entry = LedgerService.post_entries(
            [
                (wallet, params(LedgerDirection.CREDIT, "9000")),
                (platform, params(LedgerDirection.CREDIT, "1000")),
            ]
        )

        assert owner_entry.balance_after == Decimal("9000.00")
        assert platform_entry.balance_after == Decimal("1000.00")

    def test_failure_rolls_back_earlier_entries(self, wallet):
        """Should write nothing when any entry in the batch fails."""
        platform = LedgerService.get_or_create_platform_wallet()

        with pytest.raises(InsufficientBalanceError):
            LedgerService.post_entries(
                [
                    (wallet, params(LedgerDirection.CREDIT, "9000")),
                    (platform, params(LedgerDirection.DEBIT, "1")),
                ]
            )

        wallet.refresh_from_db()
        assert wallet.balance == Decimal("0.00")
        assert LedgerEntry.objects.count() == 0

    def test_earlier_credit_visible_to_later_debit(self, wallet):
        entries = LedgerService.post_entries(
            [
                (wallet, params(LedgerDirection.CREDIT, "100")),
                (wallet, params(LedgerDirection.DEBIT, "100")),
            ]
        )

        assert entries[1].balance_after == Decimal("0.00")

    def test_empty_batch(self):
        assert LedgerService.post_entries([]) == []


# =============================================================================
# Queries
# =============================================================================


@pytest.mark.django_db
class TestQueries:
    def test_entries_for_newest_first(self, wallet):
        for amount in ("100", "200", "300"):
            LedgerService.post(wallet, params(LedgerDirection.CREDIT, amount))

        entries = LedgerService.entries_for(wallet, limit=2)

        assert [e.amount for e in entries] == [Decimal("300.00"), Decimal("200.00")]

    def test_reconstruct_balance_matches_wallet(self, wallet):
        """Should fold the ledger to the stored balance."""
        LedgerService.post(wallet, params(LedgerDirection.CREDIT, "1000"))
        LedgerService.post(wallet, params(LedgerDirection.DEBIT, "250.50"))
        LedgerService.post(wallet, params(LedgerDirection.CREDIT, "10"))

        wallet.refresh_from_db()
        assert LedgerService.reconstruct_balance(wallet) == wallet.balance
        assert wallet.balance == Decimal("759.50")
