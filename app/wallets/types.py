"""
Data types for wallet operations.

This module defines the dataclasses passed between the wallet layers and
the typed metadata stored on ledger entries and withdrawals.

Types:
    Amount helpers: to_amount, format_naira
    PostEntryParams: Parameters for appending a ledger entry
    Metadata union: WithdrawalDebitMetadata, WithdrawalRollbackMetadata,
        ManualAdjustmentMetadata, TicketSaleMetadata, RefundMetadata,
        WithdrawalMetadata (each tagged with a ``kind`` discriminator)
    Results: AuthorizationDecision, WithdrawalDebit, WithdrawalReceipt,
        TransferOutcome, FinalizationResult, PollSummary, AdjustmentResult,
        FundingResult, RefundResult
    Read models: WalletDetails, Page

Usage:
    from wallets.types import ManualAdjustmentMetadata, to_amount

    metadata = ManualAdjustmentMetadata(reason="Chargeback", adjusted_by="admin-1")
    entry.metadata  # {"kind": "manual_adjustment", "reason": ..., ...}
    parse_metadata(entry.metadata)  # ManualAdjustmentMetadata(...)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, ClassVar

from wallets.exceptions import WalletValidationError

if TYPE_CHECKING:
    from wallets.models import BankAccount, LedgerEntry, Wallet, Withdrawal

CENT = Decimal("0.01")

# Ledger columns are max_digits=18, decimal_places=2
MAX_AMOUNT_DIGITS = 16


# =============================================================================
# Amounts
# =============================================================================


def to_amount(value: Any, field_name: str = "amount") -> Decimal:
    """
    Convert a user supplied amount to a 2-decimal Decimal.

    Floats are converted through str() so 0.1 stays 0.10. Amounts must fit
    the ledger columns (at most MAX_AMOUNT_DIGITS digits before the point).

    Raises:
        WalletValidationError: If the value is not a finite number or is
            too large to store
    """
    if isinstance(value, bool) or value is None:
        raise WalletValidationError(
            f"{field_name} must be a number",
            details={field_name: repr(value)},
        )
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise WalletValidationError(
            f"{field_name} must be a number",
            details={field_name: repr(value)},
        )
    if not amount.is_finite():
        raise WalletValidationError(
            f"{field_name} must be a finite number",
            details={field_name: str(value)},
        )
    try:
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More digits than the decimal context holds
        amount = None
    if amount is None or amount.adjusted() >= MAX_AMOUNT_DIGITS:
        raise WalletValidationError(
            f"{field_name} is too large",
            error_code="AMOUNT_TOO_LARGE",
            details={field_name: str(value)},
        )
    return amount


def percent_of(amount: Decimal, percent: Decimal | str) -> Decimal:
    """Percentage of an amount, rounded half-up to 2 decimal places."""
    return (amount * Decimal(str(percent)) / Decimal("100")).quantize(
        CENT, rounding=ROUND_HALF_UP
    )


def format_naira(amount: Decimal | int) -> str:
    """Format an amount for messages, e.g. ₦10,000 or ₦10,000.50."""
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return f"₦{int(amount):,}"
    return f"₦{amount:,.2f}"


# =============================================================================
# Ledger Entry Parameters
# =============================================================================


@dataclass
class PostEntryParams:
    """
    Parameters for appending a single ledger entry.

    Required Attributes:
        entry_type: LedgerEntryType value
        direction: LedgerDirection value
        amount: Positive amount to move

    Optional Attributes:
        metadata: One of the typed metadata classes below
        idempotency_key: Unique key; a repeated post returns the original entry
        transaction_reference: Ticket transaction id or payout reference
        external_reference: Provider side identifier
        hangout_id: Event id the money relates to
        clamp_to_balance: For debits, take min(amount, balance) instead of
            raising InsufficientBalanceError (refund clawbacks only)
    """

    entry_type: str
    direction: str
    amount: Decimal
    metadata: EntryMetadata | None = None
    idempotency_key: str | None = None
    transaction_reference: str | None = None
    external_reference: str | None = None
    hangout_id: str | None = None
    clamp_to_balance: bool = False

    def __post_init__(self) -> None:
        """Validate params after initialization."""
        if self.amount <= 0:
            raise WalletValidationError(
                "Ledger amount must be positive",
                details={"amount": str(self.amount)},
            )


# =============================================================================
# Typed Metadata
# =============================================================================


class EntryMetadata:
    """
    Base for typed metadata stored in JSONField columns.

    Subclasses are dataclasses with a ``kind`` class attribute used as the
    discriminator when reading the JSON back.
    """

    kind: ClassVar[str] = ""
    registry: ClassVar[dict[str, type[EntryMetadata]]] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.kind:
            EntryMetadata.registry[cls.kind] = cls

    def to_dict(self) -> dict[str, Any]:
        data = {"kind": self.kind}
        for key, value in asdict(self).items():
            data[key] = str(value) if isinstance(value, Decimal) else value
        return data


def parse_metadata(data: dict[str, Any] | None) -> EntryMetadata | None:
    """
    Rebuild a typed metadata object from its JSON form.

    Unknown kinds return None. Unknown keys are dropped.
    """
    if not data:
        return None
    metadata_class = EntryMetadata.registry.get(data.get("kind", ""))
    if metadata_class is None:
        return None
    kwargs = {}
    for f in fields(metadata_class):
        if f.name not in data:
            continue
        value = data[f.name]
        # Annotations are strings under postponed evaluation
        if value is not None and str(f.type).startswith("Decimal"):
            value = Decimal(value)
        kwargs[f.name] = value
    return metadata_class(**kwargs)


@dataclass
class WithdrawalDebitMetadata(EntryMetadata):
    kind: ClassVar[str] = "withdrawal_debit"

    requested_amount: Decimal
    fee_amount: Decimal
    payout_amount: Decimal
    fee_mode: str
    requested_by: str


@dataclass
class WithdrawalRollbackMetadata(EntryMetadata):
    """Compensating credit after a failed transfer."""

    kind: ClassVar[str] = "withdrawal_rollback"

    reason: str
    payout_reference: str
    error: str | None = None


@dataclass
class ManualAdjustmentMetadata(EntryMetadata):
    kind: ClassVar[str] = "manual_adjustment"

    reason: str
    adjusted_by: str
    adjustment_type: str = "manual"


@dataclass
class TicketSaleMetadata(EntryMetadata):
    kind: ClassVar[str] = "ticket_sale"

    transaction_id: str
    gross_amount: Decimal
    fee_amount: Decimal
    role: str = "owner"


@dataclass
class RefundMetadata(EntryMetadata):
    kind: ClassVar[str] = "refund"

    transaction_id: str
    refund_amount: Decimal
    original_amount: Decimal
    requested_debit: Decimal
    shortfall: Decimal = Decimal("0.00")
    reason: str | None = None


@dataclass
class WithdrawalMetadata(EntryMetadata):
    """Provider state recorded on the Withdrawal row."""

    kind: ClassVar[str] = "withdrawal"

    transfer_status: str | None = None
    payout_amount: Decimal | None = None
    fee_mode: str | None = None
    provider_message: str | None = None


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> AuthorizationDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> AuthorizationDecision:
        return cls(allowed=False, reason=reason)


@dataclass
class WithdrawalDebit:
    """Outcome of the domain debit step."""

    fee_amount: Decimal
    payout_amount: Decimal
    wallet_balance_after: Decimal
    wallet: Wallet
    ledger_entry: LedgerEntry


@dataclass
class WithdrawalReceipt:
    """Result returned to the caller of a withdrawal request."""

    withdrawal: Withdrawal
    wallet_balance_after: Decimal
    transfer_id: str | None
    transfer_status: str | None
    bank_account_masked: str
    outcome_unknown: bool = False


@dataclass
class TransferOutcome:
    """
    Provider-neutral terminal transfer result.

    Built from a webhook payload or from a poller verification.
    """

    ok: bool
    reference: str | None
    transfer_id: str | None = None
    failure_reason: str | None = None
    provider: str = "flutterwave"
    type: str = "transfer"
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class FinalizationResult:
    withdrawal_id: str
    status: str
    already_processed: bool = False
    credited_back: Decimal | None = None


@dataclass
class PollSummary:
    total_found: int = 0
    total_processed: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    audit: dict[str, list[dict[str, Any]]] = field(
        default_factory=lambda: {"processed": [], "failed": [], "skipped": []}
    )

    def record(self, bucket: str, **item: Any) -> None:
        self.audit[bucket].append(item)
        if bucket == "processed":
            self.total_processed += 1
        elif bucket == "failed":
            self.total_failed += 1
        else:
            self.total_skipped += 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AdjustmentResult:
    wallet_id: str
    owner_type: str
    owner_id: str | None
    balance_before: Decimal
    balance_after: Decimal
    adjustment_amount: Decimal


@dataclass
class FundingResult:
    owner_entry: LedgerEntry
    platform_entry: LedgerEntry | None
    wallet_balance: Decimal
    platform_balance: Decimal
    already_applied: bool = False


@dataclass
class RefundResult:
    owner_debited: Decimal
    platform_debited: Decimal
    owner_shortfall: Decimal
    platform_shortfall: Decimal
    wallet_balance: Decimal
    platform_balance: Decimal
    already_applied: bool = False


@dataclass
class WalletDetails:
    """Read model for a wallet page; ``wallet`` is None until first use."""

    wallet: Wallet | None
    ledger: list[LedgerEntry]
    bank_accounts: list[BankAccount]

    @property
    def balance(self) -> Decimal:
        return self.wallet.balance if self.wallet is not None else Decimal("0.00")


@dataclass
class Page:
    items: list[Any]
    total: int
    limit: int
    offset: int
