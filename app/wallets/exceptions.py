"""
Wallet-specific exceptions.

Exception Hierarchy:
    WalletError (base for wallet domain)
    ├── InsufficientBalanceError - Balance check failed (no ledger write)
    ├── LedgerImmutableError - Attempt to modify or delete a ledger entry
    └── NotificationError - Outbox delivery failure (worker only)

    WalletValidationError - Bad amount, reason, owner type or fee mode
        (inherits ValidationError)
    WalletAuthorizationError - View/withdraw denied (inherits PermissionDeniedError)
    WithdrawalLimitError - Daily withdrawal limit hit (inherits RateLimitError)
    BankAccountNotFoundError - Bank account resolution failed (inherits NotFoundError)
    WithdrawalNotFoundError - Withdrawal lookup failed (inherits NotFoundError)
    WalletNotFoundError - Refund source wallet missing (inherits NotFoundError)

    ProviderError - Payout rail failure (inherits ExternalServiceError)
    ├── ProviderTimeoutError - No response; the transfer may exist (outcome unknown)
    ├── ProviderUnavailableError - Gateway/5xx; the transfer may exist (outcome unknown)
    ├── ProviderRejectedError - Provider refused the transfer (definite failure)
    └── WithdrawalRollbackError - Compensating credit failed; needs an operator

    LockAcquisitionError - Distributed lock unavailable (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from wallets.exceptions import InsufficientBalanceError, ProviderError

    try:
        receipt = orchestrator.execute(...)
    except ProviderError as e:
        if e.outcome_unknown:
            ...  # poller resolves it
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)

if TYPE_CHECKING:
    from decimal import Decimal
    from typing import Any


# =============================================================================
# Wallet Domain Exceptions
# =============================================================================


class WalletError(BaseApplicationError):
    """
    Base exception for wallet operations that are not covered by a more
    specific core category.
    """

    default_error_code: str = "WALLET_ERROR"


class InsufficientBalanceError(WalletError):
    """
    Raised when a wallet cannot cover a debit.

    Raised before any ledger write, and also when the atomic conditional
    debit loses a race against a concurrent debit.

    Attributes:
        wallet_id: The wallet that was checked (None if it does not exist)
        required: Amount that was required
        available: Balance that was available
    """

    default_error_code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        wallet_id,
        required: Decimal,
        available: Decimal,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.wallet_id = wallet_id
        self.required = required
        self.available = available

        full_details = {
            "wallet_id": str(wallet_id) if wallet_id else None,
            "required": str(required),
            "available": str(available),
        }
        if details:
            full_details.update(details)

        super().__init__(
            message or "Insufficient wallet balance",
            details=full_details,
        )


class LedgerImmutableError(WalletError):
    """
    Raised when code tries to update or delete a ledger entry.

    Corrections are made with a new ADJUSTMENT entry instead.
    """

    default_error_code: str = "LEDGER_IMMUTABLE"


class NotificationError(WalletError):
    """
    Raised inside the outbox worker when an email cannot be delivered.

    Never propagates into money-moving code.
    """

    default_error_code: str = "NOTIFICATION_ERROR"


class WalletValidationError(ValidationError):
    """Raised for invalid amounts, reasons, owner types or fee modes."""

    default_error_code: str = "WALLET_VALIDATION_ERROR"


class WalletAuthorizationError(PermissionDeniedError):
    """
    Raised when the authorization service denies a view or withdrawal.

    The message is the decision's reason string.
    """

    default_error_code: str = "WALLET_ACCESS_DENIED"


class WithdrawalLimitError(RateLimitError):
    """Raised when a requester has used up today's withdrawals."""

    default_error_code: str = "WITHDRAWAL_LIMIT_REACHED"


class BankAccountNotFoundError(NotFoundError):
    default_error_code: str = "BANK_ACCOUNT_NOT_FOUND"


class WithdrawalNotFoundError(NotFoundError):
    default_error_code: str = "WITHDRAWAL_NOT_FOUND"


class WalletNotFoundError(NotFoundError):
    default_error_code: str = "WALLET_NOT_FOUND"


# =============================================================================
# Payout Provider Exceptions
# =============================================================================


class ProviderError(ExternalServiceError):
    """
    Base exception for payout provider failures.

    Attributes:
        provider_code: Provider's own status or error code, if any
        outcome_unknown: True when the request may have been executed by the
            provider even though we did not observe a success
        is_retryable: Whether repeating the call is safe
    """

    default_error_code: str = "PROVIDER_ERROR"
    outcome_unknown: bool = False
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider_code = provider_code


class ProviderRejectedError(ProviderError):
    """
    Provider answered and refused the transfer.

    Definite failure: the money never left, so the debit is rolled back.
    """

    default_error_code: str = "PROVIDER_REJECTED"


class ProviderTimeoutError(ProviderError):
    """
    No response within FLUTTERWAVE_API_TIMEOUT_SECONDS.

    IMPORTANT: the transfer may have been created. Never roll back on this
    error; record the withdrawal as UNKNOWN and let the poller look it up
    by reference.
    """

    default_error_code: str = "PROVIDER_TIMEOUT"
    outcome_unknown: bool = True
    is_retryable: bool = True


class ProviderUnavailableError(ProviderError):
    """
    Provider returned a 5xx or the connection dropped mid-request.

    Treated like a timeout: the outcome is unknown.
    """

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    outcome_unknown: bool = True
    is_retryable: bool = True


class WithdrawalRollbackError(ProviderError):
    """
    The transfer failed AND the compensating credit could not be written.

    The wallet is short by the withdrawal amount until an operator fixes
    it. Logged at CRITICAL and raised to the caller.
    """

    default_error_code: str = "WITHDRAWAL_ROLLBACK_FAILED"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Example:
        lock = DistributedLock("withdrawal:user:42", ttl=60, timeout=10)
        if not lock.acquire():
            raise LockAcquisitionError(
                "Failed to acquire lock 'withdrawal:user:42' within 10s",
                details={"key": "withdrawal:user:42", "timeout": 10}
            )
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a withdrawal status transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed with our standard error format.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"
