"""
Flutterwave v3 API adapter for payout operations.

This module provides the FlutterwaveAdapter class which encapsulates all
Flutterwave API interactions used by wallets. All payout calls should go
through this adapter to ensure consistent error handling, timeouts and
observability.

Features:
- Explicit timeout on every request
- Translation of transport and API errors to domain exceptions, with an
  ``outcome_unknown`` flag on errors where the transfer may exist
- Structured logging with timing metrics

Configuration (via settings):
- FLUTTERWAVE_SECRET_KEY: API secret key (Bearer token)
- FLUTTERWAVE_WEBHOOK_SECRET_HASH: Secret hash configured on the dashboard
- FLUTTERWAVE_API_BASE_URL: Default https://api.flutterwave.com/v3
- FLUTTERWAVE_API_TIMEOUT_SECONDS: Request timeout (default: 10)

Usage:
    from wallets.adapters import CreateTransferParams, FlutterwaveAdapter

    adapter = FlutterwaveAdapter.default()
    result = adapter.create_transfer(
        CreateTransferParams(
            amount=Decimal("95000.00"),
            bank_code="044",
            account_number="0690000031",
            account_name="Ada Obi",
            reference="wd_1718000000000_EVENT_evt-1_k3j9x2",
            narration="Jaaiye EVENT wallet withdrawal",
        )
    )
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import requests
from django.conf import settings

from wallets.exceptions import (
    ProviderRejectedError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)

# Flutterwave transfer statuses
TRANSFER_SUCCESSFUL = "SUCCESSFUL"
TRANSFER_FAILED = "FAILED"
IN_FLIGHT_STATUSES = frozenset({"PENDING", "NEW"})


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreateTransferParams:
    """
    Parameters for creating a Flutterwave bank transfer.

    Attributes:
        amount: Amount to send (payout amount, after fees)
        bank_code: Flutterwave bank code (e.g., '044')
        account_number: Destination account number
        account_name: Beneficiary name
        reference: Unique reference; Flutterwave rejects reuse
        narration: Transfer narration shown to the recipient
        currency: ISO 4217 currency code (default: 'NGN')
    """

    amount: Decimal
    bank_code: str
    account_number: str
    account_name: str
    reference: str
    narration: str
    currency: str = "NGN"

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.reference:
            raise ValueError("reference is required")
        if not self.bank_code or not self.account_number:
            raise ValueError("bank_code and account_number are required")


@dataclass
class TransferResult:
    """
    Result from the create transfer call.

    Attributes:
        id: Flutterwave transfer id
        reference: Our reference echoed back
        status: Provider status (usually NEW)
        full_name / account_number / bank_name: Beneficiary as resolved
        raw_response: Full ``data`` object
    """

    id: str
    reference: str
    status: str
    full_name: str | None = None
    account_number: str | None = None
    bank_name: str | None = None
    created_at: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferStatus:
    """
    Current state of a transfer as reported by Flutterwave.

    status is one of SUCCESSFUL, FAILED, PENDING, NEW.
    """

    id: str
    reference: str | None
    status: str
    amount: Decimal | None = None
    fee: Decimal | None = None
    currency: str | None = None
    narration: str | None = None
    complete_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status == TRANSFER_SUCCESSFUL

    @property
    def is_terminal(self) -> bool:
        return self.status in (TRANSFER_SUCCESSFUL, TRANSFER_FAILED)

    @property
    def in_flight(self) -> bool:
        return self.status in IN_FLIGHT_STATUSES

    @property
    def failure_reason(self) -> str:
        return self.complete_message or self.narration or "Transfer failed"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> TransferStatus:
        return cls(
            id=str(data.get("id")),
            reference=data.get("reference"),
            status=str(data.get("status") or "").upper(),
            amount=_decimal_or_none(data.get("amount")),
            fee=_decimal_or_none(data.get("fee")),
            currency=data.get("currency"),
            narration=data.get("narration"),
            complete_message=data.get("complete_message"),
            raw_response=data,
        )


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


# =============================================================================
# Adapter
# =============================================================================


class FlutterwaveAdapter:
    """
    Adapter for Flutterwave v3 transfer operations.

    Holds one requests.Session per instance. Build it with ``default()``
    in production; tests pass their own session or stub the adapter.

    Usage:
        adapter = FlutterwaveAdapter.default()
        status = adapter.verify_transfer("408221")
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.flutterwave.com/v3",
        timeout: float = 10,
        webhook_secret_hash: str = "",
        session: requests.Session | None = None,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.webhook_secret_hash = webhook_secret_hash
        self.session = session or requests.Session()

    @classmethod
    def default(cls) -> FlutterwaveAdapter:
        return cls(
            secret_key=settings.FLUTTERWAVE_SECRET_KEY,
            base_url=settings.FLUTTERWAVE_API_BASE_URL,
            timeout=settings.FLUTTERWAVE_API_TIMEOUT_SECONDS,
            webhook_secret_hash=settings.FLUTTERWAVE_WEBHOOK_SECRET_HASH,
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Transfers
    # =========================================================================

    def create_transfer(self, params: CreateTransferParams) -> TransferResult:
        """
        Create a bank transfer.

        Returns:
            TransferResult with the provider transfer id

        Raises:
            ProviderRejectedError: Flutterwave refused the transfer
            ProviderTimeoutError: No response in time (transfer may exist)
            ProviderUnavailableError: 5xx or dropped connection (transfer may exist)
        """
        payload = {
            "account_bank": params.bank_code,
            "account_number": params.account_number,
            "amount": float(params.amount),
            "narration": params.narration,
            "currency": params.currency,
            "reference": params.reference,
            "beneficiary_name": params.account_name,
        }
        data = self._request(
            "POST",
            "/transfers",
            operation="create_transfer",
            log_context={"reference": params.reference, "amount": str(params.amount)},
            json=payload,
        )
        return TransferResult(
            id=str(data.get("id")),
            reference=data.get("reference") or params.reference,
            status=str(data.get("status") or "NEW").upper(),
            full_name=data.get("full_name"),
            account_number=data.get("account_number"),
            bank_name=data.get("bank_name"),
            created_at=data.get("created_at"),
            raw_response=data,
        )

    def verify_transfer(self, transfer_id: str) -> TransferStatus | None:
        """
        Fetch a transfer by provider id.

        Returns:
            TransferStatus, or None if Flutterwave has no such transfer

        Raises:
            ProviderError: If the lookup itself failed
        """
        try:
            data = self._request(
                "GET",
                f"/transfers/{transfer_id}",
                operation="verify_transfer",
                log_context={"transfer_id": str(transfer_id)},
            )
        except ProviderRejectedError as e:
            if e.details.get("http_status") == 404:
                return None
            raise
        if not data:
            return None
        return TransferStatus.from_api(data)

    def find_transfer_by_reference(self, reference: str) -> TransferStatus | None:
        """
        Look a transfer up by our reference.

        Used after a timed-out create call to learn whether the transfer
        exists. None means Flutterwave answered and has no transfer with
        this reference; lookup failures raise instead.

        Raises:
            ProviderError: If the lookup itself failed
        """
        data = self._request(
            "GET",
            "/transfers",
            operation="find_transfer_by_reference",
            log_context={"reference": reference},
            params={"reference": reference},
        )
        transfers = data if isinstance(data, list) else []
        for item in transfers:
            if isinstance(item, dict) and item.get("reference") == reference:
                return TransferStatus.from_api(item)
        return None

    # =========================================================================
    # Banks
    # =========================================================================

    def list_banks(self, country: str = "NG") -> list[dict[str, str]]:
        """Banks supported for transfers in a country, as ``{code, name}``."""
        data = self._request(
            "GET",
            f"/banks/{country}",
            operation="list_banks",
            log_context={"country": country},
        )
        return [
            {"code": str(bank.get("code")), "name": bank.get("name")}
            for bank in (data or [])
            if isinstance(bank, dict)
        ]

    def resolve_bank_account(self, account_number: str, bank_code: str) -> dict[str, str]:
        """
        Resolve the account holder's name.

        Returns:
            Dict with account_number, bank_code and account_name

        Raises:
            ProviderRejectedError: If the account could not be resolved
        """
        data = self._request(
            "POST",
            "/accounts/resolve",
            operation="resolve_bank_account",
            log_context={"bank_code": bank_code},
            json={"account_number": account_number, "account_bank": bank_code},
        )
        return {
            "account_number": data.get("account_number") or account_number,
            "bank_code": bank_code,
            "account_name": data.get("account_name"),
        }

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(self, headers, body: bytes) -> bool:
        """
        Check that a webhook came from Flutterwave.

        Accepts either the ``verif-hash`` header (the dashboard secret hash,
        sent verbatim) or ``flutterwave-signature`` (hex HMAC-SHA256 of the
        raw body keyed with the same secret).

        With no secret configured, webhooks are only accepted when DEBUG is on.
        """
        logger = self.get_logger()
        secret = self.webhook_secret_hash
        if not secret:
            logger.warning("Flutterwave webhook secret hash is not configured")
            return bool(settings.DEBUG)

        verif_hash = headers.get("verif-hash")
        if verif_hash:
            return hmac.compare_digest(verif_hash, secret)

        signature = headers.get("flutterwave-signature")
        if signature:
            expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
            return hmac.compare_digest(signature, expected)

        return False

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        log_context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Send a request and return the ``data`` field of a success response."""
        logger = self.get_logger()
        log_context = {"operation": operation, **(log_context or {})}

        start_time = time.time()
        logger.info("Starting Flutterwave operation", extra=log_context)

        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers={
                    "Authorization": f"Bearer {self.secret_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.Timeout as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "Flutterwave request timed out",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise ProviderTimeoutError(
                "Flutterwave did not respond in time",
                provider_code="timeout",
                details={"operation": operation},
            ) from e
        except requests.exceptions.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "Connection error to Flutterwave",
                extra={**log_context, "duration_ms": duration_ms},
                exc_info=True,
            )
            raise ProviderUnavailableError(
                "Could not connect to Flutterwave",
                provider_code="connection_error",
                details={"operation": operation},
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        log_context = {
            **log_context,
            "http_status": response.status_code,
            "duration_ms": duration_ms,
        }

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or response.reason or "Flutterwave request failed"

        if response.status_code >= 500:
            logger.error("Flutterwave server error", extra=log_context)
            raise ProviderUnavailableError(
                f"Flutterwave service error: {message}",
                provider_code=str(response.status_code),
                details={"operation": operation, "http_status": response.status_code},
            )

        if response.status_code in (401, 403):
            logger.critical(
                "Flutterwave authentication failed - check secret key",
                extra=log_context,
            )

        if response.status_code >= 400 or body.get("status") != "success":
            logger.warning(
                f"Flutterwave rejected request: {message}",
                extra=log_context,
            )
            raise ProviderRejectedError(
                message,
                provider_code=str(body.get("status") or response.status_code),
                details={"operation": operation, "http_status": response.status_code},
            )

        logger.info("Flutterwave operation completed", extra=log_context)
        return body.get("data")


__all__ = [
    "CreateTransferParams",
    "FlutterwaveAdapter",
    "TransferResult",
    "TransferStatus",
]
