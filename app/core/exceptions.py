"""
Application error base classes.

Wallet errors (wallets.exceptions) subclass these so that Celery tasks,
admin actions and the API gateway can turn any of them into the same
``{"error", "error_code", "details"}`` payload.

Hierarchy:
    BaseApplicationError
    ├── ValidationError       bad input or a broken business rule
    ├── NotFoundError         a single expected resource is missing
    ├── PermissionDeniedError caller may not act on the resource
    ├── ConflictError         lock contention, lost races, FSM refusals
    ├── RateLimitError        a per-user quota is used up
    └── ExternalServiceError  a third-party call failed

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError(
        "Bank account not found or does not belong to you",
        error_code="BANK_ACCOUNT_NOT_FOUND",
        details={"bank_account_id": str(bank_account_id)},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Error with a human message, a stable code and structured context.

    Attributes:
        message: Text safe to show to the wallet owner
        error_code: Stable identifier (class default unless overridden)
        details: Amounts, identifiers or limits behind the error
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(BaseApplicationError):
    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """The operation lost against the current state of the resource (HTTP 409)."""

    default_error_code: str = "CONFLICT"


class RateLimitError(BaseApplicationError):
    default_error_code: str = "RATE_LIMIT_EXCEEDED"


class ExternalServiceError(BaseApplicationError):
    """
    A third-party call failed.

    Provider internals go to the logs, never into ``message``.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
