"""
Service layer building blocks.

- ServiceResult: outcome of an operation whose "failure" is an expected
  business answer (duplicate webhook, unknown reference, already
  finalized withdrawal) rather than an error
- BaseService: per-class logger for wallet services

Rejected requests and unexpected failures are raised as exceptions
(see core.exceptions); ServiceResult is only for answers the caller is
expected to branch on.

Usage:
    from core.services import BaseService, ServiceResult

    class TransferWebhookHandler(BaseService):
        def handle(self, outcome) -> ServiceResult[FinalizationResult]:
            if not outcome.reference and not outcome.transfer_id:
                return ServiceResult.failure(
                    "Transfer reference is missing",
                    error_code="MISSING_REFERENCE",
                )
            ...
            return ServiceResult.success(result)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Success flag plus either ``data`` or ``error``/``error_code``.

    Celery tasks copy ``error_code`` into their status dicts and the
    poller copies it into its audit trail.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code)

    def to_response(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error, "error_code": self.error_code}

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for wallet services.

    Collaborators are passed to ``__init__``; subclasses add a
    ``default()`` classmethod that wires the production ones from
    settings.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named ``<module>.<ClassName>`` so one service can be filtered."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
