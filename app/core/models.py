"""
Abstract base model for wallet tables.

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Wallet(UUIDPrimaryKeyMixin, BaseModel):
        balance = models.DecimalField(max_digits=18, decimal_places=2)

Mixins go before BaseModel in the bases list.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """Adds ``created_at`` / ``updated_at``; newest rows first by default."""

    # Indexed: the poller and the daily limit filter on it
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the row was written",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the row last changed",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]
