"""
Abstract model mixins.

- UUIDPrimaryKeyMixin: random UUID primary key
- VersionedMixin: row version for optimistic concurrency

Usage:
    class Withdrawal(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
        ...
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F


class UUIDPrimaryKeyMixin(models.Model):
    """
    UUID primary key.

    Wallet, withdrawal and notification ids appear in emails, logs and
    Celery arguments, so they must not leak row counts.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Row version bumped in SQL on every update through ``save()``.

    Conditional ``QuerySet.update()`` calls (withdrawal finalization) bump
    it themselves with ``version=F("version") + 1``.
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on every update",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        updating = not self._state.adding and not kwargs.get("force_insert", False)
        if updating:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if updating:
            self.refresh_from_db(fields=["version"])
