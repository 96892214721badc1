"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    MetadataMixin: Flexible JSON metadata storage

Usage:
    from core.models import BaseModel
    from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin

    class Order(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
        amount_cents = models.PositiveBigIntegerField()

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Order and payment identifiers end up in gateway references, callback
    URLs and customer-facing receipts, so they must not be guessable.

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    """
    Flexible JSON metadata storage.

    Provides a JSONField for storing arbitrary key-value data, such as
    raw gateway payloads kept for support investigations.

    Fields:
        metadata: JSONField for arbitrary key-value data

    Usage:
        attempt.set_meta("callback", payload)
        attempt.get_meta("callback", default={})
    """

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible key-value metadata storage",
    )

    class Meta:
        abstract = True

    def get_meta(self, key: str, default: Any = None) -> Any:
        """Return a metadata value or the default."""
        return (self.metadata or {}).get(key, default)

    def set_meta(self, key: str, value: Any) -> None:
        """
        Set a metadata value in memory.

        The caller saves the instance; metadata updates usually ride along
        with a state transition save.
        """
        if self.metadata is None:
            self.metadata = {}
        self.metadata[key] = value
