"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    AppendOnlyMixin: Reject updates and deletes once a row is persisted

Usage:
    from core.models import BaseModel
    from core.model_mixins import AppendOnlyMixin, UUIDPrimaryKeyMixin

    class AuditRecord(UUIDPrimaryKeyMixin, AppendOnlyMixin, BaseModel):
        payload = models.JSONField(default=dict)

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

    Payment identifiers end up in gateway metadata and webhook payloads,
    so they should not reveal record counts or ordering.

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


class AppendOnlyMixin(models.Model):
    """
    Make a model insert-only.

    Subclasses set ``immutable_error`` to the exception class raised when
    code tries to save an existing row or delete one. Corrections are
    modelled as new rows.
    """

    immutable_error: type[Exception] = RuntimeError

    class Meta:
        abstract = True

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise self.immutable_error(
                f"{self.__class__.__name__} rows cannot be modified after creation"
            )
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any):
        raise self.immutable_error(
            f"{self.__class__.__name__} rows cannot be deleted"
        )
