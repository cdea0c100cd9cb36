"""
ExchangeRate model: known conversion rates into the base currency.

Rates are append-only snapshots; the normalizer picks the latest one
effective at the time a payment is processed, and the rate actually used
is copied onto every ledger entry for audit.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ExchangeRate(UUIDPrimaryKeyMixin, BaseModel):
    """
    Conversion rate from one currency into the base currency.

    Fields:
        currency: ISO 4217 code being converted
        rate_to_base: Base-currency units per one unit of ``currency``
        effective_at: When the rate starts to apply
        source: Where the rate came from (provider name, "manual", ...)

    Example:
        ExchangeRate.objects.create(currency="EUR", rate_to_base=Decimal("1.0850"))
        # 1000 EUR -> 1085.00 USD
    """

    currency = models.CharField(max_length=3, help_text="ISO 4217 currency code")
    rate_to_base = models.DecimalField(
        max_digits=18,
        decimal_places=8,
        help_text="Base-currency units per one unit of this currency",
    )
    effective_at = models.DateTimeField(
        default=timezone.now,
        help_text="When this rate starts to apply",
    )
    source = models.CharField(max_length=64, blank=True, default="manual")

    class Meta:
        ordering = ["currency", "-effective_at"]
        verbose_name = "Exchange Rate"
        verbose_name_plural = "Exchange Rates"
        indexes = [
            models.Index(fields=["currency", "-effective_at"], name="payments_rate_currency_eff_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(rate_to_base__gt=0),
                name="exchange_rate_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"ExchangeRate({self.currency} x {self.rate_to_base} @ {self.effective_at:%Y-%m-%d})"

    def save(self, *args, **kwargs):
        self.currency = self.currency.upper()
        super().save(*args, **kwargs)
