"""
Currency normalization into the base currency.

All balances are compared and summed in one base currency
(``settings.PAYMENTS_BASE_CURRENCY``). Native amounts are converted with the
most recent ExchangeRate effective at processing time, and the rate used is
returned so it can be stored on the ledger entry.

When no rate is known the normalizer either raises RateUnavailable or, if
the caller accepts it, applies a 1:1 rate that is flagged as a fallback in
the result and logged as a warning. A fallback is never reported as a real
1:1 rate.

Usage:
    from payments.services.currency import CurrencyNormalizer

    result = CurrencyNormalizer.normalize(Decimal("1000"), "EUR")
    result.base_amount      # Decimal("1085.00")
    result.exchange_rate    # Decimal("1.08500000")
    result.is_fallback_rate # False
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.utils import timezone

from core.services import BaseService
from payments.exceptions import InvalidPaymentData, RateUnavailable
from payments.models import ExchangeRate
from payments.types import ConversionResult

CENTS = Decimal("0.01")
RATE_PLACES = Decimal("0.00000001")
FALLBACK_RATE = Decimal("1")


def quantize_money(value: Decimal) -> Decimal:
    """Round an amount to 2 decimal places, half up."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def get_base_currency() -> str:
    return settings.PAYMENTS_BASE_CURRENCY.upper()


class CurrencyNormalizer(BaseService):
    """
    Stateless conversion of native amounts into the base currency.

    All methods are class methods; rates are read from ExchangeRate.
    """

    @classmethod
    def get_rate(cls, currency: str, as_of: datetime | None = None) -> ExchangeRate | None:
        """Latest rate for ``currency`` effective at ``as_of`` (default now)."""
        as_of = as_of or timezone.now()
        return (
            ExchangeRate.objects.filter(
                currency=currency.upper(),
                effective_at__lte=as_of,
            )
            .order_by("-effective_at", "-created_at")
            .first()
        )

    @classmethod
    def normalize(
        cls,
        amount: Decimal,
        currency: str,
        as_of: datetime | None = None,
        allow_fallback: bool | None = None,
    ) -> ConversionResult:
        """
        Convert a native amount into the base currency.

        Args:
            amount: Native amount (may be negative for debits)
            currency: ISO 4217 code of ``amount``
            as_of: Processing time used to pick the rate (default now)
            allow_fallback: Accept a flagged 1:1 rate when none is known.
                Defaults to ``settings.PAYMENTS_ALLOW_FALLBACK_RATE``.

        Returns:
            ConversionResult with base_amount quantized to 2 places

        Raises:
            InvalidPaymentData: If currency is not a 3-letter code
            RateUnavailable: If no rate exists and fallback is not allowed
        """
        if not currency or len(currency) != 3:
            raise InvalidPaymentData(
                f"Invalid currency code: {currency!r}",
                details={"currency": currency},
            )

        currency = currency.upper()
        base_currency = get_base_currency()
        amount = Decimal(amount)

        if currency == base_currency:
            return ConversionResult(
                base_amount=quantize_money(amount),
                exchange_rate=Decimal("1"),
                base_currency=base_currency,
            )

        rate = cls.get_rate(currency, as_of)
        if rate is not None:
            exchange_rate = rate.rate_to_base.quantize(RATE_PLACES)
            return ConversionResult(
                base_amount=quantize_money(amount * exchange_rate),
                exchange_rate=exchange_rate,
                base_currency=base_currency,
                rate_effective_at=rate.effective_at,
            )

        if allow_fallback is None:
            allow_fallback = settings.PAYMENTS_ALLOW_FALLBACK_RATE
        if not allow_fallback:
            raise RateUnavailable(currency, base_currency)

        cls.get_logger().warning(
            "No exchange rate configured, applying 1:1 fallback",
            extra={
                "currency": currency,
                "base_currency": base_currency,
                "amount": str(amount),
            },
        )
        return ConversionResult(
            base_amount=quantize_money(amount * FALLBACK_RATE),
            exchange_rate=FALLBACK_RATE,
            base_currency=base_currency,
            is_fallback_rate=True,
        )
