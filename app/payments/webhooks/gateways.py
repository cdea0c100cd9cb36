"""
Gateway payload parsing, one typed parser per gateway code.

Each gateway reports its processing fee in its own payload shape. Rather
than probing for fields ad hoc, every gateway code maps to a payload class
that knows where its gateway puts the fee and the net amount:

    stripe         balance_transaction.fee / .net, in minor units
    paypal         seller_receivable_breakdown.paypal_fee / .net_amount
    payu           additionalCharges / additional_charges, net_amount_debit
    bank_transfer  no fee
    manual         no fee

The payload itself stays opaque to the rest of the system; only the
extracted GatewayCharges are used downstream.

Usage:
    from payments.webhooks.gateways import extract_charges

    charges = extract_charges("paypal", payload, Decimal("100.00"), "USD")
    charges.fee_amount  # Decimal("3.20")
    charges.net_amount  # Decimal("96.80")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, ClassVar

from payments.exceptions import InvalidPaymentData
from payments.services.currency import quantize_money
from payments.state_machines import GatewayCode

logger = logging.getLogger(__name__)

# Currencies Stripe reports without a minor unit
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
        "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
    }
)


@dataclass(frozen=True)
class GatewayCharges:
    """Fee and net amount extracted from a gateway payload."""

    fee_amount: Decimal
    fee_currency: str
    net_amount: Decimal


def _to_decimal(value: Any) -> Decimal | None:
    """Parse a reported amount; None when absent, InvalidPaymentData when malformed."""
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidPaymentData(
            f"Gateway amount is not a number: {value!r}",
            details={"value": str(value)},
        ) from exc
    if not amount.is_finite():
        raise InvalidPaymentData(
            f"Gateway amount is not a finite number: {value!r}",
            details={"value": str(value)},
        )
    return amount


def from_minor_units(value: Any, currency: str) -> Decimal | None:
    """Convert a Stripe integer amount (cents, or whole units for zero-decimal currencies)."""
    minor = _to_decimal(value)
    if minor is None:
        return None
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return minor
    return minor / 100


# =============================================================================
# Payload Registry
# =============================================================================


# Maps gateway codes to payload classes
GATEWAY_PAYLOADS: dict[str, type[GatewayPayload]] = {}


def register_gateway(gateway_code: str) -> Callable:
    """
    Decorator to register the payload class for a gateway code.

    Usage:
        @register_gateway(GatewayCode.STRIPE)
        class StripePayload(GatewayPayload):
            ...
    """

    def decorator(cls: type[GatewayPayload]) -> type[GatewayPayload]:
        cls.gateway_code = gateway_code
        GATEWAY_PAYLOADS[gateway_code] = cls
        return cls

    return decorator


@dataclass(frozen=True)
class GatewayPayload:
    """
    Base class for gateway payloads.

    Subclasses implement ``fee`` and optionally ``net``; ``charges`` fills
    in the defaults (fee 0, net = amount - fee).
    """

    gateway_code: ClassVar[str] = ""

    raw: dict[str, Any] = field(default_factory=dict)

    def fee(self, currency: str) -> tuple[Decimal, str] | None:
        """(fee_amount, fee_currency), or None when the gateway reports no fee."""
        return None

    def net(self, currency: str) -> Decimal | None:
        return None

    def charges(self, amount: Decimal, currency: str) -> GatewayCharges:
        reported = self.fee(currency)
        fee_amount, fee_currency = reported if reported else (Decimal("0"), currency)
        fee_amount = quantize_money(fee_amount)
        if fee_amount < 0:
            raise InvalidPaymentData(
                f"{self.gateway_code} payload reports a negative fee",
                details={"fee_amount": str(fee_amount)},
            )
        if fee_currency.upper() == currency.upper() and fee_amount > amount:
            raise InvalidPaymentData(
                f"{self.gateway_code} payload reports a fee above the gross amount",
                details={"fee_amount": str(fee_amount), "amount": str(amount)},
            )

        net_amount = self.net(currency)
        if net_amount is None:
            net_amount = amount - fee_amount
        return GatewayCharges(
            fee_amount=fee_amount,
            fee_currency=fee_currency.upper(),
            net_amount=quantize_money(net_amount),
        )


# =============================================================================
# Gateway Payloads
# =============================================================================


@register_gateway(GatewayCode.STRIPE)
@dataclass(frozen=True)
class StripePayload(GatewayPayload):
    """
    Stripe PaymentIntent or Charge object.

    The balance transaction may sit on the object itself (Charge), on an
    expanded ``latest_charge`` or on ``charges.data[0]`` (older API
    versions). Amounts are integers in the currency's minor unit.
    """

    def _balance_transaction(self) -> dict[str, Any] | None:
        candidates = [self.raw]
        latest_charge = self.raw.get("latest_charge")
        if isinstance(latest_charge, dict):
            candidates.append(latest_charge)
        charges = (self.raw.get("charges") or {}).get("data") or []
        if charges and isinstance(charges[0], dict):
            candidates.append(charges[0])

        for candidate in candidates:
            balance_transaction = candidate.get("balance_transaction")
            if isinstance(balance_transaction, dict):
                return balance_transaction
        return None

    def _currency(self, balance_transaction: dict[str, Any], currency: str) -> str:
        return (balance_transaction.get("currency") or currency).upper()

    def fee(self, currency: str) -> tuple[Decimal, str] | None:
        balance_transaction = self._balance_transaction()
        if not balance_transaction:
            return None
        fee_currency = self._currency(balance_transaction, currency)
        fee = from_minor_units(balance_transaction.get("fee"), fee_currency)
        return (fee, fee_currency) if fee is not None else None

    def net(self, currency: str) -> Decimal | None:
        balance_transaction = self._balance_transaction()
        if not balance_transaction:
            return None
        return from_minor_units(
            balance_transaction.get("net"),
            self._currency(balance_transaction, currency),
        )


@register_gateway(GatewayCode.PAYPAL)
@dataclass(frozen=True)
class PayPalPayload(GatewayPayload):
    """
    PayPal capture resource (PAYMENT.CAPTURE.* events).

    Amounts are decimal strings in major units.
    """

    def _breakdown(self) -> dict[str, Any]:
        resource = self.raw.get("resource") if isinstance(self.raw.get("resource"), dict) else self.raw
        return resource.get("seller_receivable_breakdown") or {}

    def fee(self, currency: str) -> tuple[Decimal, str] | None:
        paypal_fee = self._breakdown().get("paypal_fee") or {}
        value = _to_decimal(paypal_fee.get("value"))
        if value is None:
            return None
        return value, (paypal_fee.get("currency_code") or currency)

    def net(self, currency: str) -> Decimal | None:
        net_amount = self._breakdown().get("net_amount") or {}
        return _to_decimal(net_amount.get("value"))


@register_gateway(GatewayCode.PAYU)
@dataclass(frozen=True)
class PayUPayload(GatewayPayload):
    """
    PayU server-to-server callback (txnid, mihpayid, amount, ...).

    Additional charges are reported in the payment currency.
    """

    def fee(self, currency: str) -> tuple[Decimal, str] | None:
        raw_fee = self.raw.get("additionalCharges", self.raw.get("additional_charges"))
        value = _to_decimal(raw_fee)
        return (value, currency) if value is not None else None

    def net(self, currency: str) -> Decimal | None:
        return _to_decimal(self.raw.get("net_amount_debit"))


@register_gateway(GatewayCode.BANK_TRANSFER)
@dataclass(frozen=True)
class BankTransferPayload(GatewayPayload):
    """Bank transfers carry no processing fee."""


@register_gateway(GatewayCode.MANUAL)
@dataclass(frozen=True)
class ManualPayload(GatewayPayload):
    """Manually confirmed payments carry no processing fee."""


# =============================================================================
# Entry Points
# =============================================================================


def parse_gateway_payload(gateway_code: str, raw: dict[str, Any] | None) -> GatewayPayload:
    """
    Wrap a raw payload in the payload class for its gateway.

    Raises:
        InvalidPaymentData: If the gateway code is unknown
    """
    payload_class = GATEWAY_PAYLOADS.get(gateway_code)
    if payload_class is None:
        raise InvalidPaymentData(
            f"Unsupported payment gateway: {gateway_code}",
            details={"payment_method": gateway_code},
        )
    return payload_class(raw=raw if isinstance(raw, dict) else {})


def extract_charges(
    gateway_code: str,
    raw: dict[str, Any] | None,
    amount: Decimal,
    currency: str,
) -> GatewayCharges:
    """Parse a payload and return its fee and net amount (fee defaults to 0)."""
    charges = parse_gateway_payload(gateway_code, raw).charges(amount, currency.upper())
    logger.debug(
        "Extracted gateway charges",
        extra={
            "payment_method": gateway_code,
            "fee_amount": str(charges.fee_amount),
            "net_amount": str(charges.net_amount),
        },
    )
    return charges
