"""
Ledger service layer: the only write path into LedgerEntry.

Entries for an order form a chain: each entry's balance_before is the
previous entry's balance_after, and balance_after = balance_before +
base_amount. Appends for the same order are serialized by locking the
order row, so concurrent webhooks cannot both read the same running
balance. Appends for different orders never wait on each other.

Usage:
    from payments.ledger.services import ledger
    from payments.ledger.types import AppendEntryParams

    entry = ledger.append_entry(AppendEntryParams(
        order_id=order.id,
        entry_type=LedgerEntryType.CUSTOMER_PAYMENT,
        amount=Decimal("100.00"),
        currency="USD",
        idempotency_key=f"customer_payment:{tx.id}:{order.id}",
    ))

    ledger.get_balance(order.id)  # Decimal("100.00")
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from django.db import IntegrityError, transaction

from orders.models import Order
from payments.services.currency import (
    RATE_PLACES,
    CurrencyNormalizer,
    get_base_currency,
    quantize_money,
)
from payments.services.status_projector import StatusProjector
from payments.types import ConversionResult

from .exceptions import OrderNotFound
from .models import CREDIT_ENTRY_TYPES, DEBIT_ENTRY_TYPES, LedgerEntry
from .types import AppendEntryParams

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Service class for ledger operations.

    Key features:
    - Per-order row lock around every append
    - Idempotency via unique keys (safe to retry)
    - Signs derived from the entry kind, never trusted from callers
    - Status projection re-run after every append

    There are no update or delete operations. Corrections are new
    adjustment entries. All methods are static.
    """

    @staticmethod
    def signed_amount(entry_type: str, amount: Decimal) -> Decimal:
        """
        Apply the sign of an entry kind to a magnitude.

        customer_payment / credit_applied are positive; refund,
        partial_refund and gateway_fee are negative; adjustment keeps the
        sign it was given.
        """
        if entry_type in CREDIT_ENTRY_TYPES:
            return abs(amount)
        if entry_type in DEBIT_ENTRY_TYPES:
            return -abs(amount)
        return amount

    @staticmethod
    def _convert(params: AppendEntryParams, amount: Decimal) -> ConversionResult:
        if params.base_amount is None:
            return CurrencyNormalizer.normalize(
                amount,
                params.currency,
                as_of=params.as_of,
                allow_fallback=params.allow_fallback_rate,
            )

        # Caller already converted; keep its figure and derive the rate
        base_amount = quantize_money(abs(params.base_amount))
        if amount < 0:
            base_amount = -base_amount
        rate = (abs(base_amount) / abs(amount)).quantize(RATE_PLACES)
        return ConversionResult(
            base_amount=base_amount,
            exchange_rate=rate,
            base_currency=get_base_currency(),
        )

    @staticmethod
    def find_by_idempotency_key(idempotency_key: str) -> LedgerEntry | None:
        return LedgerEntry.objects.filter(idempotency_key=idempotency_key).first()

    @staticmethod
    def append_entry(params: AppendEntryParams) -> LedgerEntry:
        """
        Append one entry to an order's ledger.

        Idempotent - an entry with the same idempotency_key is returned
        unchanged. Recomputes the order's derived payment status before
        returning, within the same transaction.

        Args:
            params: Entry parameters

        Returns:
            The created or existing LedgerEntry

        Raises:
            OrderNotFound: If the order doesn't exist
            RateUnavailable: If the currency has no rate and fallback is off
        """
        with transaction.atomic():
            # Lock the order row; this is the per-order append lock
            order = Order.objects.select_for_update().filter(id=params.order_id).first()
            if order is None:
                raise OrderNotFound(
                    f"Order {params.order_id} not found",
                    details={"order_id": str(params.order_id)},
                )

            # Check idempotency FIRST, before reading the running balance
            existing = LedgerService.find_by_idempotency_key(params.idempotency_key)
            if existing:
                logger.debug(
                    "Ledger entry already recorded",
                    extra={"idempotency_key": params.idempotency_key},
                )
                return existing

            amount = LedgerService.signed_amount(params.entry_type, params.amount)
            conversion = LedgerService._convert(params, amount)

            previous = (
                LedgerEntry.objects.filter(order=order).order_by("-sequence").first()
            )
            balance_before = previous.balance_after if previous else Decimal("0.00")
            sequence = previous.sequence + 1 if previous else 1

            try:
                with transaction.atomic():
                    entry = LedgerEntry.objects.create(
                        order=order,
                        payment_transaction_id=params.payment_transaction_id,
                        sequence=sequence,
                        entry_type=params.entry_type,
                        amount=quantize_money(amount),
                        currency=params.currency.upper(),
                        base_amount=conversion.base_amount,
                        base_currency=conversion.base_currency,
                        exchange_rate=conversion.exchange_rate,
                        is_fallback_rate=conversion.is_fallback_rate,
                        balance_before=balance_before,
                        balance_after=balance_before + conversion.base_amount,
                        reference_number=params.reference_number,
                        status=params.status,
                        notes=params.notes,
                        created_by=params.created_by,
                        gateway_response=params.gateway_response or {},
                        idempotency_key=params.idempotency_key,
                    )
            except IntegrityError:
                # Another process created an entry with the same key
                # between our check and create
                entry = LedgerService.find_by_idempotency_key(params.idempotency_key)
                if entry is None:
                    raise
                return entry

            logger.info(
                "Appended ledger entry",
                extra={
                    "order_id": str(order.id),
                    "entry_id": str(entry.id),
                    "entry_type": entry.entry_type,
                    "base_amount": str(entry.base_amount),
                    "balance_after": str(entry.balance_after),
                    "is_fallback_rate": entry.is_fallback_rate,
                },
            )

            StatusProjector.apply(order)

        return entry

    @staticmethod
    def get_balance(order_id: uuid.UUID) -> Decimal:
        """
        Current base-currency balance of an order.

        Returns the balance_after of the most recent entry, or 0 if the
        order has no entries.
        """
        latest = (
            LedgerEntry.objects.filter(order_id=order_id)
            .order_by("-sequence")
            .values_list("balance_after", flat=True)
            .first()
        )
        return latest if latest is not None else Decimal("0.00")

    @staticmethod
    def get_entries_for_order(order_id: uuid.UUID) -> list[LedgerEntry]:
        """All entries for an order, oldest first."""
        return list(LedgerEntry.objects.for_order(order_id))

    @staticmethod
    def verify_balance_chain(order_id: uuid.UUID) -> list[str]:
        """
        Fold an order's entries and report every break in the chain.

        Returns:
            Human-readable problems; empty when the chain is consistent.
        """
        problems: list[str] = []
        running = Decimal("0.00")
        expected_sequence = 1

        for entry in LedgerEntry.objects.for_order(order_id):
            if entry.sequence != expected_sequence:
                problems.append(
                    f"entry {entry.id}: sequence {entry.sequence}, expected {expected_sequence}"
                )
            if entry.balance_before != running:
                problems.append(
                    f"entry {entry.id}: balance_before {entry.balance_before}, expected {running}"
                )
            running = running + entry.base_amount
            if entry.balance_after != running:
                problems.append(
                    f"entry {entry.id}: balance_after {entry.balance_after}, expected {running}"
                )
            running = entry.balance_after
            expected_sequence = entry.sequence + 1

        return problems


# Singleton instance for convenience
# Usage: from payments.ledger.services import ledger
ledger = LedgerService()
