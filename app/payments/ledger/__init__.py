"""
Ledger - append-only record of every money movement against an order.

Public API:
    Models (payments.ledger.models):
        LedgerEntry - One immutable, signed movement with running balance

    Service (payments.ledger.services):
        ledger - Singleton instance of LedgerService
        LedgerService - append_entry, get_balance, get_entries_for_order,
            verify_balance_chain

    Types:
        AppendEntryParams - Parameters for appending entries

    Exceptions:
        LedgerError - Base exception for ledger operations
        OrderNotFound - Append for an unknown order

Usage:
    from payments.ledger import AppendEntryParams
    from payments.ledger.services import ledger

    entry = ledger.append_entry(AppendEntryParams(
        order_id=order.id,
        entry_type=LedgerEntryType.CREDIT_APPLIED,
        amount=Decimal("10.00"),
        currency="USD",
        idempotency_key=f"credit:{voucher.code}:{order.id}",
    ))

Note:
    Models and the service are not re-exported here: payments.models
    imports payments.ledger.models while the app registry is loading, and
    the service depends on payments.models.
"""

from .exceptions import LedgerError, OrderNotFound
from .types import AppendEntryParams

__all__ = [
    "AppendEntryParams",
    "LedgerError",
    "OrderNotFound",
]
