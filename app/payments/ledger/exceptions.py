"""
Ledger-specific exceptions.

Exception Hierarchy:
    LedgerError (base, a PaymentError)
    └── OrderNotFound - Ledger append for an unknown order

Immutability violations raise payments.exceptions.LedgerImmutableError.
"""

from __future__ import annotations

from payments.exceptions import PaymentError


class LedgerError(PaymentError):
    """Base exception for all ledger operations."""

    default_error_code: str = "LEDGER_ERROR"


class OrderNotFound(LedgerError):
    """
    Raised when a ledger operation references an order that does not exist.

    Example:
        raise OrderNotFound(
            f"Order {order_id} not found",
            details={"order_id": str(order_id)},
        )
    """

    default_error_code: str = "ORDER_NOT_FOUND"
