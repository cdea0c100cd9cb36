"""
Pytest fixtures for ledger tests.

Sections:
    - Order Fixtures: orders the ledger books against
    - Helpers: building entries through the service
"""

import uuid
from decimal import Decimal

import pytest

from orders.tests.factories import OrderFactory
from payments.ledger.services import ledger
from payments.ledger.types import AppendEntryParams
from payments.state_machines import LedgerEntryType


# ==========================================================================
# Order Fixtures
# ==========================================================================


@pytest.fixture
def order(db):
    """Unpaid order with total_due 100.00 USD."""
    return OrderFactory(total_due=Decimal("100.00"))


@pytest.fixture
def paid_order(db, order):
    """
    Order with one 100.00 USD customer payment booked.

    Balance is 100.00 and payment_status is paid.
    """
    ledger.append_entry(
        AppendEntryParams(
            order_id=order.id,
            entry_type=LedgerEntryType.CUSTOMER_PAYMENT,
            amount=Decimal("100.00"),
            currency="USD",
            idempotency_key=f"fund-{uuid.uuid4()}",
        )
    )
    order.refresh_from_db()
    return order


# ==========================================================================
# Helpers
# ==========================================================================


@pytest.fixture
def append():
    """
    Append an entry with sensible defaults.

    Usage:
        entry = append(order, LedgerEntryType.GATEWAY_FEE, "3.20")
    """

    def _append(order, entry_type, amount, currency="USD", key=None, **kwargs):
        return ledger.append_entry(
            AppendEntryParams(
                order_id=order.id,
                entry_type=entry_type,
                amount=Decimal(amount),
                currency=currency,
                idempotency_key=key or f"test-{uuid.uuid4()}",
                **kwargs,
            )
        )

    return _append


@pytest.fixture
def unique_idempotency_key():
    """Generate a unique idempotency key for testing."""
    return f"test-{uuid.uuid4()}"
