"""
Pytest fixtures for payment service tests.

Sections:
    - Actors: system and human principals
    - Orders & Transactions: objects in the states the services expect
"""

from decimal import Decimal

import pytest

from orders.tests.factories import OrderFactory, StaffUserFactory, UserFactory
from payments.state_machines import TransactionStatus
from payments.tests.factories import PaymentTransactionFactory
from payments.types import Actor


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def system_actor():
    """Actor used by automated gateway callers."""
    return Actor.system("webhook:test")


@pytest.fixture
def staff_user(db):
    return StaffUserFactory()


@pytest.fixture
def staff_actor(staff_user):
    """Back-office staff member allowed to record manual entries."""
    return Actor.from_user(staff_user)


@pytest.fixture
def customer_actor(db):
    """Regular authenticated user without ledger permissions."""
    return Actor.from_user(UserFactory())


# =============================================================================
# Orders & Transactions
# =============================================================================


@pytest.fixture
def order(db):
    """Unpaid order with total_due 100.00 USD."""
    return OrderFactory(total_due=Decimal("100.00"))


@pytest.fixture
def completed_transaction(db, order):
    """Completed 100.00 USD payment for ``order``."""
    return PaymentTransactionFactory(order=order)


@pytest.fixture
def small_transaction(db):
    """Completed 50.00 USD payment used for refund ceiling checks."""
    return PaymentTransactionFactory(
        order=OrderFactory(total_due=Decimal("50.00")),
        amount=Decimal("50.00"),
    )


@pytest.fixture
def pending_transaction(db, order):
    return PaymentTransactionFactory(order=order, status=TransactionStatus.PENDING)
