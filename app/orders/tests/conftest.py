"""
Pytest fixtures for order tests.
"""

import pytest

from orders.tests.factories import GuestCheckoutSessionFactory, OrderFactory, UserFactory


@pytest.fixture
def customer(db):
    """A registered customer."""
    return UserFactory()


@pytest.fixture
def order(db, customer):
    """Unpaid 100.00 USD order owned by a customer."""
    return OrderFactory(customer=customer)


@pytest.fixture
def guest_session(db):
    """Active guest checkout session for a fresh order."""
    return GuestCheckoutSessionFactory()
