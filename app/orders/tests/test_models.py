"""
Tests for order models.
"""

from decimal import Decimal

import pytest
from django.db import IntegrityError

from orders.models import GuestSessionStatus
from orders.tests.factories import GuestCheckoutSessionFactory, OrderFactory
from payments.state_machines import PaymentStatus


class TestOrder:
    def test_defaults_to_unpaid(self, db):
        order = OrderFactory()

        assert order.payment_status == PaymentStatus.UNPAID
        assert order.amount_paid == Decimal("0.00")
        assert order.overpayment_amount == Decimal("0.00")

    def test_str_includes_number_and_status(self, db):
        order = OrderFactory(order_number="ORD-42")

        assert str(order) == "Order(ORD-42, unpaid)"

    def test_negative_total_due_rejected(self, db):
        with pytest.raises(IntegrityError):
            OrderFactory(total_due=Decimal("-1.00"))


class TestGuestCheckoutSession:
    def test_is_active(self, db):
        assert GuestCheckoutSessionFactory().is_active is True
        assert GuestCheckoutSessionFactory(status=GuestSessionStatus.EXPIRED).is_active is False
