"""
Tests for the order-side collaborators used by reconciliation.
"""

import uuid
from decimal import Decimal
from unittest.mock import patch

from orders.models import FulfillmentOrder, GuestSessionStatus, Order
from orders.services import FulfillmentService, GuestCheckoutService, OrderService
from orders.tests.factories import GuestCheckoutSessionFactory, OrderFactory
from payments.tests.factories import PaymentTransactionFactory


class TestOrderService:
    def test_get_total_due(self, order):
        assert OrderService.get_total_due(order.id) == Decimal("100.00")

    def test_get_orders_keeps_caller_order(self, db):
        first = OrderFactory()
        second = OrderFactory()

        orders = OrderService.get_orders([second.id, first.id])

        assert [o.id for o in orders] == [second.id, first.id]

    def test_get_orders_skips_missing_ids(self, order):
        orders = OrderService.get_orders([order.id, uuid.uuid4()])

        assert orders == [order]


class TestCompleteSession:
    """Tests for GuestCheckoutService.complete_session()."""

    def test_promotes_guest_details_onto_order(self, guest_session):
        session = GuestCheckoutService.complete_session(guest_session.session_token)

        assert session.status == GuestSessionStatus.COMPLETED
        order = session.order
        order.refresh_from_db()
        assert order.customer_email == guest_session.guest_email
        assert order.customer_name == "Guest Buyer"
        assert order.shipping_address["city"] == "Springfield"
        assert order.is_guest is True

    def test_gateway_data_overrides_session_details(self, guest_session):
        GuestCheckoutService.complete_session(
            guest_session.session_token,
            {"guest_email": "payer@example.com"},
        )

        guest_session.order.refresh_from_db()
        assert guest_session.order.customer_email == "payer@example.com"
        assert guest_session.order.customer_name == "Guest Buyer"

    def test_completed_session_is_not_touched_again(self, db):
        session = GuestCheckoutSessionFactory(status=GuestSessionStatus.COMPLETED)

        assert GuestCheckoutService.complete_session(session.session_token) is None

    def test_unknown_token_returns_none(self, db):
        assert GuestCheckoutService.complete_session("no-such-token") is None


class TestExpireSession:
    def test_expires_active_session(self, guest_session):
        session = GuestCheckoutService.expire_session(guest_session.session_token)

        assert session.status == GuestSessionStatus.EXPIRED
        guest_session.order.refresh_from_db()
        assert guest_session.order.customer_email == ""

    def test_expired_session_is_a_noop(self, db):
        session = GuestCheckoutSessionFactory(status=GuestSessionStatus.EXPIRED)

        assert GuestCheckoutService.expire_session(session.session_token) is None


class TestCreateForTransaction:
    """Tests for FulfillmentService.create_for_transaction()."""

    def test_creates_fulfillment_order(self, order):
        tx = PaymentTransactionFactory(order=order, customer_email="buyer@example.com")

        fulfillment, created = FulfillmentService.create_for_transaction(tx, [order])

        assert created is True
        assert fulfillment.payment_transaction == tx
        assert fulfillment.total_amount == tx.amount
        assert fulfillment.customer == order.customer
        assert fulfillment.customer_email == "buyer@example.com"
        assert list(fulfillment.orders.all()) == [order]
        assert fulfillment.order_number.startswith("ORD-")

    def test_second_call_returns_existing(self, order):
        tx = PaymentTransactionFactory(order=order)

        first, _ = FulfillmentService.create_for_transaction(tx, [order])
        second, created = FulfillmentService.create_for_transaction(tx, [order])

        assert created is False
        assert second.id == first.id
        assert FulfillmentOrder.objects.filter(payment_transaction=tx).count() == 1

    def test_concurrent_insert_returns_winner(self, order):
        tx = PaymentTransactionFactory(order=order)
        winner, _ = FulfillmentService.create_for_transaction(tx, [order])

        # A second delivery missed the row before the first one committed
        with patch.object(FulfillmentService, "find_for_transaction", return_value=None):
            fulfillment, created = FulfillmentService.create_for_transaction(tx, [order])

        assert created is False
        assert fulfillment.id == winner.id
        assert FulfillmentOrder.objects.filter(payment_transaction=tx).count() == 1

    def test_customer_detached_by_guest_checkout_is_not_copied(self, order):
        # Loaded before the guest session completes, as the engine does
        loaded = Order.objects.get(id=order.id)
        assert loaded.customer is not None
        session = GuestCheckoutSessionFactory(order=order)
        GuestCheckoutService.complete_session(session.session_token)
        tx = PaymentTransactionFactory(order=order)

        fulfillment, _ = FulfillmentService.create_for_transaction(tx, [loaded])

        assert fulfillment.customer is None
