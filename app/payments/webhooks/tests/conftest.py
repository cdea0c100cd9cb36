"""
Pytest fixtures for webhook tests.

Provides orders to pay, engine inputs with sensible defaults, gateway
payload samples and the shared webhook secret.
"""

import uuid
from decimal import Decimal

import pytest

from orders.tests.factories import GuestCheckoutSessionFactory, OrderFactory
from payments.state_machines import GatewayCode, WebhookOutcome
from payments.types import Actor
from payments.webhooks.reconciliation import PaymentWebhookInput


# =============================================================================
# Actor & Order Fixtures
# =============================================================================


@pytest.fixture
def system_actor():
    return Actor.system("webhook:test")


@pytest.fixture
def order(db):
    """Unpaid order with total_due 100.00 USD."""
    return OrderFactory(total_due=Decimal("100.00"))


@pytest.fixture
def second_order(db):
    """Unpaid order with total_due 50.00 USD."""
    return OrderFactory(total_due=Decimal("50.00"))


@pytest.fixture
def guest_session(db, order):
    """Active guest checkout session attached to ``order``."""
    return GuestCheckoutSessionFactory(
        order=order,
        guest_name="Ada Guest",
        guest_email="ada@example.com",
    )


# =============================================================================
# Input Builders
# =============================================================================


@pytest.fixture
def payment_input():
    """
    Build a PaymentWebhookInput; keyword arguments override the defaults.

    Usage:
        data = payment_input([order.id], amount="60.00")
    """

    def _build(order_ids, **overrides):
        defaults = {
            "order_ids": list(order_ids),
            "outcome": WebhookOutcome.SUCCESS,
            "gateway_transaction_id": f"pi_{uuid.uuid4().hex[:16]}",
            "amount": Decimal("100.00"),
            "currency": "USD",
            "payment_method": GatewayCode.STRIPE,
            "customer_email": "buyer@example.com",
        }
        defaults.update(overrides)
        return PaymentWebhookInput(**defaults)

    return _build


# =============================================================================
# Gateway Payloads
# =============================================================================


@pytest.fixture
def paypal_capture():
    """PayPal PAYMENT.CAPTURE.COMPLETED body: 100.00 gross, 3.20 fee."""
    return {
        "event_type": "PAYMENT.CAPTURE.COMPLETED",
        "resource": {
            "id": "5O190127TN364715T",
            "amount": {"value": "100.00", "currency_code": "USD"},
            "seller_receivable_breakdown": {
                "gross_amount": {"value": "100.00", "currency_code": "USD"},
                "paypal_fee": {"value": "3.20", "currency_code": "USD"},
                "net_amount": {"value": "96.80", "currency_code": "USD"},
            },
        },
    }


@pytest.fixture
def stripe_intent():
    """
    Stripe PaymentIntent with an expanded latest_charge.

    10000 cents gross, 320 cents fee.
    """
    return {
        "id": "pi_test_stripe_1",
        "object": "payment_intent",
        "amount": 10000,
        "amount_received": 10000,
        "currency": "usd",
        "receipt_email": "buyer@example.com",
        "metadata": {},
        "latest_charge": {
            "id": "ch_test_1",
            "billing_details": {"name": "Buyer One", "email": "buyer@example.com", "phone": None},
            "balance_transaction": {
                "id": "txn_test_1",
                "fee": 320,
                "net": 9680,
                "currency": "usd",
            },
        },
    }


# =============================================================================
# Secret
# =============================================================================


@pytest.fixture
def webhook_secret(settings):
    settings.PAYMENTS_WEBHOOK_SECRET = "whsec_shared_test"
    return settings.PAYMENTS_WEBHOOK_SECRET
