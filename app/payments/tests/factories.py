"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import (
        ExchangeRateFactory,
        PaymentTransactionFactory,
        RefundFactory,
    )

    # Completed 100.00 USD Stripe payment for a new order
    tx = PaymentTransactionFactory()

    # Pending payment for an existing order
    tx = PaymentTransactionFactory(order=order, status=TransactionStatus.PENDING)
"""

from decimal import Decimal

import factory
from django.utils import timezone

from orders.tests.factories import OrderFactory
from payments.models import ExchangeRate, PaymentTransaction, Refund
from payments.state_machines import GatewayCode, RefundType, TransactionStatus


class ExchangeRateFactory(factory.django.DjangoModelFactory):
    """
    Factory for ExchangeRate rows.

    Example:
        ExchangeRateFactory(currency="EUR", rate_to_base=Decimal("1.085"))
    """

    class Meta:
        model = ExchangeRate
        skip_postgeneration_save = True

    currency = "EUR"
    rate_to_base = Decimal("1.08500000")
    effective_at = factory.LazyFunction(timezone.now)
    source = "test"


class PaymentTransactionFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating PaymentTransaction instances.

    Default creates a completed 100.00 USD Stripe attempt with no fee.
    """

    class Meta:
        model = PaymentTransaction
        skip_postgeneration_save = True

    order = factory.SubFactory(OrderFactory)
    gateway_transaction_id = factory.Sequence(lambda n: f"pi_test_{n:06d}")
    payment_method = GatewayCode.STRIPE
    amount = Decimal("100.00")
    currency = "USD"
    status = TransactionStatus.COMPLETED
    gateway_fee_amount = Decimal("0.00")
    gateway_fee_currency = "USD"
    net_amount = factory.LazyAttribute(lambda o: o.amount - o.gateway_fee_amount)
    gateway_response = factory.LazyFunction(dict)
    created_by = "system:test"


class RefundFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Refund instances in the REQUESTED state.

    State transitions go through the FSM methods, never the factory.
    """

    class Meta:
        model = Refund
        skip_postgeneration_save = True

    payment_transaction = factory.SubFactory(PaymentTransactionFactory)
    order = factory.LazyAttribute(lambda o: o.payment_transaction.order)
    gateway_refund_id = factory.Sequence(lambda n: f"re_test_{n:06d}")
    gateway_code = GatewayCode.STRIPE
    amount = Decimal("25.00")
    currency = "USD"
    refund_type = RefundType.PARTIAL
    created_by = "system:test"
