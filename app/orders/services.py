"""
Order-side collaborator services used by payment reconciliation.

The payments app never edits order pricing; it only asks for the amount
due, moves guest checkout sessions along and creates the downstream
fulfillment order once a payment succeeds. Every call here is expected to
run inside the caller's transaction.

Usage:
    from orders.services import FulfillmentService, GuestCheckoutService

    session = GuestCheckoutService.complete_session(token, order)
    fulfillment, created = FulfillmentService.create_for_transaction(
        transaction, orders=[order]
    )
"""

from __future__ import annotations

import time
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.helpers import generate_token, hash_string
from core.services import BaseService
from orders.models import (
    FulfillmentOrder,
    FulfillmentStatus,
    GuestCheckoutSession,
    GuestSessionStatus,
    Order,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence

    from payments.models import PaymentTransaction


class OrderService(BaseService):
    """Read-side access to orders for the payment core."""

    @staticmethod
    def get_total_due(order_id: uuid.UUID) -> Decimal:
        """Return the amount currently due for an order."""
        return Order.objects.values_list("total_due", flat=True).get(id=order_id)

    @staticmethod
    def get_orders(order_ids: Sequence[uuid.UUID]) -> list[Order]:
        """
        Fetch orders keeping the caller's order; missing ids are skipped.

        The caller decides whether a missing order is an error.
        """
        by_id = {o.id: o for o in Order.objects.filter(id__in=order_ids)}
        return [by_id[oid] for oid in order_ids if oid in by_id]


class GuestCheckoutService(BaseService):
    """
    Transitions guest checkout sessions when their payment resolves.

    Only active sessions are touched; a replayed notification for a session
    that already completed or expired is a no-op.
    """

    @classmethod
    def _lock_active(cls, session_token: str) -> GuestCheckoutSession | None:
        return (
            GuestCheckoutSession.objects.select_for_update()
            .select_related("order")
            .filter(session_token=session_token, status=GuestSessionStatus.ACTIVE)
            .first()
        )

    @classmethod
    def complete_session(
        cls,
        session_token: str,
        guest_data: dict | None = None,
    ) -> GuestCheckoutSession | None:
        """
        Mark the session completed and promote its contact details.

        ``guest_data`` overrides the details captured on the session, for
        gateways that return the payer's final contact information.

        Returns:
            The updated session, or None if no active session matched.
        """
        session = cls._lock_active(session_token)
        if session is None:
            return None

        guest_data = guest_data or {}
        order = session.order
        order.customer_name = guest_data.get("guest_name") or session.guest_name
        order.customer_email = guest_data.get("guest_email") or session.guest_email
        order.customer_phone = guest_data.get("guest_phone") or session.guest_phone
        order.shipping_address = (
            guest_data.get("shipping_address") or session.shipping_address
        )
        order.is_guest = True
        order.customer = None
        order.save(
            update_fields=[
                "customer_name",
                "customer_email",
                "customer_phone",
                "shipping_address",
                "is_guest",
                "customer",
                "updated_at",
            ]
        )

        session.status = GuestSessionStatus.COMPLETED
        session.save(update_fields=["status", "updated_at"])

        cls.get_logger().info(
            "Guest checkout session completed",
            extra={"session_id": str(session.id), "order_id": str(order.id)},
        )
        return session

    @classmethod
    def expire_session(cls, session_token: str) -> GuestCheckoutSession | None:
        """
        Mark the session expired after a failed payment.

        Order contact fields are left untouched.
        """
        session = cls._lock_active(session_token)
        if session is None:
            return None

        session.status = GuestSessionStatus.EXPIRED
        session.save(update_fields=["status", "updated_at"])

        cls.get_logger().info(
            "Guest checkout session expired after failed payment",
            extra={"session_id": str(session.id)},
        )
        return session


class FulfillmentService(BaseService):
    """Creates the downstream order once a payment has succeeded."""

    @staticmethod
    def generate_order_number() -> str:
        """Return a reference like ``ORD-1717171717-3f9a0c2b1``."""
        return f"ORD-{int(time.time())}-{hash_string(generate_token(16), 'md5')[:9]}"

    @staticmethod
    def find_for_transaction(payment_transaction: PaymentTransaction) -> FulfillmentOrder | None:
        return FulfillmentOrder.objects.filter(payment_transaction=payment_transaction).first()

    @classmethod
    def create_for_transaction(
        cls,
        payment_transaction: PaymentTransaction,
        orders: Sequence[Order],
    ) -> tuple[FulfillmentOrder, bool]:
        """
        Create the fulfillment order for a transaction, at most once.

        Returns:
            (fulfillment_order, created). ``created`` is False when a
            replay found the record made by an earlier delivery.
        """
        existing = cls.find_for_transaction(payment_transaction)
        if existing:
            return existing, False

        primary = orders[0] if orders else None
        if primary is not None:
            # Guest checkout completion may have detached the customer since
            # the caller loaded the order
            primary.refresh_from_db(fields=["customer"])
        try:
            with transaction.atomic():
                fulfillment = FulfillmentOrder.objects.create(
                    order_number=cls.generate_order_number(),
                    payment_transaction=payment_transaction,
                    total_amount=payment_transaction.amount,
                    currency=payment_transaction.currency,
                    status=FulfillmentStatus.CONFIRMED,
                    payment_method=payment_transaction.payment_method,
                    customer=primary.customer if primary else None,
                    customer_name=payment_transaction.customer_name,
                    customer_email=payment_transaction.customer_email,
                    customer_phone=payment_transaction.customer_phone,
                )
                fulfillment.orders.set(orders)
        except IntegrityError:
            # Concurrent delivery created it first
            return (
                FulfillmentOrder.objects.get(payment_transaction=payment_transaction),
                False,
            )

        cls.get_logger().info(
            "Created fulfillment order",
            extra={
                "fulfillment_order_id": str(fulfillment.id),
                "transaction_id": str(payment_transaction.id),
            },
        )
        return fulfillment, True
