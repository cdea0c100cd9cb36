"""
Status projector: derives an order's payment status from its ledger.

The projection is recomputed from scratch with one aggregate query every
time the ledger for an order changes. It is never patched incrementally,
so it cannot drift from the entries it summarises.

Counted towards amount_paid (completed entries only, base currency):
    customer_payment, credit_applied   positive
    refund, partial_refund             negative
    adjustment                         as signed by the caller
Gateway fees are a cost to the merchant, not a reduction of what the
customer paid, so they are excluded.

Usage:
    from payments.services.status_projector import StatusProjector

    projection = StatusProjector.project_status(order.id, order.total_due)
    projection.payment_status  # PaymentStatus.PARTIAL
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.db.models import Sum

from core.services import BaseService
from payments.ledger.models import LedgerEntry
from payments.services.currency import quantize_money
from payments.state_machines import LedgerEntryType, PaymentStatus
from payments.types import StatusProjection

if TYPE_CHECKING:
    import uuid

    from orders.models import Order

PAID_AMOUNT_ENTRY_TYPES = (
    LedgerEntryType.CUSTOMER_PAYMENT,
    LedgerEntryType.CREDIT_APPLIED,
    LedgerEntryType.REFUND,
    LedgerEntryType.PARTIAL_REFUND,
    LedgerEntryType.ADJUSTMENT,
)


class StatusProjector(BaseService):
    @staticmethod
    def sum_paid(order_id: uuid.UUID) -> Decimal:
        total = (
            LedgerEntry.objects.completed()
            .filter(order_id=order_id, entry_type__in=PAID_AMOUNT_ENTRY_TYPES)
            .aggregate(total=Sum("base_amount"))["total"]
        )
        return quantize_money(total or Decimal("0"))

    @staticmethod
    def classify(amount_paid: Decimal, total_due: Decimal) -> StatusProjection:
        """
        Map a paid amount onto unpaid / partial / paid / overpaid.

        Example:
            classify(Decimal("130"), Decimal("100"))
            # StatusProjection(OVERPAID, 130.00, overpayment_amount=30.00)
        """
        amount_paid = quantize_money(amount_paid)
        total_due = quantize_money(total_due)

        if amount_paid <= 0:
            status = PaymentStatus.UNPAID
        elif amount_paid < total_due:
            status = PaymentStatus.PARTIAL
        elif amount_paid == total_due:
            status = PaymentStatus.PAID
        else:
            return StatusProjection(
                payment_status=PaymentStatus.OVERPAID,
                amount_paid=amount_paid,
                overpayment_amount=amount_paid - total_due,
            )
        return StatusProjection(payment_status=status, amount_paid=amount_paid)

    @classmethod
    def project_status(cls, order_id: uuid.UUID, order_total_due: Decimal) -> StatusProjection:
        """Recompute the derived status for an order from its completed entries."""
        return cls.classify(cls.sum_paid(order_id), order_total_due)

    @classmethod
    def apply(cls, order: Order) -> StatusProjection:
        """
        Recompute and write the derived fields onto ``order``.

        Runs inside the caller's transaction; an error here aborts the
        enclosing unit of work rather than leaving a stale status behind.
        """
        projection = cls.project_status(order.id, order.total_due)

        order.payment_status = projection.payment_status
        order.amount_paid = projection.amount_paid
        order.overpayment_amount = projection.overpayment_amount
        order.save(
            update_fields=[
                "payment_status",
                "amount_paid",
                "overpayment_amount",
                "updated_at",
            ]
        )

        cls.get_logger().debug(
            "Projected order payment status",
            extra={
                "order_id": str(order.id),
                "payment_status": projection.payment_status,
                "amount_paid": str(projection.amount_paid),
            },
        )
        return projection
