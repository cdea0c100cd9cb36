"""
PaymentTransaction model: one row per gateway payment attempt.

The pair (gateway_transaction_id, payment_method) identifies an attempt.
A replayed notification for the same attempt resolves to the same row and
updates it in place; nothing here is ever deleted.

Usage:
    from payments.models import PaymentTransaction

    tx = PaymentTransaction.objects.get(
        gateway_transaction_id="pi_123",
        payment_method=GatewayCode.STRIPE,
    )
    tx.refundable_amount  # amount minus total_refunded
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import GatewayCode, TransactionStatus


class PaymentTransaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    A gateway-level payment attempt.

    Fields:
        order: Primary order the payment was made for
        transaction_id: Merchant-side reference sent to the gateway
        gateway_transaction_id: Identifier assigned by the gateway
        payment_method: Gateway code (stripe, paypal, payu, ...)
        amount / currency: Gross amount in the payment currency
        status: pending, completed or failed
        gateway_fee_amount / gateway_fee_currency: Processing cost
        net_amount: amount minus gateway fee
        total_refunded / refund_count / is_fully_refunded / last_refund_at:
            Aggregates recomputed from completed refunds
        gateway_response: Opaque gateway payload, kept for audit only
        customer_email / customer_name / customer_phone: Payer details

    Constraints:
        - Unique (gateway_transaction_id, payment_method)
        - amount must be positive
    """

    # ==========================================================================
    # Relationships & Identity
    # ==========================================================================

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payment_transactions",
        help_text="Primary order this payment was made for",
    )
    transaction_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Merchant-side reference sent to the gateway",
    )
    gateway_transaction_id = models.CharField(
        max_length=255,
        help_text="Identifier assigned by the gateway",
    )
    payment_method = models.CharField(
        max_length=32,
        choices=GatewayCode.choices,
        help_text="Gateway that processed the attempt",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Gross amount in the payment currency",
    )
    currency = models.CharField(max_length=3, help_text="ISO 4217 currency code")
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.PENDING,
        db_index=True,
    )
    gateway_fee_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Processing cost withheld by the gateway",
    )
    gateway_fee_currency = models.CharField(max_length=3, blank=True, default="")
    net_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Gross amount minus gateway fee",
    )

    # ==========================================================================
    # Refund Aggregates (recomputed, never incremented)
    # ==========================================================================

    total_refunded = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    refund_count = models.PositiveIntegerField(default=0)
    is_fully_refunded = models.BooleanField(default=False)
    last_refund_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Audit
    # ==========================================================================

    gateway_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Opaque gateway payload, never parsed downstream",
    )
    customer_email = models.EmailField(blank=True, default="")
    customer_name = models.CharField(max_length=255, blank=True, default="")
    customer_phone = models.CharField(max_length=32, blank=True, default="")
    created_by = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Actor that first recorded the attempt",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Transaction"
        verbose_name_plural = "Payment Transactions"
        constraints = [
            models.UniqueConstraint(
                fields=["gateway_transaction_id", "payment_method"],
                name="unique_gateway_transaction_per_method",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_transaction_amount_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["order", "status"], name="payments_tx_order_status_idx"),
        ]

    def __str__(self) -> str:
        return (
            f"PaymentTransaction({self.payment_method}:{self.gateway_transaction_id}, "
            f"{self.status}, {self.amount} {self.currency})"
        )

    @property
    def refundable_amount(self) -> Decimal:
        return self.amount - self.total_refunded

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED
