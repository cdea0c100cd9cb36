"""
Order-side models consumed by the payment ledger.

- Order: what the customer owes. The payments app writes the derived
  payment fields (payment_status, amount_paid, overpayment_amount); the
  pricing fields belong to whoever created the order.
- GuestCheckoutSession: checkout started without an account. A successful
  payment promotes its contact details onto the order.
- FulfillmentOrder: the downstream order created once payment succeeds,
  at most one per payment transaction.

Usage:
    from orders.models import Order

    order = Order.objects.create(total_due=Decimal("100.00"), currency="USD")
    order.payment_status  # "unpaid" until the ledger says otherwise
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import PaymentStatus


class GuestSessionStatus(models.TextChoices):
    """
    Guest checkout session lifecycle.

    State Flow:
        ACTIVE -> COMPLETED (payment succeeded)
        ACTIVE -> EXPIRED (payment failed or session timed out)
    """

    ACTIVE = "active", "Active"
    COMPLETED = "completed", "Completed"
    EXPIRED = "expired", "Expired"


class FulfillmentStatus(models.TextChoices):
    CONFIRMED = "confirmed", "Confirmed"
    CANCELLED = "cancelled", "Cancelled"


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer order that payments are recorded against.

    Fields:
        order_number: Human-facing reference
        customer: Owning user (null for guest orders)
        currency: Currency the order is priced in
        total_due: Amount owed, in the base currency
        payment_status: Derived from the ledger (unpaid/partial/paid/overpaid)
        amount_paid: Derived sum of completed ledger effects
        overpayment_amount: Derived excess over total_due
        payment_method: Gateway code of the last successful payment
        paid_at: When the last successful payment was reconciled
        payment_details: Snapshot of the last reconciled webhook
        customer_name / customer_email / customer_phone: Contact details
        shipping_address: Free-form shipping address
        is_guest: Order was placed through a guest checkout session

    Note:
        The row is also the per-order lock for ledger appends: the ledger
        selects it FOR UPDATE before reading the running balance.
    """

    # ==========================================================================
    # Identity & Pricing
    # ==========================================================================

    order_number = models.CharField(
        max_length=64,
        unique=True,
        help_text="Human-facing order reference",
    )
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
        help_text="Owning user, empty for guest orders",
    )
    currency = models.CharField(
        max_length=3,
        default="USD",
        help_text="ISO 4217 currency code the order is priced in",
    )
    total_due = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Amount owed in the base currency",
    )

    # ==========================================================================
    # Derived Payment Fields (written by the status projector)
    # ==========================================================================

    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
        db_index=True,
        help_text="Derived from completed ledger entries",
    )
    amount_paid = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Sum of completed payments net of refunds, base currency",
    )
    overpayment_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Amount paid above total_due",
    )

    # ==========================================================================
    # Last Payment Snapshot
    # ==========================================================================

    payment_method = models.CharField(max_length=32, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Snapshot of the last reconciled payment notification",
    )

    # ==========================================================================
    # Contact
    # ==========================================================================

    customer_name = models.CharField(max_length=255, blank=True, default="")
    customer_email = models.EmailField(blank=True, default="")
    customer_phone = models.CharField(max_length=32, blank=True, default="")
    shipping_address = models.JSONField(default=dict, blank=True)
    is_guest = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_due__gte=0),
                name="order_total_due_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.order_number}, {self.payment_status})"


class GuestCheckoutSession(UUIDPrimaryKeyMixin, BaseModel):
    """
    A checkout started without an account.

    Fields:
        session_token: Opaque token handed to the browser and echoed back
            by the gateway metadata
        order: The order being paid for
        status: active until the payment resolves
        guest_name / guest_email / guest_phone / shipping_address: Details
            captured during checkout, promoted onto the order on success
        expires_at: When an unpaid session lapses
    """

    session_token = models.CharField(
        max_length=128,
        unique=True,
        help_text="Opaque token identifying the guest checkout",
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="guest_sessions",
    )
    status = models.CharField(
        max_length=20,
        choices=GuestSessionStatus.choices,
        default=GuestSessionStatus.ACTIVE,
        db_index=True,
    )
    guest_name = models.CharField(max_length=255, blank=True, default="")
    guest_email = models.EmailField(blank=True, default="")
    guest_phone = models.CharField(max_length=32, blank=True, default="")
    shipping_address = models.JSONField(default=dict, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Guest Checkout Session"
        verbose_name_plural = "Guest Checkout Sessions"

    def __str__(self) -> str:
        return f"GuestCheckoutSession({self.session_token[:8]}, {self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == GuestSessionStatus.ACTIVE


class FulfillmentOrder(UUIDPrimaryKeyMixin, BaseModel):
    """
    Downstream order created after a successful payment.

    One-to-one with the payment transaction, so a replayed notification
    finds the existing record instead of creating a second one.
    """

    order_number = models.CharField(max_length=64, unique=True)
    orders = models.ManyToManyField(
        Order,
        related_name="fulfillment_orders",
        help_text="Orders settled by the payment",
    )
    payment_transaction = models.OneToOneField(
        "payments.PaymentTransaction",
        on_delete=models.PROTECT,
        related_name="fulfillment_order",
    )
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3)
    status = models.CharField(
        max_length=20,
        choices=FulfillmentStatus.choices,
        default=FulfillmentStatus.CONFIRMED,
    )
    payment_method = models.CharField(max_length=32)
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="fulfillment_orders",
    )
    customer_name = models.CharField(max_length=255, blank=True, default="")
    customer_email = models.EmailField(blank=True, default="")
    customer_phone = models.CharField(max_length=32, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Fulfillment Order"
        verbose_name_plural = "Fulfillment Orders"

    def __str__(self) -> str:
        return f"FulfillmentOrder({self.order_number})"
