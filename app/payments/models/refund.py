"""
Refund model for gateway-reported reversals of a payment transaction.

A transaction can have several refunds (partial refund scenarios). The
sum of completed refund amounts never exceeds the transaction's gross
amount; the refund service validates that before a row is written.

Usage:
    from payments.models import Refund

    refund = Refund.objects.create(
        payment_transaction=tx,
        order=tx.order,
        gateway_refund_id="re_123",
        gateway_code=GatewayCode.STRIPE,
        amount=Decimal("25.00"),
        currency="USD",
    )

    # State transitions using django-fsm
    refund.process()  # requested -> processing
    refund.complete()  # processing -> completed
    refund.save()
"""

from __future__ import annotations

from django.db import models
from django.db.models import F
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import GatewayCode, RefundState, RefundType


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    Money returned to a customer against a payment transaction.

    State Flow:
        REQUESTED -> PROCESSING -> COMPLETED
        REQUESTED -> PROCESSING -> FAILED
        REQUESTED -> COMPLETED / FAILED (gateway reports a final state directly)

    Fields:
        payment_transaction: Transaction being refunded
        order: Order the refund's ledger entry is booked against
        gateway_refund_id: Identifier assigned by the gateway (unique)
        gateway_code: Gateway that processed the refund
        amount / currency: Refund amount in the transaction currency
        refund_type: FULL or PARTIAL
        reason_code / reason_description: Why the refund happened
        state: Current FSM state
        gateway_status: Raw status string last reported by the gateway
        gateway_response: Opaque gateway payload
        version: Optimistic locking version
        completed_at / failed_at / failure_reason: Outcome details
        created_by: Actor that recorded the refund
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    payment_transaction = models.ForeignKey(
        "payments.PaymentTransaction",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Payment transaction being refunded",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Order the refund is booked against",
    )

    # ==========================================================================
    # Gateway Identity
    # ==========================================================================

    gateway_refund_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Refund identifier assigned by the gateway",
    )
    gateway_code = models.CharField(
        max_length=32,
        choices=GatewayCode.choices,
    )

    # ==========================================================================
    # Amount & Reason
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Refund amount in the transaction currency",
    )
    currency = models.CharField(max_length=3, help_text="ISO 4217 currency code")
    refund_type = models.CharField(
        max_length=10,
        choices=RefundType.choices,
        default=RefundType.PARTIAL,
    )
    reason_code = models.CharField(max_length=64, default="CUSTOMER_REQUEST")
    reason_description = models.TextField(blank=True, default="")

    # ==========================================================================
    # State
    # ==========================================================================

    state = FSMField(
        default=RefundState.REQUESTED,
        choices=RefundState.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )
    gateway_status = models.CharField(max_length=64, blank=True, default="")
    gateway_response = models.JSONField(default=dict, blank=True)

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # Outcome
    # ==========================================================================

    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")
    created_by = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["payment_transaction", "state"], name="payments_refund_tx_state_idx"),
            models.Index(fields=["state", "created_at"], name="payments_refund_state_crt_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.gateway_refund_id}, {self.state}, {self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=state,
        source=RefundState.REQUESTED,
        target=RefundState.PROCESSING,
    )
    def process(self):
        """Gateway accepted the refund and is processing it."""

    @transition(
        field=state,
        source=[RefundState.REQUESTED, RefundState.PROCESSING],
        target=RefundState.COMPLETED,
    )
    def complete(self):
        """Gateway confirmed the money went back to the customer."""
        self.completed_at = timezone.now()

    @transition(
        field=state,
        source=[RefundState.REQUESTED, RefundState.PROCESSING],
        target=RefundState.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Gateway reported the refund failed.

        Args:
            reason: Optional failure reason for debugging
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        return self.state == RefundState.COMPLETED

    @property
    def is_pending(self) -> bool:
        return self.state in [RefundState.REQUESTED, RefundState.PROCESSING]
