"""
Ledger model: append-only money movements per order.

Every discrete money movement against an order (payment received, gateway
fee, refund, credit, manual adjustment) is one LedgerEntry. Entries carry a
signed amount in both the native and the base currency, plus the running
base-currency balance before and after the movement, so the chain for an
order can be folded and checked at any time.

Usage:
    from payments.ledger.models import LedgerEntry

    entries = LedgerEntry.objects.for_order(order.id)
    entries.last().balance_after  # current balance
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.model_mixins import AppendOnlyMixin, UUIDPrimaryKeyMixin
from payments.exceptions import LedgerImmutableError
from payments.state_machines import LedgerEntryStatus, LedgerEntryType

# Kinds that add money to an order's balance / take it away.
CREDIT_ENTRY_TYPES = frozenset(
    {LedgerEntryType.CUSTOMER_PAYMENT, LedgerEntryType.CREDIT_APPLIED}
)
DEBIT_ENTRY_TYPES = frozenset(
    {
        LedgerEntryType.REFUND,
        LedgerEntryType.PARTIAL_REFUND,
        LedgerEntryType.GATEWAY_FEE,
    }
)
REFUND_ENTRY_TYPES = frozenset(
    {LedgerEntryType.REFUND, LedgerEntryType.PARTIAL_REFUND}
)


class LedgerEntryQuerySet(models.QuerySet):
    def for_order(self, order_id) -> LedgerEntryQuerySet:
        """Entries for one order in chain order (oldest first)."""
        return self.filter(order_id=order_id).order_by("sequence")

    def completed(self) -> LedgerEntryQuerySet:
        return self.filter(status=LedgerEntryStatus.COMPLETED)


class LedgerEntry(UUIDPrimaryKeyMixin, AppendOnlyMixin, models.Model):
    """
    One immutable, signed money movement against an order.

    Fields:
        id: UUID primary key (from UUIDPrimaryKeyMixin)
        order: Order the movement is booked against
        payment_transaction: Gateway attempt that caused it (nullable)
        sequence: Position in the order's chain, starting at 1
        entry_type: Kind of movement (customer_payment, gateway_fee, ...)
        amount / currency: Signed amount in the native currency
        base_amount / base_currency: Signed amount in the base currency
        exchange_rate: Rate used to get base_amount
        is_fallback_rate: The 1:1 fallback was used because no rate existed
        balance_before / balance_after: Running base-currency balance
        reference_number: Gateway or merchant reference
        status: completed or pending
        notes: Free text
        created_by: Actor identity
        gateway_response: Opaque gateway payload for audit
        idempotency_key: Unique key collapsing replays to one entry
        created_at: Timestamp when the entry was recorded

    Constraints:
        - (order, sequence) is unique
        - idempotency_key is unique

    Note:
        Rows are insert-only; saving an existing entry or deleting one
        raises LedgerImmutableError. Corrections are new adjustment entries.
    """

    immutable_error = LedgerImmutableError

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="ledger_entries",
        help_text="Order the movement is booked against",
    )
    payment_transaction = models.ForeignKey(
        "payments.PaymentTransaction",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
        help_text="Gateway attempt that caused this movement",
    )
    sequence = models.PositiveIntegerField(
        help_text="Position in the order's balance chain",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    entry_type = models.CharField(
        max_length=32,
        choices=LedgerEntryType.choices,
        help_text="Category of this entry",
    )
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Signed amount in the native currency",
    )
    currency = models.CharField(max_length=3, help_text="Native ISO 4217 code")
    base_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Signed amount in the base currency",
    )
    base_currency = models.CharField(max_length=3)
    exchange_rate = models.DecimalField(
        max_digits=18,
        decimal_places=8,
        default=Decimal("1"),
        help_text="Native to base rate used for this entry",
    )
    is_fallback_rate = models.BooleanField(
        default=False,
        help_text="No rate was known and 1:1 was assumed",
    )
    balance_before = models.DecimalField(max_digits=14, decimal_places=2)
    balance_after = models.DecimalField(max_digits=14, decimal_places=2)

    # ==========================================================================
    # Audit
    # ==========================================================================

    reference_number = models.CharField(max_length=255, blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=LedgerEntryStatus.choices,
        default=LedgerEntryStatus.COMPLETED,
    )
    notes = models.TextField(blank=True, default="")
    created_by = models.CharField(
        max_length=255,
        help_text="Identifier of the actor that created this entry",
    )
    gateway_response = models.JSONField(default=dict, blank=True)
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate entries",
    )

    objects = LedgerEntryQuerySet.as_manager()

    class Meta:
        ordering = ["order", "sequence"]
        verbose_name = "Ledger Entry"
        verbose_name_plural = "Ledger Entries"
        permissions = [
            ("add_manual_ledger_entry", "Can record manual ledger entries"),
        ]
        indexes = [
            models.Index(fields=["entry_type"], name="ledger_entry_type_idx"),
            models.Index(fields=["payment_transaction", "entry_type"], name="ledger_tx_entry_type_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "sequence"],
                name="unique_ledger_sequence_per_order",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_entry_type_display()}: {self.base_amount} {self.base_currency}"
