"""
Data types shared across the payment services.

Types:
    Actor: Explicit identity of whoever triggers a mutation
    ConversionResult: Output of the currency normalizer
    StatusProjection: Output of the status projector
    RefundEligibility: Whether a transaction accepts a new refund
    UpsertTransactionParams: Input to the transaction registry
    RecordRefundParams: Input to the refund service

Usage:
    from payments.types import Actor

    actor = Actor.system("webhook:stripe")
    actor = Actor.from_user(request.user)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from payments.state_machines import PaymentStatus, TransactionStatus

MANUAL_ENTRY_PERMISSION = "payments.add_manual_ledger_entry"


@dataclass(frozen=True)
class Actor:
    """
    Who is performing a mutating call.

    Passed explicitly through every service call that writes, and recorded
    as ``created_by`` on the rows it creates.

    Attributes:
        identifier: Stable string written to audit fields
        user: Django user for human actors, None for system actors
    """

    identifier: str
    user: Any = None

    @classmethod
    def system(cls, name: str) -> Actor:
        """Actor for automated callers such as gateway webhooks."""
        return cls(identifier=f"system:{name}")

    @classmethod
    def from_user(cls, user) -> Actor:
        return cls(identifier=f"user:{user.pk}", user=user)

    @property
    def is_system(self) -> bool:
        return self.user is None

    def can_record_manual_entries(self) -> bool:
        """Manual ledger entries need an authenticated staff member or the explicit permission."""
        if self.user is None or not self.user.is_authenticated:
            return False
        return bool(self.user.is_staff or self.user.has_perm(MANUAL_ENTRY_PERMISSION))


@dataclass(frozen=True)
class ConversionResult:
    """
    Amount converted into the base currency.

    Attributes:
        base_amount: Converted amount, quantized to 2 decimal places
        exchange_rate: Rate applied (1 for same-currency amounts)
        base_currency: Currency of base_amount
        is_fallback_rate: No rate was known and 1:1 was assumed
        rate_effective_at: When the applied rate became effective
    """

    base_amount: Decimal
    exchange_rate: Decimal
    base_currency: str
    is_fallback_rate: bool = False
    rate_effective_at: datetime | None = None


@dataclass(frozen=True)
class StatusProjection:
    payment_status: PaymentStatus
    amount_paid: Decimal
    overpayment_amount: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class RefundEligibility:
    """Whether a transaction accepts a new refund, and how much it can take."""

    can_refund: bool
    refundable_amount: Decimal
    reason: str
    reason_code: str = "ELIGIBLE"


@dataclass
class UpsertTransactionParams:
    """
    Everything the registry needs to create or update a transaction.

    Required Attributes:
        gateway_transaction_id: Identifier assigned by the gateway
        payment_method: Gateway code
        amount: Gross amount (must be positive)
        currency: ISO 4217 code
        status: pending, completed or failed

    Optional Attributes:
        fee_amount / fee_currency / net_amount: Parsed gateway charges
        gateway_response: Opaque payload, merged into the stored one
        transaction_id: Merchant reference
        order_id: Primary order
        customer_email / customer_name / customer_phone: Payer details
    """

    gateway_transaction_id: str
    payment_method: str
    amount: Decimal
    currency: str
    status: TransactionStatus

    fee_amount: Decimal = Decimal("0.00")
    fee_currency: str | None = None
    net_amount: Decimal | None = None
    gateway_response: dict[str, Any] = field(default_factory=dict)
    transaction_id: str = ""
    order_id: Any = None
    customer_email: str = ""
    customer_name: str = ""
    customer_phone: str = ""

    def __post_init__(self) -> None:
        if not self.gateway_transaction_id:
            raise ValueError("gateway_transaction_id is required")
        if not Decimal(self.amount).is_finite():
            raise ValueError("amount must be a finite number")
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        self.currency = self.currency.upper()


@dataclass
class RecordRefundParams:
    """
    A refund reported by a gateway or requested by an administrator.

    ``refund_type`` is derived from the remaining refundable amount when
    left empty. ``completed`` marks refunds the gateway already settled.
    """

    payment_transaction_id: Any
    gateway_refund_id: str
    amount: Decimal
    currency: str
    refund_type: str | None = None
    reason_code: str = "CUSTOMER_REQUEST"
    reason_description: str = ""
    gateway_status: str = ""
    gateway_response: dict[str, Any] = field(default_factory=dict)
    completed: bool = False
    failed: bool = False
    failure_reason: str = ""
