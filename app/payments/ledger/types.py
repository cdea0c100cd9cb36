"""
Data types for ledger operations.

Types:
    AppendEntryParams: Parameters for appending one ledger entry

Usage:
    from payments.ledger.types import AppendEntryParams

    params = AppendEntryParams(
        order_id=order.id,
        entry_type=LedgerEntryType.CUSTOMER_PAYMENT,
        amount=Decimal("100.00"),
        currency="USD",
        idempotency_key=f"customer_payment:{tx.id}:{order.id}",
        payment_transaction_id=tx.id,
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from payments.state_machines import LedgerEntryStatus, LedgerEntryType


@dataclass
class AppendEntryParams:
    """
    Parameters for appending a ledger entry.

    ``amount`` is given as a magnitude for every kind except adjustment;
    the ledger applies the sign of the entry kind. Adjustments keep the
    sign the caller gives them.

    Required Attributes:
        order_id: Order the movement is booked against
        entry_type: Kind of movement
        amount: Native amount (magnitude, or signed for adjustments)
        currency: ISO 4217 code of ``amount``
        idempotency_key: Unique key collapsing replays to one entry

    Optional Attributes:
        payment_transaction_id: Gateway attempt that caused the movement
        base_amount: Pre-computed base amount; converted when None
        as_of: Processing time for picking the exchange rate
        allow_fallback_rate: Override for the 1:1 fallback policy
        status: completed (default) or pending
        reference_number / notes: Free text for audit
        created_by: Actor identifier
        gateway_response: Opaque gateway payload
    """

    order_id: uuid.UUID
    entry_type: str
    amount: Decimal
    currency: str
    idempotency_key: str

    payment_transaction_id: uuid.UUID | None = None
    base_amount: Decimal | None = None
    as_of: datetime | None = None
    allow_fallback_rate: bool | None = None
    status: str = LedgerEntryStatus.COMPLETED
    reference_number: str = ""
    notes: str = ""
    created_by: str = "system"
    gateway_response: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate params after initialization."""
        if self.entry_type not in LedgerEntryType.values:
            raise ValueError(f"Unknown ledger entry type: {self.entry_type}")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite():
            raise ValueError(f"amount must be a finite Decimal, got {self.amount!r}")
        if self.amount == 0:
            raise ValueError("amount must be non-zero")
        if self.entry_type != LedgerEntryType.ADJUSTMENT and self.amount < 0:
            raise ValueError("amount must be positive; the entry type carries the sign")
