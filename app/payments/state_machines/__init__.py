"""
State machine enums for payment models.
"""

from payments.state_machines.states import (
    GatewayCode,
    LedgerEntryStatus,
    LedgerEntryType,
    PaymentStatus,
    RefundState,
    RefundType,
    TransactionStatus,
    WebhookOutcome,
)

__all__ = [
    "GatewayCode",
    "LedgerEntryStatus",
    "LedgerEntryType",
    "PaymentStatus",
    "RefundState",
    "RefundType",
    "TransactionStatus",
    "WebhookOutcome",
]
