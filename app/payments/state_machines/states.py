"""
State and choice enums for payment models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

PaymentTransaction status:
    pending → completed
    pending → failed
    failed → completed (gateway retry succeeded on the same attempt)

Refund States:
    requested → processing → completed
    requested → processing → failed
    requested → completed (gateway reports an already-settled refund)
"""

from django.db import models


class TransactionStatus(models.TextChoices):
    """
    Processing status of a gateway payment attempt.

    A completed transaction is never moved back to pending by a late or
    out-of-order webhook.
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class WebhookOutcome(models.TextChoices):
    """Outcome reported by a gateway for a payment attempt."""

    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    PENDING = "pending", "Pending"


class GatewayCode(models.TextChoices):
    """
    Payment gateways whose notifications the reconciliation engine accepts.

    Each code selects its own payload parser in payments.webhooks.gateways.
    """

    STRIPE = "stripe", "Stripe"
    PAYPAL = "paypal", "PayPal"
    PAYU = "payu", "PayU"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    MANUAL = "manual", "Manual"


class LedgerEntryType(models.TextChoices):
    """
    Kinds of money movement recorded against an order.

    Values:
        CUSTOMER_PAYMENT: Gross amount received from the customer
        GATEWAY_FEE: Processing cost withheld by the gateway
        REFUND: Full reversal of a transaction's captured amount
        PARTIAL_REFUND: Reversal of part of a captured amount
        CREDIT_APPLIED: Store credit or voucher applied to the order
        ADJUSTMENT: Manual correction, signed by the caller
    """

    CUSTOMER_PAYMENT = "customer_payment", "Customer Payment"
    GATEWAY_FEE = "gateway_fee", "Gateway Fee"
    REFUND = "refund", "Refund"
    PARTIAL_REFUND = "partial_refund", "Partial Refund"
    CREDIT_APPLIED = "credit_applied", "Credit Applied"
    ADJUSTMENT = "adjustment", "Adjustment"


class LedgerEntryStatus(models.TextChoices):
    """Only completed entries count towards an order's paid amount."""

    COMPLETED = "completed", "Completed"
    PENDING = "pending", "Pending"


class RefundState(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Terminal states: COMPLETED, FAILED

    State Flow:
        REQUESTED -> PROCESSING -> COMPLETED
        REQUESTED -> PROCESSING -> FAILED
        REQUESTED -> COMPLETED
    """

    REQUESTED = "requested", "Requested"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class RefundType(models.TextChoices):
    FULL = "full", "Full"
    PARTIAL = "partial", "Partial"


class PaymentStatus(models.TextChoices):
    """
    Derived payment status of an order.

    Always computed from the ledger by the status projector, never set
    directly.
    """

    UNPAID = "unpaid", "Unpaid"
    PARTIAL = "partial", "Partially Paid"
    PAID = "paid", "Paid"
    OVERPAID = "overpaid", "Overpaid"


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
