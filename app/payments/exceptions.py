"""
Payment-specific exceptions for ledger and reconciliation operations.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── InvalidPaymentData - Missing or malformed required fields
    ├── TransactionNotFound - Unknown gateway transaction
    ├── RefundExceedsCaptured - Refund would exceed the captured amount
    └── RateUnavailable - No usable exchange rate

    Unauthorized - Caller lacks permission (inherits PermissionDeniedError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Internal building blocks raise these; service boundaries catch them and
return a structured failure carrying ``error_code`` and the message.

Usage:
    from payments.exceptions import RefundExceedsCaptured

    if committed + amount > transaction.amount:
        raise RefundExceedsCaptured(
            transaction.id,
            requested=amount,
            refundable=transaction.amount - committed,
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)

if TYPE_CHECKING:
    import uuid
    from decimal import Decimal
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    Example:
        try:
            registry.upsert_transaction(params)
        except PaymentError as e:
            logger.error(f"Payment operation failed: {e}")
            return Response(e.to_dict(), status=400)
    """

    default_error_code: str = "PAYMENT_ERROR"


class InvalidPaymentData(PaymentError):
    """
    Raised when a payment notification is missing required fields or
    carries malformed ones (negative amount, unknown gateway, bad currency).

    Raised before any mutation so nothing is partially processed.
    """

    default_error_code: str = "INVALID_PAYMENT_DATA"


class TransactionNotFound(PaymentError, NotFoundError):
    """
    Raised when a refund or fee update references a gateway transaction
    that has not been recorded.

    Example:
        raise TransactionNotFound(
            "Transaction pi_123 (stripe) not found",
            details={"gateway_transaction_id": "pi_123", "payment_method": "stripe"},
        )
    """

    default_error_code: str = "TRANSACTION_NOT_FOUND"


class RefundExceedsCaptured(PaymentError):
    """
    Raised when a refund would push the refunded total above the
    transaction's gross amount.

    Attributes:
        transaction_id: The PaymentTransaction being refunded
        requested: The refund amount asked for
        refundable: What was still refundable at validation time
    """

    default_error_code: str = "REFUND_EXCEEDS_CAPTURED"

    def __init__(
        self,
        transaction_id: uuid.UUID,
        requested: Decimal,
        refundable: Decimal,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.transaction_id = transaction_id
        self.requested = requested
        self.refundable = refundable

        message = (
            "Refund amount exceeds original transaction amount: "
            f"requested {requested}, refundable {refundable}"
        )

        full_details = {
            "transaction_id": str(transaction_id),
            "requested": str(requested),
            "refundable": str(refundable),
        }
        if details:
            full_details.update(details)

        super().__init__(message=message, error_code=error_code, details=full_details)


class RateUnavailable(PaymentError):
    """
    Raised when no exchange rate is known for a currency and the caller
    does not accept the flagged 1:1 fallback.
    """

    default_error_code: str = "RATE_UNAVAILABLE"

    def __init__(self, currency: str, base_currency: str):
        self.currency = currency
        self.base_currency = base_currency
        super().__init__(
            f"No exchange rate available for {currency} to {base_currency}",
            details={"currency": currency, "base_currency": base_currency},
        )


# =============================================================================
# Authorization & State Exceptions
# =============================================================================


class Unauthorized(PermissionDeniedError):
    """
    Raised when the acting principal may not perform a privileged
    operation such as a manual ledger adjustment.
    """

    default_error_code: str = "UNAUTHORIZED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed to provide the standard error
    format, with current_state, target_state and transition in details.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class LedgerImmutableError(PaymentError):
    """Raised when code attempts to modify or delete a ledger entry."""

    default_error_code: str = "LEDGER_IMMUTABLE"


class WebhookEventImmutableError(PaymentError):
    """Raised when code attempts to modify or delete a webhook event record."""

    default_error_code: str = "WEBHOOK_EVENT_IMMUTABLE"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "PaymentError",
    "InvalidPaymentData",
    "TransactionNotFound",
    "RefundExceedsCaptured",
    "RateUnavailable",
    "Unauthorized",
    "InvalidStateTransitionError",
    "LedgerImmutableError",
    "WebhookEventImmutableError",
]
