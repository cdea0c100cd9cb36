"""
Webhook reconciliation engine.

One inbound gateway notification is reconciled as a single atomic unit:

1. Validate required fields (nothing is touched if this fails)
2. Extract the gateway fee and net amount from the payload
3. Upsert the PaymentTransaction (replays resolve to the same row)
4. On success, book customer_payment entries (and a gateway_fee entry)
5. Re-project order status (done by the ledger on every append)
6. Complete or expire the guest checkout session, if any
7. Create the fulfillment order, if requested and the payment succeeded
8. Report every entity touched

Steps 3-7 share one ``transaction.atomic()`` block. Any error inside it
rolls everything back and is returned as a structured failure, so the
gateway always gets a deterministic answer and simply retries later.

Usage:
    from payments.webhooks.reconciliation import (
        PaymentWebhookInput,
        WebhookReconciliationService,
    )

    result = WebhookReconciliationService.process_payment_webhook(
        PaymentWebhookInput(
            order_ids=[order.id],
            outcome=WebhookOutcome.SUCCESS,
            gateway_transaction_id="pi_123",
            amount=Decimal("100.00"),
            currency="USD",
            payment_method=GatewayCode.STRIPE,
        ),
        actor=Actor.system("webhook:stripe"),
    )
    result.to_dict()
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.db import transaction
from django.utils import timezone

from core.exceptions import BaseApplicationError
from orders.services import FulfillmentService, GuestCheckoutService, OrderService
from payments.exceptions import InvalidPaymentData
from payments.ledger import AppendEntryParams, OrderNotFound
from payments.ledger.models import LedgerEntry
from payments.ledger.services import ledger
from payments.services.currency import CurrencyNormalizer, quantize_money
from payments.services.refund_service import RefundService
from payments.services.transaction_registry import TransactionRegistry
from payments.state_machines import (
    GatewayCode,
    LedgerEntryType,
    RefundState,
    TransactionStatus,
    WebhookOutcome,
)
from payments.types import RecordRefundParams, UpsertTransactionParams

from .gateways import GatewayCharges, extract_charges

if TYPE_CHECKING:
    from orders.models import Order
    from payments.models import PaymentTransaction
    from payments.types import Actor

logger = logging.getLogger(__name__)

OUTCOME_TO_STATUS = {
    WebhookOutcome.SUCCESS: TransactionStatus.COMPLETED,
    WebhookOutcome.FAILED: TransactionStatus.FAILED,
    WebhookOutcome.PENDING: TransactionStatus.PENDING,
}


# =============================================================================
# Inputs & Result
# =============================================================================


@dataclass
class PaymentWebhookInput:
    """
    A payment outcome reported by a gateway.

    ``amount`` is accepted as anything Decimal understands; validation
    happens in the engine so malformed values become INVALID_PAYMENT_DATA.
    """

    order_ids: list[Any]
    outcome: str
    gateway_transaction_id: str
    amount: Any
    currency: str
    payment_method: str
    transaction_id: str = ""
    customer_email: str = ""
    customer_name: str = ""
    customer_phone: str = ""
    gateway_response: dict[str, Any] = field(default_factory=dict)
    guest_session_token: str | None = None
    guest_session_data: dict[str, Any] | None = None
    create_order: bool = False


@dataclass
class RefundWebhookInput:
    """A refund reported by a gateway against a known payment attempt."""

    gateway_transaction_id: str
    payment_method: str
    gateway_refund_id: str
    amount: Any
    currency: str
    status: str = RefundState.COMPLETED
    reason_code: str = "CUSTOMER_REQUEST"
    reason_description: str = ""
    failure_reason: str = ""
    gateway_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReconciliationResult:
    """
    Everything a reconciliation touched, or why it failed.

    On failure every id is empty: the atomic unit was rolled back.
    """

    success: bool
    transaction_id: str | None = None
    ledger_entry_id: str | None = None
    fee_ledger_entry_id: str | None = None
    ledger_entry_ids: list[str] = field(default_factory=list)
    refund_id: str | None = None
    order_updated: bool = False
    guest_session_updated: bool = False
    created_order_id: str | None = None
    error_message: str | None = None
    error_code: str | None = None

    @classmethod
    def failure(cls, message: str, error_code: str) -> ReconciliationResult:
        return cls(success=False, error_message=message, error_code=error_code)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# Engine
# =============================================================================


class WebhookReconciliationService:
    """
    Orchestrates the registry, ledger, refund subsystem and order-side
    collaborators for one gateway notification.

    All methods are class methods and never raise for domain errors.
    """

    # =========================================================================
    # Validation (before any mutation)
    # =========================================================================

    @staticmethod
    def _parse_amount(value: Any) -> Decimal:
        if value is None or value == "":
            raise InvalidPaymentData("amount is required", details={"field": "amount"})
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidPaymentData(
                f"amount is not a number: {value!r}",
                details={"field": "amount"},
            ) from exc
        if not amount.is_finite():
            raise InvalidPaymentData(
                f"amount is not a finite number: {value!r}",
                details={"field": "amount"},
            )
        amount = quantize_money(amount)
        if amount <= 0:
            raise InvalidPaymentData(
                "amount must be positive",
                details={"field": "amount", "amount": str(amount)},
            )
        return amount

    @staticmethod
    def _parse_currency(value: str) -> str:
        if not value or len(value) != 3 or not value.isalpha():
            raise InvalidPaymentData(
                f"Invalid currency code: {value!r}",
                details={"field": "currency"},
            )
        return value.upper()

    @staticmethod
    def _parse_gateway(value: str) -> str:
        if value not in GatewayCode.values:
            raise InvalidPaymentData(
                f"Unsupported payment gateway: {value}",
                details={"field": "payment_method", "payment_method": value},
            )
        return value

    @staticmethod
    def _parse_order_ids(order_ids: list[Any]) -> list[uuid.UUID]:
        parsed = []
        for raw in order_ids or []:
            try:
                order_id = raw if isinstance(raw, uuid.UUID) else uuid.UUID(str(raw))
            except ValueError as exc:
                raise InvalidPaymentData(
                    f"Invalid order id: {raw!r}",
                    details={"field": "order_ids"},
                ) from exc
            if order_id not in parsed:
                parsed.append(order_id)
        return parsed

    @classmethod
    def _validate_payment(cls, data: PaymentWebhookInput) -> tuple[Decimal, str, list[Order]]:
        if not data.gateway_transaction_id:
            raise InvalidPaymentData(
                "gateway_transaction_id is required",
                details={"field": "gateway_transaction_id"},
            )
        if data.outcome not in OUTCOME_TO_STATUS:
            raise InvalidPaymentData(
                f"Unknown outcome: {data.outcome}",
                details={"field": "outcome"},
            )
        amount = cls._parse_amount(data.amount)
        currency = cls._parse_currency(data.currency)
        cls._parse_gateway(data.payment_method)

        order_ids = cls._parse_order_ids(data.order_ids)
        if data.outcome == WebhookOutcome.SUCCESS and not order_ids:
            raise InvalidPaymentData(
                "A successful payment must reference at least one order",
                details={"field": "order_ids"},
            )
        orders = OrderService.get_orders(order_ids)
        if len(orders) != len(order_ids):
            missing = sorted(str(oid) for oid in set(order_ids) - {o.id for o in orders})
            raise OrderNotFound(
                f"Order(s) not found: {', '.join(missing)}",
                details={"order_ids": missing},
            )
        return amount, currency, orders

    # =========================================================================
    # Payment Notifications
    # =========================================================================

    @classmethod
    def process_payment_webhook(
        cls,
        data: PaymentWebhookInput,
        actor: Actor,
    ) -> ReconciliationResult:
        """
        Reconcile one payment notification.

        Replays of the same (gateway_transaction_id, payment_method) with
        outcome success resolve to the same transaction and ledger entries.

        Returns:
            ReconciliationResult; success=False with error_message and
            error_code when anything failed (nothing was persisted)
        """
        log_context = {
            "gateway_transaction_id": data.gateway_transaction_id,
            "payment_method": data.payment_method,
            "outcome": data.outcome,
            "actor": actor.identifier,
        }

        try:
            amount, currency, orders = cls._validate_payment(data)
            charges = extract_charges(
                data.payment_method, data.gateway_response, amount, currency
            )

            with transaction.atomic():
                result = cls._reconcile_payment(data, amount, currency, charges, orders, actor)

        except BaseApplicationError as exc:
            logger.warning(
                f"Payment reconciliation rolled back: {exc.message}",
                extra={**log_context, "error_code": exc.error_code},
            )
            return ReconciliationResult.failure(exc.message, exc.error_code)
        except Exception as exc:
            logger.error(
                f"Unexpected error reconciling payment: {type(exc).__name__}",
                extra=log_context,
                exc_info=True,
            )
            return ReconciliationResult.failure(
                "Payment reconciliation failed", "RECONCILIATION_ERROR"
            )

        logger.info(
            "Payment notification reconciled",
            extra={
                **log_context,
                "transaction_id": result.transaction_id,
                "ledger_entry_ids": result.ledger_entry_ids,
                "created_order_id": result.created_order_id,
            },
        )
        return result

    @classmethod
    def _reconcile_payment(
        cls,
        data: PaymentWebhookInput,
        amount: Decimal,
        currency: str,
        charges: GatewayCharges,
        orders: list[Order],
        actor: Actor,
    ) -> ReconciliationResult:
        tx, _ = TransactionRegistry.upsert_transaction(
            UpsertTransactionParams(
                gateway_transaction_id=data.gateway_transaction_id,
                payment_method=data.payment_method,
                amount=amount,
                currency=currency,
                status=OUTCOME_TO_STATUS[data.outcome],
                fee_amount=charges.fee_amount,
                fee_currency=charges.fee_currency,
                net_amount=charges.net_amount,
                gateway_response=data.gateway_response or {},
                transaction_id=data.transaction_id,
                order_id=orders[0].id if orders else None,
                customer_email=data.customer_email,
                customer_name=data.customer_name,
                customer_phone=data.customer_phone,
            ),
            actor=actor,
        )
        result = ReconciliationResult(success=True, transaction_id=str(tx.id))

        if data.outcome == WebhookOutcome.SUCCESS:
            if tx.status != TransactionStatus.COMPLETED:
                raise InvalidPaymentData(
                    "Transaction could not be marked completed",
                    details={"transaction_id": str(tx.id), "status": tx.status},
                )
            cls._book_payment(tx, orders, actor, result)
            cls._stamp_orders(tx, orders, data)
            result.order_updated = True

        if data.guest_session_token:
            if data.outcome == WebhookOutcome.SUCCESS:
                session = GuestCheckoutService.complete_session(
                    data.guest_session_token, data.guest_session_data
                )
            elif data.outcome == WebhookOutcome.FAILED:
                session = GuestCheckoutService.expire_session(data.guest_session_token)
            else:
                session = None
            result.guest_session_updated = session is not None

        if data.create_order and data.outcome == WebhookOutcome.SUCCESS:
            fulfillment, _ = FulfillmentService.create_for_transaction(tx, orders)
            result.created_order_id = str(fulfillment.id)

        return result

    @classmethod
    def _allocate(cls, tx: PaymentTransaction, orders: list[Order]) -> list[tuple[Order, Decimal]]:
        """
        Split the gross amount across orders.

        Earlier orders receive up to their outstanding amount (converted to
        the payment currency); the last order takes whatever remains, so a
        payment for a single order always books the full gross.
        """
        if len(orders) == 1:
            return [(orders[0], tx.amount)]

        rate = CurrencyNormalizer.normalize(Decimal("1"), tx.currency).exchange_rate
        remaining = tx.amount
        shares = []
        for order in orders[:-1]:
            outstanding = max(order.total_due - order.amount_paid, Decimal("0"))
            share = min(remaining, quantize_money(outstanding / rate))
            if share > 0:
                shares.append((order, share))
                remaining -= share
        if remaining > 0:
            shares.append((orders[-1], remaining))
        return shares

    @classmethod
    def _book_payment(
        cls,
        tx: PaymentTransaction,
        orders: list[Order],
        actor: Actor,
        result: ReconciliationResult,
    ) -> None:
        booked = list(
            LedgerEntry.objects.filter(
                payment_transaction=tx,
                entry_type=LedgerEntryType.CUSTOMER_PAYMENT,
            ).order_by("created_at", "sequence")
        )
        if not booked:
            # First successful delivery for this attempt
            for order, share in cls._allocate(tx, orders):
                booked.append(
                    ledger.append_entry(
                        AppendEntryParams(
                            order_id=order.id,
                            payment_transaction_id=tx.id,
                            entry_type=LedgerEntryType.CUSTOMER_PAYMENT,
                            amount=share,
                            currency=tx.currency,
                            idempotency_key=f"customer_payment:{tx.id}:{order.id}",
                            reference_number=tx.gateway_transaction_id,
                            created_by=actor.identifier,
                            gateway_response=tx.gateway_response,
                        )
                    )
                )

        result.ledger_entry_ids = [str(entry.id) for entry in booked]
        result.ledger_entry_id = result.ledger_entry_ids[0]

        # The fee may arrive with a later delivery; the key keeps it single
        if tx.gateway_fee_amount > 0:
            fee_order_id = booked[0].order_id
            fee_entry = ledger.append_entry(
                AppendEntryParams(
                    order_id=fee_order_id,
                    payment_transaction_id=tx.id,
                    entry_type=LedgerEntryType.GATEWAY_FEE,
                    amount=tx.gateway_fee_amount,
                    currency=tx.gateway_fee_currency or tx.currency,
                    idempotency_key=f"gateway_fee:{tx.id}:{fee_order_id}",
                    reference_number=tx.gateway_transaction_id,
                    notes=f"{tx.payment_method} processing fee",
                    created_by=actor.identifier,
                )
            )
            result.fee_ledger_entry_id = str(fee_entry.id)

    @staticmethod
    def _stamp_orders(tx: PaymentTransaction, orders: list[Order], data: PaymentWebhookInput) -> None:
        now = timezone.now()
        details = {
            "gateway": tx.payment_method,
            "gateway_transaction_id": tx.gateway_transaction_id,
            "transaction_id": str(tx.id),
            "amount": str(tx.amount),
            "currency": tx.currency,
            "customer_email": data.customer_email,
            "customer_name": data.customer_name,
            "customer_phone": data.customer_phone,
            "webhook_received_at": now.isoformat(),
        }
        for order in orders:
            order.payment_method = tx.payment_method
            order.paid_at = order.paid_at or now
            order.payment_details = details
            # Derived status fields were written by the ledger; don't clobber them
            order.save(update_fields=["payment_method", "paid_at", "payment_details", "updated_at"])

    # =========================================================================
    # Refund Notifications
    # =========================================================================

    @classmethod
    def process_refund_webhook(
        cls,
        data: RefundWebhookInput,
        actor: Actor,
    ) -> ReconciliationResult:
        """
        Reconcile one refund notification against a recorded payment.

        Returns:
            ReconciliationResult with refund_id and, once the refund is
            completed, the refund ledger entry id
        """
        log_context = {
            "gateway_transaction_id": data.gateway_transaction_id,
            "gateway_refund_id": data.gateway_refund_id,
            "payment_method": data.payment_method,
            "actor": actor.identifier,
        }

        try:
            if not data.gateway_refund_id:
                raise InvalidPaymentData(
                    "gateway_refund_id is required",
                    details={"field": "gateway_refund_id"},
                )
            if data.status not in RefundState.values:
                raise InvalidPaymentData(
                    f"Unknown refund status: {data.status}",
                    details={"field": "status"},
                )
            amount = cls._parse_amount(data.amount)
            currency = cls._parse_currency(data.currency)
            cls._parse_gateway(data.payment_method)

            with transaction.atomic():
                tx = TransactionRegistry.get_by_gateway_id(
                    data.gateway_transaction_id, data.payment_method
                )
                refund = RefundService.apply_refund(
                    RecordRefundParams(
                        payment_transaction_id=tx.id,
                        gateway_refund_id=data.gateway_refund_id,
                        amount=amount,
                        currency=currency,
                        reason_code=data.reason_code,
                        reason_description=data.reason_description,
                        gateway_status=data.status,
                        gateway_response=data.gateway_response or {},
                        completed=data.status == RefundState.COMPLETED,
                        failed=data.status == RefundState.FAILED,
                        failure_reason=data.failure_reason,
                    ),
                    actor,
                )
                entries = RefundService.ledger_entries(refund)

        except BaseApplicationError as exc:
            logger.warning(
                f"Refund reconciliation rolled back: {exc.message}",
                extra={**log_context, "error_code": exc.error_code},
            )
            return ReconciliationResult.failure(exc.message, exc.error_code)
        except Exception as exc:
            logger.error(
                f"Unexpected error reconciling refund: {type(exc).__name__}",
                extra=log_context,
                exc_info=True,
            )
            return ReconciliationResult.failure(
                "Refund reconciliation failed", "RECONCILIATION_ERROR"
            )

        logger.info(
            "Refund notification reconciled",
            extra={**log_context, "refund_id": str(refund.id), "state": refund.state},
        )
        return ReconciliationResult(
            success=True,
            transaction_id=str(tx.id),
            refund_id=str(refund.id),
            ledger_entry_id=str(entries[0].id) if entries else None,
            ledger_entry_ids=[str(e.id) for e in entries],
            order_updated=bool(entries),
        )
