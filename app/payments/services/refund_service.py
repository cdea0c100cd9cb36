"""
Refund service: records gateway refunds and keeps transaction aggregates
consistent.

The service implements:
1. Idempotent refund recording keyed by the gateway refund id
2. Eligibility and ceiling validation (completed, inside the refund window,
   completed + in-flight refunds never exceed gross)
3. django-fsm state transitions (requested -> processing -> completed/failed)
4. Aggregate recomputation on the transaction after every completion
5. Refund / partial_refund ledger entries per completed refund, split
   across the orders the payment was booked on

Aggregates (total_refunded, refund_count, is_fully_refunded,
last_refund_at) are recomputed with one aggregate query over completed
refunds each time, never incremented, so replays cannot double count.

Usage:
    from payments.services.refund_service import RefundService

    result = RefundService.record_refund(
        RecordRefundParams(
            payment_transaction_id=tx.id,
            gateway_refund_id="re_123",
            amount=Decimal("25.00"),
            currency="USD",
            completed=True,
        ),
        actor=Actor.system("webhook:stripe"),
    )
    if not result.success:
        logger.warning(result.error, extra={"error_code": result.error_code})
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Max, Sum
from django.utils import timezone

from django_fsm import TransitionNotAllowed

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult
from payments.exceptions import (
    InvalidPaymentData,
    InvalidStateTransitionError,
    RefundExceedsCaptured,
)
from payments.ledger.models import LedgerEntry
from payments.ledger.services import ledger
from payments.ledger.types import AppendEntryParams
from payments.models import PaymentTransaction, Refund
from payments.services.currency import quantize_money
from payments.services.transaction_registry import TransactionRegistry
from payments.state_machines import (
    LedgerEntryStatus,
    LedgerEntryType,
    RefundState,
    RefundType,
    TransactionStatus,
)
from payments.types import RefundEligibility

if TYPE_CHECKING:
    import uuid

    from payments.types import Actor, RecordRefundParams


# States whose amounts count against the refundable ceiling
COMMITTED_REFUND_STATES = (
    RefundState.REQUESTED,
    RefundState.PROCESSING,
    RefundState.COMPLETED,
)


def refund_entry_key(refund_id, order_id) -> str:
    """Idempotency key of the ledger entry booking a refund against one order."""
    return f"refund:{refund_id}:{order_id}"


class RefundService(BaseService):
    """
    Service class for refund recording and completion.

    Public methods return ServiceResult. The apply_* methods raise and are
    meant for callers that already run inside an atomic block and want any
    failure to roll that block back (the webhook reconciliation engine).
    """

    # =========================================================================
    # ServiceResult API
    # =========================================================================

    @classmethod
    def record_refund(cls, params: RecordRefundParams, actor: Actor) -> ServiceResult[Refund]:
        """
        Record a refund against a transaction.

        Returns:
            ServiceResult with the Refund, or a failure carrying
            REFUND_EXCEEDS_CAPTURED, TRANSACTION_NOT_FOUND or
            INVALID_PAYMENT_DATA
        """
        try:
            with cls.atomic():
                refund = cls.apply_refund(params, actor)
        except BaseApplicationError as exc:
            return cls.handle_exception(exc, "Refund not recorded", log_level=logging.WARNING)
        return ServiceResult.success(refund)

    @classmethod
    def complete_refund(cls, refund_id: uuid.UUID, actor: Actor) -> ServiceResult[Refund]:
        """Mark a processing refund completed and book it."""
        try:
            with cls.atomic():
                refund = Refund.objects.select_for_update().get(id=refund_id)
                tx = TransactionRegistry.lock_by_id(refund.payment_transaction_id)
                cls._transition(refund, "complete")
                refund.save()
                cls._on_completed(refund, tx, actor)
        except Refund.DoesNotExist:
            return ServiceResult.failure(f"Refund {refund_id} not found", error_code="REFUND_NOT_FOUND")
        except BaseApplicationError as exc:
            return cls.handle_exception(exc, "Refund not completed", log_level=logging.WARNING)
        return ServiceResult.success(refund)

    @classmethod
    def fail_refund(cls, refund_id: uuid.UUID, reason: str = "") -> ServiceResult[Refund]:
        """Mark a pending refund failed. Nothing is booked."""
        try:
            with cls.atomic():
                refund = Refund.objects.select_for_update().get(id=refund_id)
                cls._transition(refund, "fail", reason)
                refund.save()
        except Refund.DoesNotExist:
            return ServiceResult.failure(f"Refund {refund_id} not found", error_code="REFUND_NOT_FOUND")
        except BaseApplicationError as exc:
            return cls.handle_exception(exc, "Refund not failed", log_level=logging.WARNING)
        return ServiceResult.success(refund)

    # =========================================================================
    # Raising API (caller owns the transaction)
    # =========================================================================

    @classmethod
    def apply_refund(cls, params: RecordRefundParams, actor: Actor) -> Refund:
        """
        Record or update a refund; raises on any validation failure.

        A replay with a known gateway_refund_id returns the existing refund,
        applying a completion or failure the new report carries.

        Raises:
            InvalidPaymentData: Bad amount, currency or transaction state
            TransactionNotFound: Unknown transaction
            RefundExceedsCaptured: Ceiling would be exceeded
        """
        if not params.gateway_refund_id:
            raise InvalidPaymentData("gateway_refund_id is required")
        try:
            amount = Decimal(str(params.amount))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidPaymentData(
                "Refund amount is not a number",
                details={"amount": str(params.amount)},
            ) from exc
        if not amount.is_finite():
            raise InvalidPaymentData(
                "Refund amount is not a finite number",
                details={"amount": str(params.amount)},
            )
        amount = quantize_money(amount)
        if amount <= 0:
            raise InvalidPaymentData(
                "Refund amount must be positive",
                details={"amount": str(params.amount)},
            )

        # Serializes refunds for the same transaction
        tx = TransactionRegistry.lock_by_id(params.payment_transaction_id)

        existing = cls.find_refund(params.gateway_refund_id)
        if existing:
            return cls._apply_replay(existing, tx, params, actor)

        refundable = cls._validate_new_refund(tx, amount, params)

        # FULL when this refund exhausts what is left to refund
        refund_type = params.refund_type or (
            RefundType.FULL if amount == refundable else RefundType.PARTIAL
        )
        try:
            with transaction.atomic():
                refund = Refund.objects.create(
                    payment_transaction=tx,
                    order_id=tx.order_id,
                    gateway_refund_id=params.gateway_refund_id,
                    gateway_code=tx.payment_method,
                    amount=amount,
                    currency=params.currency.upper(),
                    refund_type=refund_type,
                    reason_code=params.reason_code or "CUSTOMER_REQUEST",
                    reason_description=params.reason_description,
                    gateway_status=params.gateway_status,
                    gateway_response=params.gateway_response or {},
                    created_by=actor.identifier,
                )
        except IntegrityError:
            # Concurrent delivery of the same refund won the insert
            existing = cls.find_refund(params.gateway_refund_id)
            if existing is None:
                raise
            return cls._apply_replay(existing, tx, params, actor)

        cls.get_logger().info(
            "Recorded refund",
            extra={
                "refund_id": str(refund.id),
                "transaction_id": str(tx.id),
                "amount": str(amount),
                "refund_type": refund_type,
            },
        )

        if params.completed:
            cls._transition(refund, "complete")
            refund.save()
            cls._on_completed(refund, tx, actor)
        elif params.failed:
            cls._transition(refund, "fail", params.failure_reason)
            refund.save()
        else:
            cls._transition(refund, "process")
            refund.save()

        return refund

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def find_refund(gateway_refund_id: str) -> Refund | None:
        """Lock and return the refund with this gateway id, if recorded."""
        return (
            Refund.objects.select_for_update()
            .filter(gateway_refund_id=gateway_refund_id)
            .first()
        )

    @classmethod
    def check_eligibility(cls, tx: PaymentTransaction, as_of: datetime | None = None) -> RefundEligibility:
        """
        Decide whether ``tx`` accepts a new refund.

        A transaction is eligible while it is completed, still has an
        uncommitted amount and was created within
        ``settings.PAYMENTS_REFUND_WINDOW_DAYS`` (0 disables the window).
        In-flight refunds count as committed.
        """
        refundable = max(tx.amount - cls.committed_amount(tx), Decimal("0.00"))

        if tx.status != TransactionStatus.COMPLETED:
            return RefundEligibility(False, refundable, "Transaction not completed", "NOT_COMPLETED")
        if tx.is_fully_refunded or refundable == 0:
            return RefundEligibility(False, refundable, "Transaction already fully refunded", "FULLY_REFUNDED")

        window_days = settings.PAYMENTS_REFUND_WINDOW_DAYS
        if window_days and tx.created_at:
            cutoff = (as_of or timezone.now()) - timedelta(days=window_days)
            if tx.created_at < cutoff:
                return RefundEligibility(
                    False,
                    refundable,
                    f"Transaction too old (>{window_days} days)",
                    "REFUND_WINDOW_EXPIRED",
                )
        return RefundEligibility(True, refundable, "Eligible for refund")

    @classmethod
    def _validate_new_refund(
        cls,
        tx: PaymentTransaction,
        amount: Decimal,
        params: RecordRefundParams,
    ) -> Decimal:
        """Check a new refund against the transaction; returns the amount still refundable."""
        eligibility = cls.check_eligibility(tx)
        if eligibility.reason_code == "FULLY_REFUNDED":
            raise RefundExceedsCaptured(tx.id, requested=amount, refundable=eligibility.refundable_amount)
        if not eligibility.can_refund:
            raise InvalidPaymentData(
                eligibility.reason,
                details={
                    "transaction_id": str(tx.id),
                    "status": tx.status,
                    "reason_code": eligibility.reason_code,
                },
            )
        if tx.order_id is None:
            raise InvalidPaymentData(
                "Transaction has no order to book the refund against",
                details={"transaction_id": str(tx.id)},
            )
        if params.currency.upper() != tx.currency:
            raise InvalidPaymentData(
                "Refund currency must match the transaction currency",
                details={"refund_currency": params.currency, "transaction_currency": tx.currency},
            )

        if amount > eligibility.refundable_amount:
            raise RefundExceedsCaptured(
                tx.id,
                requested=amount,
                refundable=eligibility.refundable_amount,
            )
        return eligibility.refundable_amount

    @staticmethod
    def committed_amount(tx: PaymentTransaction) -> Decimal:
        """Completed plus in-flight refund amounts for a transaction."""
        total = Refund.objects.filter(
            payment_transaction=tx,
            state__in=COMMITTED_REFUND_STATES,
        ).aggregate(total=Sum("amount"))["total"]
        return quantize_money(total or Decimal("0"))

    @classmethod
    def _apply_replay(
        cls,
        refund: Refund,
        tx: PaymentTransaction,
        params: RecordRefundParams,
        actor: Actor,
    ) -> Refund:
        if refund.payment_transaction_id != tx.id:
            raise InvalidPaymentData(
                "Refund id already recorded against another transaction",
                details={"gateway_refund_id": refund.gateway_refund_id},
            )

        if params.completed and refund.is_pending:
            cls._transition(refund, "complete")
            refund.save()
            cls._on_completed(refund, tx, actor)
        elif params.failed and refund.is_pending:
            cls._transition(refund, "fail", params.failure_reason)
            refund.save()
        else:
            cls.get_logger().debug(
                "Refund replay without state change",
                extra={"refund_id": str(refund.id), "state": refund.state},
            )
        return refund

    @staticmethod
    def _transition(refund: Refund, name: str, *args) -> None:
        try:
            getattr(refund, name)(*args)
        except TransitionNotAllowed as exc:
            raise InvalidStateTransitionError(
                f"Cannot {name} refund in '{refund.state}' state",
                details={
                    "refund_id": str(refund.id),
                    "current_state": refund.state,
                    "transition": name,
                },
            ) from exc

    @staticmethod
    def refund_allocation(refund: Refund, tx: PaymentTransaction) -> list[tuple[uuid.UUID, Decimal]]:
        """
        Split a refund across the orders the transaction paid for.

        Each order gets back at most what the transaction booked on it,
        net of earlier refunds from the same transaction. Orders are drained
        last-booked first, so a partial refund of a split payment lands on
        the order that took the remainder. A transaction with no booked
        payment falls back to its primary order.
        """
        remaining_by_order: dict = {}
        booked_order_ids = []
        rows = (
            LedgerEntry.objects.filter(
                payment_transaction=tx,
                entry_type__in=[
                    LedgerEntryType.CUSTOMER_PAYMENT,
                    LedgerEntryType.REFUND,
                    LedgerEntryType.PARTIAL_REFUND,
                ],
                status=LedgerEntryStatus.COMPLETED,
            )
            .order_by("created_at", "sequence")
            .values_list("order_id", "entry_type", "amount")
        )
        for order_id, entry_type, amount in rows:
            if entry_type == LedgerEntryType.CUSTOMER_PAYMENT and order_id not in remaining_by_order:
                booked_order_ids.append(order_id)
            remaining_by_order[order_id] = remaining_by_order.get(order_id, Decimal("0")) + amount

        if not booked_order_ids:
            return [(refund.order_id, refund.amount)]

        left = refund.amount
        shares = []
        for order_id in reversed(booked_order_ids):
            available = max(remaining_by_order[order_id], Decimal("0"))
            share = min(left, available)
            if share > 0:
                shares.append((order_id, share))
                left -= share
            if left == 0:
                break

        if left > 0:
            # Nothing left to draw from; the primary order absorbs the rest
            primary = booked_order_ids[0]
            merged = dict(shares)
            merged[primary] = merged.get(primary, Decimal("0")) + left
            shares = [(oid, merged[oid]) for oid in reversed(booked_order_ids) if oid in merged]
        return shares

    @classmethod
    def _on_completed(cls, refund: Refund, tx: PaymentTransaction, actor: Actor) -> list[LedgerEntry]:
        cls.recompute_refund_totals(tx)

        entry_type = (
            LedgerEntryType.REFUND
            if refund.refund_type == RefundType.FULL
            else LedgerEntryType.PARTIAL_REFUND
        )
        entries = []
        for order_id, share in cls.refund_allocation(refund, tx):
            entries.append(
                ledger.append_entry(
                    AppendEntryParams(
                        order_id=order_id,
                        payment_transaction_id=tx.id,
                        entry_type=entry_type,
                        amount=share,
                        currency=refund.currency,
                        idempotency_key=refund_entry_key(refund.id, order_id),
                        reference_number=refund.gateway_refund_id,
                        notes=refund.reason_description or refund.reason_code,
                        created_by=actor.identifier,
                        gateway_response=refund.gateway_response,
                    )
                )
            )

        if len(entries) > 1:
            cls.get_logger().info(
                "Refund split across orders",
                extra={
                    "refund_id": str(refund.id),
                    "order_ids": [str(e.order_id) for e in entries],
                },
            )
        return entries

    @staticmethod
    def ledger_entries(refund: Refund) -> list[LedgerEntry]:
        """Ledger entries booked for a completed refund, one per order."""
        return list(
            LedgerEntry.objects.filter(
                idempotency_key__startswith=f"refund:{refund.id}:"
            ).order_by("created_at", "sequence")
        )

    @classmethod
    def recompute_refund_totals(cls, tx: PaymentTransaction) -> PaymentTransaction:
        """
        Re-run the refund aggregates for a transaction from completed refunds.

        Safe to call any number of times; the result depends only on the
        refunds currently stored.
        """
        agg = Refund.objects.filter(
            payment_transaction=tx,
            state=RefundState.COMPLETED,
        ).aggregate(
            total=Sum("amount"),
            count=Count("id"),
            last=Max("completed_at"),
        )

        tx.total_refunded = quantize_money(agg["total"] or Decimal("0"))
        tx.refund_count = agg["count"]
        tx.is_fully_refunded = tx.total_refunded >= tx.amount
        tx.last_refund_at = agg["last"]
        tx.save(
            update_fields=[
                "total_refunded",
                "refund_count",
                "is_fully_refunded",
                "last_refund_at",
                "updated_at",
            ]
        )

        cls.get_logger().info(
            "Recomputed refund totals",
            extra={
                "transaction_id": str(tx.id),
                "total_refunded": str(tx.total_refunded),
                "refund_count": tx.refund_count,
                "is_fully_refunded": tx.is_fully_refunded,
            },
        )
        return tx
