"""
Transaction registry: idempotent upsert of gateway payment attempts.

A payment attempt is identified by (gateway_transaction_id,
payment_method). Gateways deliver notifications at least once, so the
first delivery inserts the row and every later one (replay, status change,
late fee report) updates the same row in place.

Concurrency:
    The existing row is locked with SELECT ... FOR UPDATE. When two first
    deliveries race, both try to insert inside a savepoint; the unique
    constraint lets exactly one win and the loser re-reads and updates the
    winner's row.

Usage:
    from payments.services.transaction_registry import TransactionRegistry

    tx, created = TransactionRegistry.upsert_transaction(
        UpsertTransactionParams(
            gateway_transaction_id="pi_123",
            payment_method=GatewayCode.STRIPE,
            amount=Decimal("100.00"),
            currency="USD",
            status=TransactionStatus.COMPLETED,
        ),
        actor=Actor.system("webhook:stripe"),
    )
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService
from payments.exceptions import InvalidPaymentData, TransactionNotFound
from payments.models import PaymentTransaction
from payments.services.currency import quantize_money
from payments.state_machines import GatewayCode, TransactionStatus

if TYPE_CHECKING:
    import uuid

    from payments.types import Actor, UpsertTransactionParams


class TransactionRegistry(BaseService):
    """
    Service class for PaymentTransaction writes and lookups.

    Status rules on update:
        - pending may move to completed or failed
        - failed may move to completed (gateway retried the same attempt)
        - completed never moves back; later pending/failed reports are
          recorded in gateway_response but do not change status
    """

    @staticmethod
    def _resolve_status(current: str, reported: str) -> str:
        if current == TransactionStatus.COMPLETED:
            return current
        if current == TransactionStatus.FAILED and reported == TransactionStatus.PENDING:
            return current
        return reported

    @classmethod
    def _validate(cls, params: UpsertTransactionParams) -> None:
        if params.payment_method not in GatewayCode.values:
            raise InvalidPaymentData(
                f"Unknown payment method: {params.payment_method}",
                details={"payment_method": params.payment_method},
            )
        if params.status not in TransactionStatus.values:
            raise InvalidPaymentData(
                f"Unknown transaction status: {params.status}",
                details={"status": params.status},
            )
        if params.fee_amount < 0:
            raise InvalidPaymentData(
                "Gateway fee cannot be negative",
                details={"fee_amount": str(params.fee_amount)},
            )

    @staticmethod
    def _net_amount(amount: Decimal, params: UpsertTransactionParams, fee: Decimal) -> Decimal:
        if params.net_amount is not None:
            return quantize_money(params.net_amount)
        return quantize_money(amount - fee)

    @classmethod
    def lock(cls, gateway_transaction_id: str, payment_method: str) -> PaymentTransaction | None:
        """Fetch and row-lock a transaction by its gateway key. Must run in a transaction."""
        return (
            PaymentTransaction.objects.select_for_update()
            .filter(
                gateway_transaction_id=gateway_transaction_id,
                payment_method=payment_method,
            )
            .first()
        )

    @classmethod
    def upsert_transaction(
        cls,
        params: UpsertTransactionParams,
        actor: Actor | None = None,
    ) -> tuple[PaymentTransaction, bool]:
        """
        Create or update the transaction for a gateway attempt.

        Args:
            params: Attempt details reported by the gateway
            actor: Who is recording it; stored on first insert

        Returns:
            (transaction, created). Replays return the same row with
            created=False.

        Raises:
            InvalidPaymentData: For unknown gateway codes or statuses
        """
        cls._validate(params)

        with transaction.atomic():
            tx = cls.lock(params.gateway_transaction_id, params.payment_method)

            if tx is None:
                fee = quantize_money(params.fee_amount)
                try:
                    with transaction.atomic():
                        tx = PaymentTransaction.objects.create(
                            order_id=params.order_id,
                            transaction_id=params.transaction_id,
                            gateway_transaction_id=params.gateway_transaction_id,
                            payment_method=params.payment_method,
                            amount=quantize_money(params.amount),
                            currency=params.currency,
                            status=params.status,
                            gateway_fee_amount=fee,
                            gateway_fee_currency=(params.fee_currency or params.currency).upper(),
                            net_amount=cls._net_amount(params.amount, params, fee),
                            gateway_response=params.gateway_response or {},
                            customer_email=params.customer_email,
                            customer_name=params.customer_name,
                            customer_phone=params.customer_phone,
                            created_by=actor.identifier if actor else "",
                        )
                except IntegrityError:
                    # Concurrent first delivery won the insert; update its row
                    tx = cls.lock(params.gateway_transaction_id, params.payment_method)
                    if tx is None:
                        raise
                else:
                    cls.get_logger().info(
                        "Recorded payment transaction",
                        extra={
                            "transaction_id": str(tx.id),
                            "gateway_transaction_id": tx.gateway_transaction_id,
                            "payment_method": tx.payment_method,
                            "status": tx.status,
                        },
                    )
                    return tx, True

            cls._apply_update(tx, params)
            return tx, False

    @classmethod
    def _apply_update(cls, tx: PaymentTransaction, params: UpsertTransactionParams) -> None:
        previous_status = tx.status
        tx.status = cls._resolve_status(tx.status, params.status)

        if quantize_money(params.amount) != tx.amount:
            cls.get_logger().warning(
                "Gateway reported a different amount for a known transaction",
                extra={
                    "transaction_id": str(tx.id),
                    "stored_amount": str(tx.amount),
                    "reported_amount": str(params.amount),
                },
            )

        # A zero fee means "not reported" and never erases a known fee
        if params.fee_amount > 0:
            tx.gateway_fee_amount = quantize_money(params.fee_amount)
            tx.gateway_fee_currency = (params.fee_currency or tx.currency).upper()
        if params.fee_amount > 0 or params.net_amount is not None:
            tx.net_amount = cls._net_amount(tx.amount, params, tx.gateway_fee_amount)

        tx.gateway_response = {**(tx.gateway_response or {}), **(params.gateway_response or {})}

        if params.order_id and tx.order_id is None:
            tx.order_id = params.order_id
        if params.transaction_id and not tx.transaction_id:
            tx.transaction_id = params.transaction_id
        for field_name in ("customer_email", "customer_name", "customer_phone"):
            value = getattr(params, field_name)
            if value:
                setattr(tx, field_name, value)

        tx.save()

        cls.get_logger().info(
            "Updated payment transaction",
            extra={
                "transaction_id": str(tx.id),
                "gateway_transaction_id": tx.gateway_transaction_id,
                "previous_status": previous_status,
                "status": tx.status,
            },
        )

    @classmethod
    def get_by_gateway_id(cls, gateway_transaction_id: str, payment_method: str) -> PaymentTransaction:
        """
        Look up a transaction by its gateway key.

        Raises:
            TransactionNotFound: If no attempt was recorded for the key
        """
        tx = PaymentTransaction.objects.filter(
            gateway_transaction_id=gateway_transaction_id,
            payment_method=payment_method,
        ).first()
        if tx is None:
            raise TransactionNotFound(
                f"Transaction {gateway_transaction_id} ({payment_method}) not found",
                details={
                    "gateway_transaction_id": gateway_transaction_id,
                    "payment_method": payment_method,
                },
            )
        return tx

    @classmethod
    def lock_by_id(cls, transaction_id: uuid.UUID) -> PaymentTransaction:
        """
        Row-lock a transaction by primary key. Must run in a transaction.

        Raises:
            TransactionNotFound: If the id is unknown
        """
        tx = PaymentTransaction.objects.select_for_update().filter(id=transaction_id).first()
        if tx is None:
            raise TransactionNotFound(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": str(transaction_id)},
            )
        return tx
