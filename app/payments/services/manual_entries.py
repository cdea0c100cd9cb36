"""
Authorized manual ledger entries.

Back-office staff record money that never passes through a gateway
webhook: bank transfers confirmed by hand, store credit, and corrections.
Corrections are always new adjustment entries; nothing is edited.

Usage:
    from payments.services.manual_entries import ManualLedgerService

    result = ManualLedgerService.record_manual_entry(
        Actor.from_user(request.user),
        order_id=order.id,
        entry_type=LedgerEntryType.ADJUSTMENT,
        amount=Decimal("-5.00"),
        currency="USD",
        notes="Goodwill correction",
    )
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult
from payments.exceptions import InvalidPaymentData, Unauthorized
from payments.ledger.services import ledger
from payments.ledger.types import AppendEntryParams
from payments.state_machines import LedgerEntryType

if TYPE_CHECKING:
    from payments.ledger.models import LedgerEntry
    from payments.types import Actor

# Refunds go through RefundService and fees only arrive from gateways.
MANUAL_ENTRY_TYPES = (
    LedgerEntryType.CUSTOMER_PAYMENT,
    LedgerEntryType.CREDIT_APPLIED,
    LedgerEntryType.ADJUSTMENT,
)


class ManualLedgerService(BaseService):
    @classmethod
    def record_manual_entry(
        cls,
        actor: Actor,
        *,
        order_id: uuid.UUID,
        entry_type: str,
        amount: Decimal,
        currency: str,
        reference_number: str = "",
        notes: str = "",
        idempotency_key: str | None = None,
    ) -> ServiceResult[LedgerEntry]:
        """
        Append a manual entry on behalf of a staff member.

        Returns:
            ServiceResult with the LedgerEntry, or a failure with
            UNAUTHORIZED, INVALID_PAYMENT_DATA, ORDER_NOT_FOUND or
            RATE_UNAVAILABLE
        """
        try:
            if not actor.can_record_manual_entries():
                raise Unauthorized(
                    "Recording manual ledger entries requires staff access",
                    details={"actor": actor.identifier},
                )
            if entry_type not in MANUAL_ENTRY_TYPES:
                raise InvalidPaymentData(
                    f"Entry type {entry_type} cannot be recorded manually",
                    details={"entry_type": entry_type},
                )
            try:
                amount = Decimal(str(amount))
            except (InvalidOperation, ValueError) as exc:
                raise InvalidPaymentData(
                    f"amount is not a number: {amount!r}",
                    details={"field": "amount"},
                ) from exc
            try:
                params = AppendEntryParams(
                    order_id=order_id,
                    entry_type=entry_type,
                    amount=amount,
                    currency=currency,
                    idempotency_key=f"manual:{order_id}:{idempotency_key or uuid.uuid4()}",
                    reference_number=reference_number,
                    notes=notes,
                    created_by=actor.identifier,
                    # Staff-entered amounts must convert at a real rate
                    allow_fallback_rate=False,
                )
            except ValueError as exc:
                raise InvalidPaymentData(str(exc)) from exc

            with cls.atomic():
                entry = ledger.append_entry(params)
        except BaseApplicationError as exc:
            return cls.handle_exception(exc, "Manual ledger entry rejected", log_level=logging.WARNING)

        cls.get_logger().info(
            "Recorded manual ledger entry",
            extra={
                "entry_id": str(entry.id),
                "order_id": str(order_id),
                "entry_type": entry_type,
                "actor": actor.identifier,
            },
        )
        return ServiceResult.success(entry)
