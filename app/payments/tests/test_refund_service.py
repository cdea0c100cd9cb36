"""
Tests for RefundService.

Covers the refundable ceiling, idempotent replays by gateway refund id,
FSM transitions, refund eligibility, aggregate recomputation and the
refund ledger entries.
"""

import uuid
from decimal import Decimal
from unittest.mock import patch

import pytest
from freezegun import freeze_time

from orders.tests.factories import OrderFactory
from payments.exceptions import InvalidPaymentData, RefundExceedsCaptured
from payments.ledger.models import LedgerEntry
from payments.ledger.services import ledger
from payments.ledger.types import AppendEntryParams
from payments.models import Refund
from payments.services.refund_service import RefundService, refund_entry_key
from payments.state_machines import (
    LedgerEntryType,
    PaymentStatus,
    RefundState,
    RefundType,
)
from payments.tests.factories import PaymentTransactionFactory, RefundFactory
from payments.types import RecordRefundParams


def refund_params(tx, refund_id, amount, **overrides):
    params = {
        "payment_transaction_id": tx.id,
        "gateway_refund_id": refund_id,
        "amount": Decimal(amount),
        "currency": tx.currency,
        "completed": True,
    }
    params.update(overrides)
    return RecordRefundParams(**params)


def fund(tx):
    """Book the customer payment a completed transaction stands for."""
    return ledger.append_entry(
        AppendEntryParams(
            order_id=tx.order_id,
            payment_transaction_id=tx.id,
            entry_type=LedgerEntryType.CUSTOMER_PAYMENT,
            amount=tx.amount,
            currency=tx.currency,
            idempotency_key=f"customer_payment:{tx.id}:{tx.order_id}",
        )
    )


# =============================================================================
# Ceiling
# =============================================================================


class TestRefundCeiling:
    def test_refund_above_gross_is_rejected(self, small_transaction, system_actor):
        result = RefundService.record_refund(
            refund_params(small_transaction, "re_too_big", "60.00"), system_actor
        )

        assert result.success is False
        assert result.error_code == "REFUND_EXCEEDS_CAPTURED"
        assert Refund.objects.count() == 0

    def test_two_halves_fully_refund(self, small_transaction, system_actor):
        fund(small_transaction)

        first = RefundService.record_refund(
            refund_params(small_transaction, "re_half_1", "25.00"), system_actor
        )
        second = RefundService.record_refund(
            refund_params(small_transaction, "re_half_2", "25.00"), system_actor
        )

        assert first.success and second.success
        small_transaction.refresh_from_db()
        assert small_transaction.total_refunded == Decimal("50.00")
        assert small_transaction.refund_count == 2
        assert small_transaction.is_fully_refunded is True
        assert small_transaction.last_refund_at is not None

    def test_third_refund_after_full_is_rejected(self, small_transaction, system_actor):
        RefundService.record_refund(refund_params(small_transaction, "re_a", "25.00"), system_actor)
        RefundService.record_refund(refund_params(small_transaction, "re_b", "25.00"), system_actor)

        result = RefundService.record_refund(
            refund_params(small_transaction, "re_c", "0.01"), system_actor
        )

        assert result.error_code == "REFUND_EXCEEDS_CAPTURED"

    def test_in_flight_refunds_count_against_ceiling(self, small_transaction, system_actor):
        RefundService.record_refund(
            refund_params(small_transaction, "re_pending", "40.00", completed=False),
            system_actor,
        )

        with pytest.raises(RefundExceedsCaptured) as exc_info:
            RefundService.apply_refund(
                refund_params(small_transaction, "re_more", "20.00"), system_actor
            )

        assert exc_info.value.refundable == Decimal("10.00")

    def test_failed_refunds_do_not_count(self, small_transaction, system_actor):
        RefundService.record_refund(
            refund_params(small_transaction, "re_failed", "50.00", completed=False, failed=True),
            system_actor,
        )

        result = RefundService.record_refund(
            refund_params(small_transaction, "re_retry", "50.00"), system_actor
        )

        assert result.success is True


# =============================================================================
# Validation
# =============================================================================


class TestRefundValidation:
    def test_currency_must_match(self, completed_transaction, system_actor):
        result = RefundService.record_refund(
            refund_params(completed_transaction, "re_eur", "10.00", currency="EUR"),
            system_actor,
        )

        assert result.error_code == "INVALID_PAYMENT_DATA"

    def test_amount_must_be_positive(self, completed_transaction, system_actor):
        with pytest.raises(InvalidPaymentData):
            RefundService.apply_refund(
                refund_params(completed_transaction, "re_zero", "0"), system_actor
            )

    @pytest.mark.parametrize("amount", ["NaN", "Infinity"])
    def test_amount_must_be_finite(self, completed_transaction, system_actor, amount):
        result = RefundService.record_refund(
            refund_params(completed_transaction, "re_nan", amount), system_actor
        )

        assert result.error_code == "INVALID_PAYMENT_DATA"
        assert Refund.objects.count() == 0

    def test_pending_transaction_cannot_be_refunded(self, pending_transaction, system_actor):
        result = RefundService.record_refund(
            refund_params(pending_transaction, "re_early", "10.00"), system_actor
        )

        assert result.error_code == "INVALID_PAYMENT_DATA"

    def test_unknown_transaction(self, db, system_actor):
        result = RefundService.record_refund(
            RecordRefundParams(
                payment_transaction_id=uuid.uuid4(),
                gateway_refund_id="re_orphan",
                amount=Decimal("1.00"),
                currency="USD",
            ),
            system_actor,
        )

        assert result.error_code == "TRANSACTION_NOT_FOUND"


# =============================================================================
# Eligibility
# =============================================================================


class TestCheckEligibility:
    def test_completed_transaction_is_eligible(self, completed_transaction):
        eligibility = RefundService.check_eligibility(completed_transaction)

        assert eligibility.can_refund is True
        assert eligibility.refundable_amount == Decimal("100.00")
        assert eligibility.reason_code == "ELIGIBLE"

    def test_pending_transaction_not_eligible(self, pending_transaction):
        eligibility = RefundService.check_eligibility(pending_transaction)

        assert eligibility.can_refund is False
        assert eligibility.reason == "Transaction not completed"

    def test_refundable_amount_excludes_in_flight(self, completed_transaction, system_actor):
        RefundService.record_refund(
            refund_params(completed_transaction, "re_inflight", "30.00", completed=False),
            system_actor,
        )

        eligibility = RefundService.check_eligibility(completed_transaction)

        assert eligibility.can_refund is True
        assert eligibility.refundable_amount == Decimal("70.00")

    def test_fully_refunded_not_eligible(self, small_transaction, system_actor):
        RefundService.record_refund(refund_params(small_transaction, "re_all", "50.00"), system_actor)
        small_transaction.refresh_from_db()

        eligibility = RefundService.check_eligibility(small_transaction)

        assert eligibility.can_refund is False
        assert eligibility.reason_code == "FULLY_REFUNDED"
        assert eligibility.refundable_amount == Decimal("0.00")

    def test_window_expires_after_180_days(self, order):
        with freeze_time("2026-01-01 12:00:00"):
            tx = PaymentTransactionFactory(order=order)

        with freeze_time("2026-06-30 12:00:00"):
            assert RefundService.check_eligibility(tx).can_refund is True
        with freeze_time("2026-06-30 12:00:01"):
            eligibility = RefundService.check_eligibility(tx)

        assert eligibility.can_refund is False
        assert eligibility.reason == "Transaction too old (>180 days)"

    def test_window_is_configurable(self, order, settings):
        settings.PAYMENTS_REFUND_WINDOW_DAYS = 0
        with freeze_time("2020-01-01"):
            tx = PaymentTransactionFactory(order=order)

        assert RefundService.check_eligibility(tx).can_refund is True

    def test_expired_window_rejects_new_refund(self, order, system_actor):
        with freeze_time("2025-01-01"):
            tx = PaymentTransactionFactory(order=order)

        result = RefundService.record_refund(refund_params(tx, "re_late", "10.00"), system_actor)

        assert result.success is False
        assert result.error_code == "INVALID_PAYMENT_DATA"
        assert Refund.objects.count() == 0

    def test_expired_window_still_completes_known_refund(self, order, system_actor):
        with freeze_time("2026-01-01"):
            tx = PaymentTransactionFactory(order=order)
            RefundService.record_refund(
                refund_params(tx, "re_slow", "10.00", completed=False), system_actor
            )

        with freeze_time("2026-12-01"):
            result = RefundService.record_refund(refund_params(tx, "re_slow", "10.00"), system_actor)

        assert result.success is True
        assert result.data.state == RefundState.COMPLETED


# =============================================================================
# Recording & Replay
# =============================================================================


class TestRecordRefund:
    def test_full_refund_books_refund_entry(self, completed_transaction, system_actor):
        fund(completed_transaction)

        result = RefundService.record_refund(
            refund_params(completed_transaction, "re_full", "100.00"), system_actor
        )

        refund = result.data
        assert refund.refund_type == RefundType.FULL
        assert refund.state == RefundState.COMPLETED
        entry = LedgerEntry.objects.get(
            idempotency_key=refund_entry_key(refund.id, completed_transaction.order_id)
        )
        assert entry.entry_type == LedgerEntryType.REFUND
        assert entry.amount == Decimal("-100.00")
        assert entry.balance_after == Decimal("0.00")
        assert entry.reference_number == "re_full"

    def test_partial_refund_reprojects_order(self, completed_transaction, system_actor):
        fund(completed_transaction)

        RefundService.record_refund(
            refund_params(completed_transaction, "re_part", "40.00"), system_actor
        )

        order = completed_transaction.order
        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.PARTIAL
        assert order.amount_paid == Decimal("60.00")
        assert LedgerEntry.objects.filter(entry_type=LedgerEntryType.PARTIAL_REFUND).count() == 1

    def test_last_refund_exhausting_remainder_is_full(self, completed_transaction, system_actor):
        RefundService.record_refund(
            refund_params(completed_transaction, "re_first", "30.00"), system_actor
        )

        result = RefundService.record_refund(
            refund_params(completed_transaction, "re_rest", "70.00"), system_actor
        )

        assert result.data.refund_type == RefundType.FULL

    def test_replay_returns_same_refund(self, completed_transaction, system_actor):
        first = RefundService.record_refund(
            refund_params(completed_transaction, "re_replay", "10.00"), system_actor
        )
        second = RefundService.record_refund(
            refund_params(completed_transaction, "re_replay", "10.00"), system_actor
        )

        assert second.data.id == first.data.id
        assert Refund.objects.count() == 1
        assert LedgerEntry.objects.filter(entry_type=LedgerEntryType.PARTIAL_REFUND).count() == 1
        completed_transaction.refresh_from_db()
        assert completed_transaction.total_refunded == Decimal("10.00")

    def test_replay_applies_completion(self, completed_transaction, system_actor):
        pending = RefundService.record_refund(
            refund_params(completed_transaction, "re_later", "10.00", completed=False),
            system_actor,
        )
        assert pending.data.state == RefundState.PROCESSING

        completed = RefundService.record_refund(
            refund_params(completed_transaction, "re_later", "10.00"), system_actor
        )

        assert completed.data.state == RefundState.COMPLETED
        assert LedgerEntry.objects.filter(
            idempotency_key=refund_entry_key(pending.data.id, completed_transaction.order_id)
        ).exists()

    def test_concurrent_insert_replays_winner(self, completed_transaction, system_actor):
        winner = RefundService.record_refund(
            refund_params(completed_transaction, "re_race", "10.00", completed=False),
            system_actor,
        ).data

        # The second delivery missed the row and lost the insert
        with patch.object(RefundService, "find_refund", side_effect=[None, winner]):
            refund = RefundService.apply_refund(
                refund_params(completed_transaction, "re_race", "10.00"), system_actor
            )

        assert refund.id == winner.id
        assert refund.state == RefundState.COMPLETED
        assert Refund.objects.filter(gateway_refund_id="re_race").count() == 1
        completed_transaction.refresh_from_db()
        assert completed_transaction.total_refunded == Decimal("10.00")


class TestSplitPaymentRefunds:
    """One transaction paying several orders refunds each order its own share."""

    @pytest.fixture
    def split_transaction(self, db):
        first = OrderFactory(total_due=Decimal("60.00"))
        second = OrderFactory(total_due=Decimal("40.00"))
        tx = PaymentTransactionFactory(order=first, amount=Decimal("100.00"))
        for order, share in ((first, Decimal("60.00")), (second, Decimal("40.00"))):
            ledger.append_entry(
                AppendEntryParams(
                    order_id=order.id,
                    payment_transaction_id=tx.id,
                    entry_type=LedgerEntryType.CUSTOMER_PAYMENT,
                    amount=share,
                    currency="USD",
                    idempotency_key=f"customer_payment:{tx.id}:{order.id}",
                )
            )
        return tx, first, second

    def test_full_refund_clears_every_order(self, split_transaction, system_actor):
        tx, first, second = split_transaction

        result = RefundService.record_refund(refund_params(tx, "re_split_full", "100.00"), system_actor)

        assert result.success is True
        for order in (first, second):
            order.refresh_from_db()
            assert order.payment_status == PaymentStatus.UNPAID
            assert order.amount_paid == Decimal("0.00")
            assert ledger.get_balance(order.id) == Decimal("0.00")
        entries = RefundService.ledger_entries(result.data)
        assert {e.order_id: e.amount for e in entries} == {
            first.id: Decimal("-60.00"),
            second.id: Decimal("-40.00"),
        }
        assert all(e.entry_type == LedgerEntryType.REFUND for e in entries)

    def test_partial_refund_drains_last_order_first(self, split_transaction, system_actor):
        tx, first, second = split_transaction

        RefundService.record_refund(refund_params(tx, "re_split_part", "50.00"), system_actor)

        first.refresh_from_db()
        second.refresh_from_db()
        assert second.amount_paid == Decimal("0.00")
        assert first.amount_paid == Decimal("50.00")
        assert first.payment_status == PaymentStatus.PARTIAL

    def test_later_refund_skips_already_refunded_order(self, split_transaction, system_actor):
        tx, first, second = split_transaction
        RefundService.record_refund(refund_params(tx, "re_split_1", "40.00"), system_actor)

        result = RefundService.record_refund(refund_params(tx, "re_split_2", "60.00"), system_actor)

        entries = RefundService.ledger_entries(result.data)
        assert [(e.order_id, e.amount) for e in entries] == [(first.id, Decimal("-60.00"))]
        assert ledger.get_balance(second.id) == Decimal("0.00")
        assert ledger.get_balance(first.id) == Decimal("0.00")

    def test_replay_books_no_extra_entries(self, split_transaction, system_actor):
        tx, _, _ = split_transaction
        RefundService.record_refund(refund_params(tx, "re_split_replay", "100.00"), system_actor)

        RefundService.record_refund(refund_params(tx, "re_split_replay", "100.00"), system_actor)

        assert LedgerEntry.objects.filter(entry_type=LedgerEntryType.REFUND).count() == 2


class TestCompleteAndFail:
    def test_complete_refund(self, completed_transaction, system_actor):
        refund = RefundFactory(payment_transaction=completed_transaction, amount=Decimal("20.00"))
        refund.process()
        refund.save()

        result = RefundService.complete_refund(refund.id, system_actor)

        assert result.success is True
        assert result.data.state == RefundState.COMPLETED
        completed_transaction.refresh_from_db()
        assert completed_transaction.total_refunded == Decimal("20.00")

    def test_complete_twice_is_rejected(self, completed_transaction, system_actor):
        refund = RefundFactory(payment_transaction=completed_transaction)
        RefundService.complete_refund(refund.id, system_actor)

        result = RefundService.complete_refund(refund.id, system_actor)

        assert result.success is False
        assert result.error_code == "INVALID_STATE_TRANSITION"

    def test_fail_refund_books_nothing(self, completed_transaction):
        refund = RefundFactory(payment_transaction=completed_transaction)

        result = RefundService.fail_refund(refund.id, "card_expired")

        assert result.data.state == RefundState.FAILED
        assert result.data.failure_reason == "card_expired"
        assert not LedgerEntry.objects.filter(entry_type__in=["refund", "partial_refund"]).exists()

    def test_unknown_refund(self, db, system_actor):
        result = RefundService.complete_refund(uuid.uuid4(), system_actor)

        assert result.error_code == "REFUND_NOT_FOUND"


class TestRecomputeRefundTotals:
    def test_recompute_is_idempotent(self, completed_transaction, system_actor):
        RefundService.record_refund(
            refund_params(completed_transaction, "re_once", "15.00"), system_actor
        )

        RefundService.recompute_refund_totals(completed_transaction)
        RefundService.recompute_refund_totals(completed_transaction)

        completed_transaction.refresh_from_db()
        assert completed_transaction.total_refunded == Decimal("15.00")
        assert completed_transaction.refund_count == 1
        assert completed_transaction.is_fully_refunded is False
