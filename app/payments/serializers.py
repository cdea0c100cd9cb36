"""
DRF serializers for the payments app.

This module provides serializers for:
- Gateway notifications posted to the reconcile endpoints
- Reconciliation results
- Ledger entries and the per-order ledger view
- Manual ledger entry requests
- Refund eligibility

Related files:
    - webhooks/views.py: Reconcile and Stripe endpoints
    - views.py: Order ledger view

Usage:
    serializer = PaymentWebhookRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = PaymentWebhookInput(**serializer.validated_data)
"""

from __future__ import annotations

from rest_framework import serializers

from payments.ledger.models import LedgerEntry
from payments.services.manual_entries import MANUAL_ENTRY_TYPES
from payments.state_machines import GatewayCode, PaymentStatus, RefundState, WebhookOutcome


# =============================================================================
# Webhook Requests
# =============================================================================


class PaymentWebhookRequestSerializer(serializers.Serializer):
    """
    Payment outcome posted by a gateway integration.

    Only the shape is checked here; amount sign, currency and order
    existence are validated by the reconciliation engine so that every
    caller gets the same error codes.
    """

    order_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=True,
        help_text="Orders the payment settles, primary order first",
    )
    outcome = serializers.ChoiceField(choices=WebhookOutcome.choices)
    gateway_transaction_id = serializers.CharField(max_length=255)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    currency = serializers.CharField(max_length=3)
    payment_method = serializers.ChoiceField(choices=GatewayCode.choices)
    transaction_id = serializers.CharField(required=False, allow_blank=True, default="")
    customer_email = serializers.EmailField(required=False, allow_blank=True, default="")
    customer_name = serializers.CharField(required=False, allow_blank=True, default="")
    customer_phone = serializers.CharField(required=False, allow_blank=True, default="")
    gateway_response = serializers.JSONField(required=False, default=dict)
    guest_session_token = serializers.CharField(
        required=False,
        allow_null=True,
        allow_blank=True,
        default=None,
    )
    guest_session_data = serializers.JSONField(required=False, allow_null=True, default=None)
    create_order = serializers.BooleanField(required=False, default=False)


class RefundWebhookRequestSerializer(serializers.Serializer):
    """Refund outcome posted by a gateway integration."""

    gateway_transaction_id = serializers.CharField(max_length=255)
    payment_method = serializers.ChoiceField(choices=GatewayCode.choices)
    gateway_refund_id = serializers.CharField(max_length=255)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    currency = serializers.CharField(max_length=3)
    status = serializers.ChoiceField(
        choices=RefundState.choices,
        required=False,
        default=RefundState.COMPLETED,
    )
    reason_code = serializers.CharField(required=False, default="CUSTOMER_REQUEST")
    reason_description = serializers.CharField(required=False, allow_blank=True, default="")
    failure_reason = serializers.CharField(required=False, allow_blank=True, default="")
    gateway_response = serializers.JSONField(required=False, default=dict)


class ReconciliationResultSerializer(serializers.Serializer):
    """Response body of the reconcile endpoints."""

    success = serializers.BooleanField()
    transaction_id = serializers.CharField(allow_null=True)
    ledger_entry_id = serializers.CharField(allow_null=True)
    fee_ledger_entry_id = serializers.CharField(allow_null=True)
    ledger_entry_ids = serializers.ListField(child=serializers.CharField())
    refund_id = serializers.CharField(allow_null=True)
    order_updated = serializers.BooleanField()
    guest_session_updated = serializers.BooleanField()
    created_order_id = serializers.CharField(allow_null=True)
    error_message = serializers.CharField(allow_null=True)
    error_code = serializers.CharField(allow_null=True)


class ErrorResponseSerializer(serializers.Serializer):
    error = serializers.CharField(help_text="Error description")
    error_code = serializers.CharField(required=False)


# =============================================================================
# Ledger
# =============================================================================


class LedgerEntrySerializer(serializers.ModelSerializer):
    """Read-only view of one ledger entry."""

    class Meta:
        model = LedgerEntry
        fields = [
            "id",
            "sequence",
            "entry_type",
            "amount",
            "currency",
            "base_amount",
            "base_currency",
            "exchange_rate",
            "is_fallback_rate",
            "balance_before",
            "balance_after",
            "reference_number",
            "status",
            "notes",
            "created_by",
            "payment_transaction",
            "created_at",
        ]
        read_only_fields = fields


class OrderLedgerSerializer(serializers.Serializer):
    """An order's ledger with its running balance and derived status."""

    order_id = serializers.UUIDField()
    total_due = serializers.DecimalField(max_digits=14, decimal_places=2)
    balance = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_status = serializers.ChoiceField(choices=PaymentStatus.choices)
    amount_paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    overpayment_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    entries = LedgerEntrySerializer(many=True)


class ManualLedgerEntryRequestSerializer(serializers.Serializer):
    """
    Manual entry recorded by back-office staff.

    Adjustments may be negative; every other kind must be positive.
    """

    entry_type = serializers.ChoiceField(choices=[(t.value, t.label) for t in MANUAL_ENTRY_TYPES])
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    currency = serializers.CharField(max_length=3)
    reference_number = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    idempotency_key = serializers.CharField(
        required=False,
        allow_null=True,
        allow_blank=True,
        default=None,
        help_text="Client-supplied key making retries safe",
    )


# =============================================================================
# Refunds
# =============================================================================


class RefundEligibilitySerializer(serializers.Serializer):
    """Whether a transaction accepts a new refund."""

    transaction_id = serializers.UUIDField()
    can_refund = serializers.BooleanField()
    refundable_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    currency = serializers.CharField()
    reason = serializers.CharField()
    reason_code = serializers.CharField()
