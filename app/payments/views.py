"""
DRF views for the payments app.

Endpoints:
    GET /api/v1/payments/orders/<order_id>/ledger/ - Ordered ledger, balance and status
    POST /api/v1/payments/orders/<order_id>/ledger/ - Record a manual ledger entry
    GET /api/v1/payments/transactions/<transaction_id>/refund-eligibility/ - Refund eligibility

Related files:
    - services/manual_entries.py: ManualLedgerService
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Security:
    - Both methods require authentication (JWT or session)
    - Reading requires staff access
    - Refund eligibility requires staff access
    - Writing requires staff access or the add_manual_ledger_entry permission
"""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.models import Order
from payments.ledger.services import ledger
from payments.models import PaymentTransaction
from payments.serializers import (
    ErrorResponseSerializer,
    LedgerEntrySerializer,
    ManualLedgerEntryRequestSerializer,
    OrderLedgerSerializer,
    RefundEligibilitySerializer,
)
from payments.services.manual_entries import ManualLedgerService
from payments.services.refund_service import RefundService
from payments.services.status_projector import StatusProjector
from payments.types import Actor

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "UNAUTHORIZED": status.HTTP_403_FORBIDDEN,
    "ORDER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
}


class OrderLedgerView(APIView):
    """
    Ledger of one order for administrative tooling.

    GET returns the entries oldest first with the current balance and the
    projected payment status. POST appends a manual entry.
    """

    permission_classes = [IsAuthenticated]

    def get_permissions(self):
        if self.request.method == "GET":
            return [IsAuthenticated(), IsAdminUser()]
        # Writes are authorized by the service against the actor
        return [IsAuthenticated()]

    @extend_schema(
        operation_id="get_order_ledger",
        summary="Get order ledger",
        responses={200: OrderLedgerSerializer},
        tags=["Payments - Ledger"],
    )
    def get(self, request, order_id):
        order = get_object_or_404(Order, id=order_id)
        projection = StatusProjector.project_status(order.id, order.total_due)

        serializer = OrderLedgerSerializer(
            {
                "order_id": order.id,
                "total_due": order.total_due,
                "balance": ledger.get_balance(order.id),
                "payment_status": projection.payment_status,
                "amount_paid": projection.amount_paid,
                "overpayment_amount": projection.overpayment_amount,
                "entries": ledger.get_entries_for_order(order.id),
            }
        )
        return Response(serializer.data)

    @extend_schema(
        operation_id="create_manual_ledger_entry",
        summary="Record a manual ledger entry",
        description=(
            "Appends a customer_payment, credit_applied or adjustment entry. "
            "Corrections are new adjustment entries; existing entries are never edited."
        ),
        request=ManualLedgerEntryRequestSerializer,
        responses={
            201: LedgerEntrySerializer,
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid entry"),
            403: OpenApiResponse(response=ErrorResponseSerializer, description="Not allowed"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Order not found"),
        },
        tags=["Payments - Ledger"],
    )
    def post(self, request, order_id):
        serializer = ManualLedgerEntryRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ManualLedgerService.record_manual_entry(
            Actor.from_user(request.user),
            order_id=order_id,
            **serializer.validated_data,
        )
        if not result.success:
            return Response(
                {"error": result.error, "error_code": result.error_code},
                status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
            )

        return Response(
            LedgerEntrySerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class RefundEligibilityView(APIView):
    """Whether a payment transaction can still be refunded, and for how much."""

    permission_classes = [IsAuthenticated, IsAdminUser]

    @extend_schema(
        operation_id="get_refund_eligibility",
        summary="Get refund eligibility",
        responses={
            200: RefundEligibilitySerializer,
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Transaction not found"),
        },
        tags=["Payments - Refunds"],
    )
    def get(self, request, transaction_id):
        tx = get_object_or_404(PaymentTransaction, id=transaction_id)
        eligibility = RefundService.check_eligibility(tx)

        serializer = RefundEligibilitySerializer(
            {
                "transaction_id": tx.id,
                "can_refund": eligibility.can_refund,
                "refundable_amount": eligibility.refundable_amount,
                "currency": tx.currency,
                "reason": eligibility.reason,
                "reason_code": eligibility.reason_code,
            }
        )
        return Response(serializer.data)
