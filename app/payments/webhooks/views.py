"""
Webhook endpoint views.

Endpoints:
    POST /api/v1/payments/webhooks/stripe/ - Stripe events (signature verified)
    POST /api/v1/payments/webhooks/reconcile/ - Generic payment notification
    POST /api/v1/payments/webhooks/reconcile/refund/ - Generic refund notification

Every endpoint reconciles synchronously inside one database transaction
and answers with 200 when the event was applied (or already had been) and
400 when it was rolled back, which is the gateway's signal to retry.
Every answered request is appended to the WebhookEvent log.

Security:
    - Stripe requests are verified with the stripe library
    - Generic endpoints require the shared secret in X-Webhook-Secret
    - CSRF exemption required for external webhooks

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import json
import logging
from typing import Any

from django.conf import settings
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

import stripe
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.helpers import get_client_ip, secrets_match
from payments.serializers import (
    ErrorResponseSerializer,
    PaymentWebhookRequestSerializer,
    ReconciliationResultSerializer,
    RefundWebhookRequestSerializer,
)
from payments.exceptions import InvalidPaymentData
from payments.state_machines import GatewayCode, RefundState, WebhookOutcome
from payments.types import Actor

from .events import record_webhook_event
from .gateways import from_minor_units
from .reconciliation import (
    PaymentWebhookInput,
    ReconciliationResult,
    RefundWebhookInput,
    WebhookReconciliationService,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Stripe Event Mapping
# =============================================================================


PAYMENT_INTENT_OUTCOMES = {
    "payment_intent.succeeded": WebhookOutcome.SUCCESS,
    "payment_intent.payment_failed": WebhookOutcome.FAILED,
    "payment_intent.processing": WebhookOutcome.PENDING,
}

REFUND_EVENTS = ("charge.refunded", "charge.refund.updated")

STRIPE_REFUND_STATES = {
    "succeeded": RefundState.COMPLETED,
    "pending": RefundState.PROCESSING,
    "requires_action": RefundState.PROCESSING,
    "failed": RefundState.FAILED,
    "canceled": RefundState.FAILED,
}


def _truthy(value: Any) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes")


def _payment_input_from_intent(intent: dict[str, Any], outcome: str) -> PaymentWebhookInput:
    """
    Build the engine input from a PaymentIntent.

    Order ids, the guest session token and the order creation flag travel
    in the intent metadata, set when the intent was created at checkout.
    """
    metadata = intent.get("metadata") or {}
    currency = (intent.get("currency") or "").upper()
    minor_amount = intent.get("amount_received") or intent.get("amount")
    amount = from_minor_units(minor_amount, currency) if currency else None

    billing = {}
    latest_charge = intent.get("latest_charge")
    if isinstance(latest_charge, dict):
        billing = latest_charge.get("billing_details") or {}

    return PaymentWebhookInput(
        order_ids=[oid.strip() for oid in (metadata.get("order_ids") or "").split(",") if oid.strip()],
        outcome=outcome,
        gateway_transaction_id=intent.get("id") or "",
        amount=amount,
        currency=currency,
        payment_method=GatewayCode.STRIPE,
        transaction_id=metadata.get("transaction_id", ""),
        customer_email=intent.get("receipt_email") or billing.get("email") or "",
        customer_name=billing.get("name") or metadata.get("customer_name", ""),
        customer_phone=billing.get("phone") or metadata.get("customer_phone", ""),
        gateway_response=intent,
        guest_session_token=metadata.get("guest_session_token") or None,
        create_order=_truthy(metadata.get("create_order", "")),
    )


def _refund_input(refund: dict[str, Any], payment_intent_id: str) -> RefundWebhookInput:
    currency = (refund.get("currency") or "").upper()
    return RefundWebhookInput(
        gateway_transaction_id=payment_intent_id,
        payment_method=GatewayCode.STRIPE,
        gateway_refund_id=refund.get("id") or "",
        amount=from_minor_units(refund.get("amount"), currency) if currency else None,
        currency=currency,
        status=STRIPE_REFUND_STATES.get(refund.get("status"), RefundState.PROCESSING),
        reason_code=(refund.get("reason") or "CUSTOMER_REQUEST").upper(),
        failure_reason=refund.get("failure_reason") or "",
        gateway_response=refund,
    )


def _refund_inputs_from_event(event_type: str, obj: dict[str, Any]) -> list[RefundWebhookInput]:
    if event_type == "charge.refund.updated":
        return [_refund_input(obj, obj.get("payment_intent") or "")]

    # charge.refunded carries the charge with its refunds list
    refunds = (obj.get("refunds") or {}).get("data") or []
    payment_intent_id = obj.get("payment_intent") or ""
    return [_refund_input(refund, payment_intent_id) for refund in refunds]


def _result_response(results: list[ReconciliationResult]) -> JsonResponse:
    failed = [r for r in results if not r.success]
    body = {"results": [r.to_dict() for r in results]}
    return JsonResponse(body, status=400 if failed else 200)


def _reconcile_stripe_event(event_type: str, obj: dict[str, Any]) -> list[ReconciliationResult]:
    actor = Actor.system("webhook:stripe")
    try:
        if event_type in PAYMENT_INTENT_OUTCOMES:
            inputs = [_payment_input_from_intent(obj, PAYMENT_INTENT_OUTCOMES[event_type])]
        else:
            inputs = _refund_inputs_from_event(event_type, obj)
    except InvalidPaymentData as exc:
        logger.warning(
            f"Stripe event carries malformed data: {exc.message}",
            extra={"event_type": event_type, "error_code": exc.error_code},
        )
        return [ReconciliationResult.failure(exc.message, exc.error_code)]

    if event_type in PAYMENT_INTENT_OUTCOMES:
        return [WebhookReconciliationService.process_payment_webhook(inputs[0], actor)]
    return [WebhookReconciliationService.process_refund_webhook(data, actor) for data in inputs]


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and reconcile Stripe webhook events.

    This view:
    1. Verifies the webhook signature using Stripe's library
    2. Maps PaymentIntent and refund events to engine inputs
    3. Reconciles them synchronously (each in its own atomic unit)
    4. Records the request in the webhook event log
    5. Returns 200 if applied, 400 if rolled back so Stripe retries

    Events this integration does not reconcile are acknowledged with 200
    so Stripe stops redelivering them.

    Example Stripe-Signature header:
        t=1614556800,v1=xxx,v0=yyy
    """
    signature = request.headers.get("Stripe-Signature", "")
    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        record_webhook_event(
            request,
            gateway=GatewayCode.STRIPE,
            status_code=400,
            error_code="MISSING_SIGNATURE",
            error_message="Missing signature",
        )
        return HttpResponse("Missing signature", status=400)

    try:
        payload = request.body.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            payload,
            signature,
            settings.STRIPE_WEBHOOK_SECRET,
        )
        event = json.loads(payload)
    except stripe.SignatureVerificationError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        record_webhook_event(
            request,
            gateway=GatewayCode.STRIPE,
            status_code=400,
            error_code="INVALID_SIGNATURE",
            error_message="Invalid signature",
        )
        return HttpResponse("Invalid signature", status=400)
    except ValueError:
        logger.warning("Webhook payload is not valid JSON")
        record_webhook_event(
            request,
            gateway=GatewayCode.STRIPE,
            status_code=400,
            error_code="INVALID_PAYLOAD",
            error_message="Invalid payload",
        )
        return HttpResponse("Invalid payload", status=400)

    event_id = event.get("id")
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={"stripe_event_id": event_id, "event_type": event_type},
    )

    if event_type in PAYMENT_INTENT_OUTCOMES or event_type in REFUND_EVENTS:
        results = _reconcile_stripe_event(event_type, obj)
        response = _result_response(results)
    else:
        logger.debug(
            "Ignoring unhandled Stripe event type",
            extra={"stripe_event_id": event_id, "event_type": event_type},
        )
        results = []
        response = HttpResponse("Ignored", status=200)

    record_webhook_event(
        request,
        gateway=GatewayCode.STRIPE,
        status_code=response.status_code,
        event_type=event_type or "",
        event_id=event_id or "",
        payload=event,
        results=results,
    )
    return response


# =============================================================================
# Generic Reconcile Endpoints
# =============================================================================


class SharedSecretWebhookView(APIView):
    """
    Base view for gateway integrations that post pre-parsed notifications.

    The caller must send ``settings.PAYMENTS_WEBHOOK_SECRET`` in the
    X-Webhook-Secret header. An unset secret rejects every request.
    Every answered request is recorded in the webhook event log.

    Subclasses set ``request_serializer_class`` and implement
    ``describe`` and ``reconcile``.
    """

    permission_classes = [AllowAny]
    authentication_classes = []  # No auth required - shared-secret validation

    secret_header = "X-Webhook-Secret"
    request_serializer_class: type | None = None

    def check_secret(self, request) -> Response | None:
        provided = request.headers.get(self.secret_header, "")
        if not secrets_match(provided, settings.PAYMENTS_WEBHOOK_SECRET):
            logger.warning(
                "Webhook secret verification failed",
                extra={"path": request.path, "client_ip": get_client_ip(request)},
            )
            return Response(
                {"error": "Invalid webhook secret", "error_code": "UNAUTHORIZED"},
                status=status.HTTP_401_UNAUTHORIZED,
            )
        return None

    @staticmethod
    def result_response(result: ReconciliationResult) -> Response:
        return Response(
            result.to_dict(),
            status=status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST,
        )

    def describe(self, data: dict[str, Any]) -> tuple[str, str]:
        """Event type and identifier of a notification, for the event log."""
        raise NotImplementedError

    def reconcile(self, data: dict[str, Any], actor: Actor) -> ReconciliationResult:
        raise NotImplementedError

    def handle(self, request) -> Response:
        payload = request.data if isinstance(request.data, dict) else {}
        gateway = str(payload.get("payment_method") or "")
        event_type, event_id = self.describe(payload)

        rejected = self.check_secret(request)
        if rejected:
            record_webhook_event(
                request,
                gateway=gateway,
                status_code=rejected.status_code,
                event_type=event_type,
                event_id=event_id,
                error_code="UNAUTHORIZED",
                error_message="Invalid webhook secret",
            )
            return rejected

        serializer = self.request_serializer_class(data=request.data)
        if serializer.is_valid():
            data = serializer.validated_data
            result = self.reconcile(data, Actor.system(f"webhook:{data['payment_method']}"))
            response = self.result_response(result)
        else:
            result = ReconciliationResult.failure("Invalid payload", "INVALID_PAYMENT_DATA")
            response = Response(
                {**result.to_dict(), "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        record_webhook_event(
            request,
            gateway=gateway,
            status_code=response.status_code,
            event_type=event_type,
            event_id=event_id,
            payload=payload,
            results=[result],
        )
        return response


class ReconcilePaymentWebhookView(SharedSecretWebhookView):
    """Reconcile one payment notification posted by a gateway integration."""

    request_serializer_class = PaymentWebhookRequestSerializer

    @extend_schema(
        operation_id="reconcile_payment_webhook",
        summary="Reconcile a payment notification",
        description=(
            "Records the gateway transaction, books ledger entries on success, "
            "updates order status, transitions the guest checkout session and "
            "optionally creates the fulfillment order, all atomically. "
            "Requires the shared secret in the X-Webhook-Secret header."
        ),
        request=PaymentWebhookRequestSerializer,
        responses={
            200: ReconciliationResultSerializer,
            400: OpenApiResponse(
                response=ReconciliationResultSerializer,
                description="Invalid payload or rolled-back reconciliation",
            ),
            401: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Invalid or missing webhook secret",
            ),
        },
        tags=["Payments - Webhooks"],
    )
    def post(self, request):
        return self.handle(request)

    def describe(self, data):
        return f"payment.{data.get('outcome') or 'unknown'}", str(data.get("gateway_transaction_id") or "")

    def reconcile(self, data, actor):
        return WebhookReconciliationService.process_payment_webhook(PaymentWebhookInput(**data), actor)


class ReconcileRefundWebhookView(SharedSecretWebhookView):
    """Reconcile one refund notification posted by a gateway integration."""

    request_serializer_class = RefundWebhookRequestSerializer

    @extend_schema(
        operation_id="reconcile_refund_webhook",
        summary="Reconcile a refund notification",
        description=(
            "Records or updates the refund, recomputes transaction refund "
            "totals and books the refund ledger entries once it completes. "
            "Requires the shared secret in the X-Webhook-Secret header."
        ),
        request=RefundWebhookRequestSerializer,
        responses={
            200: ReconciliationResultSerializer,
            400: OpenApiResponse(
                response=ReconciliationResultSerializer,
                description="Invalid payload or rolled-back reconciliation",
            ),
            401: OpenApiResponse(
                response=ErrorResponseSerializer,
                description="Invalid or missing webhook secret",
            ),
        },
        tags=["Payments - Webhooks"],
    )
    def post(self, request):
        return self.handle(request)

    def describe(self, data):
        return f"refund.{data.get('status') or 'unknown'}", str(data.get("gateway_refund_id") or "")

    def reconcile(self, data, actor):
        return WebhookReconciliationService.process_refund_webhook(RefundWebhookInput(**data), actor)
