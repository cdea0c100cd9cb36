"""
Tests for webhook views.

Tests cover:
- Stripe signature verification
- Stripe event mapping (payment intents, refunds, ignored events)
- Shared-secret reconcile endpoints
- Status codes gateways use to decide on retries
- The webhook event log
"""

import json
from decimal import Decimal
from unittest.mock import patch

import pytest
import stripe
from django.urls import reverse
from rest_framework.test import APIClient

from payments.ledger.models import LedgerEntry
from payments.ledger.services import ledger
from payments.models import PaymentTransaction, Refund, WebhookEvent
from payments.state_machines import (
    LedgerEntryType,
    PaymentStatus,
    RefundState,
    TransactionStatus,
)


# =============================================================================
# Setup
# =============================================================================


VERIFY_HEADER = "payments.webhooks.views.stripe.WebhookSignature.verify_header"


@pytest.fixture
def api_client():
    return APIClient()


def post_stripe_event(client, event: dict, signature: str = "t=1614556800,v1=test"):
    """POST an event to the Stripe endpoint with signature checks stubbed out."""
    with patch(VERIFY_HEADER, return_value=True):
        return client.post(
            reverse("payments:stripe_webhook"),
            data=json.dumps(event),
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature,
        )


def intent_event(intent: dict, event_type: str = "payment_intent.succeeded") -> dict:
    return {"id": "evt_test_1", "type": event_type, "data": {"object": intent}}


# =============================================================================
# Stripe Signature Verification
# =============================================================================


class TestStripeWebhookSignature:
    def test_missing_signature_returns_400(self, client, db):
        response = client.post(
            reverse("payments:stripe_webhook"),
            data=json.dumps({"id": "evt_test"}),
            content_type="application/json",
        )

        assert response.status_code == 400
        assert b"Missing signature" in response.content

    def test_invalid_signature_returns_400(self, client, db):
        with patch(VERIFY_HEADER) as mock_verify:
            mock_verify.side_effect = stripe.SignatureVerificationError(
                "No signatures found matching the expected signature", "t=1,v1=bad"
            )

            response = client.post(
                reverse("payments:stripe_webhook"),
                data=json.dumps({"id": "evt_test", "type": "payment_intent.succeeded"}),
                content_type="application/json",
                HTTP_STRIPE_SIGNATURE="t=1,v1=bad",
            )

        assert response.status_code == 400
        assert b"Invalid signature" in response.content
        assert not PaymentTransaction.objects.exists()

    def test_non_json_payload_returns_400(self, client, db):
        with patch(VERIFY_HEADER, return_value=True):
            response = client.post(
                reverse("payments:stripe_webhook"),
                data="not json",
                content_type="application/json",
                HTTP_STRIPE_SIGNATURE="t=1,v1=test",
            )

        assert response.status_code == 400
        assert b"Invalid payload" in response.content

    def test_get_not_allowed(self, client, db):
        response = client.get(reverse("payments:stripe_webhook"))

        assert response.status_code == 405


# =============================================================================
# Stripe Event Mapping
# =============================================================================


class TestStripePaymentEvents:
    def test_succeeded_intent_is_reconciled(self, client, order, stripe_intent):
        stripe_intent["metadata"] = {"order_ids": str(order.id)}

        response = post_stripe_event(client, intent_event(stripe_intent))

        assert response.status_code == 200
        body = response.json()
        assert body["results"][0]["success"] is True
        tx = PaymentTransaction.objects.get(gateway_transaction_id="pi_test_stripe_1")
        assert tx.status == TransactionStatus.COMPLETED
        assert tx.amount == Decimal("100.00")
        assert tx.gateway_fee_amount == Decimal("3.20")
        assert tx.customer_name == "Buyer One"
        assert ledger.get_balance(order.id) == Decimal("96.80")
        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.PAID

    def test_intent_metadata_carries_several_orders(self, client, order, second_order, stripe_intent):
        stripe_intent["amount_received"] = 15000
        stripe_intent["latest_charge"] = None
        stripe_intent["metadata"] = {"order_ids": f"{order.id}, {second_order.id}"}

        response = post_stripe_event(client, intent_event(stripe_intent))

        assert response.status_code == 200
        assert len(response.json()["results"][0]["ledger_entry_ids"]) == 2

    def test_failed_intent_expires_guest_session(self, client, order, guest_session, stripe_intent):
        stripe_intent["metadata"] = {
            "order_ids": str(order.id),
            "guest_session_token": guest_session.session_token,
        }

        response = post_stripe_event(
            client, intent_event(stripe_intent, "payment_intent.payment_failed")
        )

        assert response.status_code == 200
        guest_session.refresh_from_db()
        assert guest_session.status == "expired"
        assert not LedgerEntry.objects.exists()

    def test_processing_intent_records_pending(self, client, order, stripe_intent):
        stripe_intent["metadata"] = {"order_ids": str(order.id)}

        response = post_stripe_event(
            client, intent_event(stripe_intent, "payment_intent.processing")
        )

        assert response.status_code == 200
        tx = PaymentTransaction.objects.get(gateway_transaction_id="pi_test_stripe_1")
        assert tx.status == TransactionStatus.PENDING

    def test_create_order_flag_from_metadata(self, client, order, stripe_intent):
        stripe_intent["metadata"] = {"order_ids": str(order.id), "create_order": "true"}

        response = post_stripe_event(client, intent_event(stripe_intent))

        assert response.json()["results"][0]["created_order_id"] is not None

    def test_rolled_back_reconciliation_returns_400(self, client, db, stripe_intent):
        stripe_intent["metadata"] = {"order_ids": "7d4a1c52-1111-4e4e-9a9a-000000000000"}

        response = post_stripe_event(client, intent_event(stripe_intent))

        assert response.status_code == 400
        assert response.json()["results"][0]["error_code"] == "ORDER_NOT_FOUND"

    def test_unhandled_event_is_acknowledged(self, client, db):
        response = post_stripe_event(
            client,
            {"id": "evt_other", "type": "customer.created", "data": {"object": {}}},
        )

        assert response.status_code == 200
        assert response.content == b"Ignored"


class TestStripeRefundEvents:
    @pytest.fixture
    def paid_intent(self, client, order, stripe_intent):
        stripe_intent["latest_charge"] = None
        stripe_intent["metadata"] = {"order_ids": str(order.id)}
        post_stripe_event(client, intent_event(stripe_intent))
        return stripe_intent

    def test_charge_refunded_books_each_refund(self, client, order, paid_intent):
        charge = {
            "id": "ch_test_1",
            "object": "charge",
            "payment_intent": paid_intent["id"],
            "refunds": {
                "data": [
                    {"id": "re_1", "amount": 2500, "currency": "usd", "status": "succeeded"},
                    {"id": "re_2", "amount": 1500, "currency": "usd", "status": "pending"},
                ]
            },
        }

        response = post_stripe_event(
            client,
            {"id": "evt_refund", "type": "charge.refunded", "data": {"object": charge}},
        )

        assert response.status_code == 200
        assert len(response.json()["results"]) == 2
        assert Refund.objects.get(gateway_refund_id="re_1").state == RefundState.COMPLETED
        assert Refund.objects.get(gateway_refund_id="re_2").state == RefundState.PROCESSING
        assert ledger.get_balance(order.id) == Decimal("75.00")

    def test_refund_updated_completes_refund(self, client, order, paid_intent):
        refund = {
            "id": "re_3",
            "object": "refund",
            "amount": 10000,
            "currency": "usd",
            "payment_intent": paid_intent["id"],
            "status": "pending",
        }
        post_stripe_event(
            client,
            {"id": "evt_r1", "type": "charge.refund.updated", "data": {"object": refund}},
        )

        refund["status"] = "succeeded"
        response = post_stripe_event(
            client,
            {"id": "evt_r2", "type": "charge.refund.updated", "data": {"object": refund}},
        )

        assert response.status_code == 200
        assert LedgerEntry.objects.filter(
            order=order, entry_type=LedgerEntryType.REFUND
        ).count() == 1
        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.UNPAID

    def test_refund_for_unknown_payment_returns_400(self, client, db):
        refund = {
            "id": "re_4",
            "amount": 100,
            "currency": "usd",
            "payment_intent": "pi_unknown",
            "status": "succeeded",
        }

        response = post_stripe_event(
            client,
            {"id": "evt_r3", "type": "charge.refund.updated", "data": {"object": refund}},
        )

        assert response.status_code == 400
        assert response.json()["results"][0]["error_code"] == "TRANSACTION_NOT_FOUND"


# =============================================================================
# Shared-Secret Reconcile Endpoints
# =============================================================================


def payment_body(order, **overrides):
    body = {
        "order_ids": [str(order.id)],
        "outcome": "success",
        "gateway_transaction_id": "5O190127TN364715T",
        "amount": "100.00",
        "currency": "USD",
        "payment_method": "paypal",
        "customer_email": "buyer@example.com",
    }
    body.update(overrides)
    return body


class TestReconcilePaymentWebhookView:
    def test_missing_secret_returns_401(self, api_client, order, webhook_secret):
        response = api_client.post(
            reverse("payments:reconcile_webhook"), payment_body(order), format="json"
        )

        assert response.status_code == 401
        assert response.data["error_code"] == "UNAUTHORIZED"
        assert not PaymentTransaction.objects.exists()

    def test_wrong_secret_returns_401(self, api_client, order, webhook_secret):
        response = api_client.post(
            reverse("payments:reconcile_webhook"),
            payment_body(order),
            format="json",
            HTTP_X_WEBHOOK_SECRET="wrong",
        )

        assert response.status_code == 401

    def test_unconfigured_secret_rejects_everything(self, api_client, order, settings):
        settings.PAYMENTS_WEBHOOK_SECRET = ""

        response = api_client.post(
            reverse("payments:reconcile_webhook"),
            payment_body(order),
            format="json",
            HTTP_X_WEBHOOK_SECRET="",
        )

        assert response.status_code == 401

    def test_reconciles_with_valid_secret(self, api_client, order, paypal_capture, webhook_secret):
        response = api_client.post(
            reverse("payments:reconcile_webhook"),
            payment_body(order, gateway_response=paypal_capture),
            format="json",
            HTTP_X_WEBHOOK_SECRET=webhook_secret,
        )

        assert response.status_code == 200
        assert response.data["success"] is True
        assert response.data["fee_ledger_entry_id"] is not None
        tx = PaymentTransaction.objects.get(id=response.data["transaction_id"])
        assert tx.created_by == "system:webhook:paypal"

    def test_malformed_body_returns_400(self, api_client, order, webhook_secret):
        response = api_client.post(
            reverse("payments:reconcile_webhook"),
            payment_body(order, amount="lots", outcome="maybe"),
            format="json",
            HTTP_X_WEBHOOK_SECRET=webhook_secret,
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_PAYMENT_DATA"
        assert set(response.data["details"]) == {"amount", "outcome"}

    def test_domain_failure_returns_400(self, api_client, order, webhook_secret):
        response = api_client.post(
            reverse("payments:reconcile_webhook"),
            payment_body(order, order_ids=[]),
            format="json",
            HTTP_X_WEBHOOK_SECRET=webhook_secret,
        )

        assert response.status_code == 400
        assert response.data["success"] is False
        assert response.data["error_code"] == "INVALID_PAYMENT_DATA"


class TestReconcileRefundWebhookView:
    def test_reconciles_refund(self, api_client, order, webhook_secret):
        api_client.post(
            reverse("payments:reconcile_webhook"),
            payment_body(order),
            format="json",
            HTTP_X_WEBHOOK_SECRET=webhook_secret,
        )

        response = api_client.post(
            reverse("payments:reconcile_refund_webhook"),
            {
                "gateway_transaction_id": "5O190127TN364715T",
                "payment_method": "paypal",
                "gateway_refund_id": "1JU08902781691411",
                "amount": "30.00",
                "currency": "USD",
            },
            format="json",
            HTTP_X_WEBHOOK_SECRET=webhook_secret,
        )

        assert response.status_code == 200
        assert response.data["refund_id"] is not None
        assert response.data["ledger_entry_id"] is not None
        order.refresh_from_db()
        assert order.amount_paid == Decimal("70.00")

    def test_requires_secret(self, api_client, db, webhook_secret):
        response = api_client.post(
            reverse("payments:reconcile_refund_webhook"), {}, format="json"
        )

        assert response.status_code == 401

    def test_missing_fields_return_400(self, api_client, db, webhook_secret):
        response = api_client.post(
            reverse("payments:reconcile_refund_webhook"),
            {"payment_method": "paypal"},
            format="json",
            HTTP_X_WEBHOOK_SECRET=webhook_secret,
        )

        assert response.status_code == 400
        assert "gateway_refund_id" in response.data["details"]


# =============================================================================
# Webhook Event Log
# =============================================================================


class TestWebhookEventLog:
    def test_applied_stripe_event_is_logged(self, client, order, stripe_intent):
        stripe_intent["metadata"] = {"order_ids": str(order.id)}

        post_stripe_event(client, intent_event(stripe_intent))

        event = WebhookEvent.objects.get()
        assert event.gateway == "stripe"
        assert event.event_type == "payment_intent.succeeded"
        assert event.event_id == "evt_test_1"
        assert event.response_code == 200
        assert event.success is True
        assert event.payload["data"]["object"]["id"] == "pi_test_stripe_1"
        assert event.response_body["results"][0]["success"] is True
        assert event.endpoint == reverse("payments:stripe_webhook")

    def test_invalid_signature_logged_without_payload(self, client, db):
        with patch(VERIFY_HEADER) as mock_verify:
            mock_verify.side_effect = stripe.SignatureVerificationError("bad", "t=1,v1=bad")
            client.post(
                reverse("payments:stripe_webhook"),
                data=json.dumps({"id": "evt_forged", "type": "payment_intent.succeeded"}),
                content_type="application/json",
                HTTP_STRIPE_SIGNATURE="t=1,v1=bad",
            )

        event = WebhookEvent.objects.get()
        assert event.success is False
        assert event.response_code == 400
        assert event.error_code == "INVALID_SIGNATURE"
        assert event.payload == {}

    def test_ignored_stripe_event_is_logged(self, client, db):
        post_stripe_event(client, {"id": "evt_other", "type": "customer.created", "data": {"object": {}}})

        event = WebhookEvent.objects.get()
        assert event.event_type == "customer.created"
        assert event.success is True

    def test_every_delivery_gets_a_row(self, client, order, stripe_intent):
        stripe_intent["metadata"] = {"order_ids": str(order.id)}

        post_stripe_event(client, intent_event(stripe_intent))
        post_stripe_event(client, intent_event(stripe_intent))

        assert WebhookEvent.objects.filter(event_id="evt_test_1").count() == 2
        assert LedgerEntry.objects.filter(entry_type=LedgerEntryType.CUSTOMER_PAYMENT).count() == 1

    def test_non_finite_stripe_amount_is_rejected_and_logged(self, client, order, stripe_intent):
        stripe_intent["metadata"] = {"order_ids": str(order.id)}
        stripe_intent["amount_received"] = "NaN"

        response = post_stripe_event(client, intent_event(stripe_intent))

        assert response.status_code == 400
        assert response.json()["results"][0]["error_code"] == "INVALID_PAYMENT_DATA"
        assert not PaymentTransaction.objects.exists()
        assert WebhookEvent.objects.get().error_code == "INVALID_PAYMENT_DATA"

    def test_reconcile_endpoint_logs_outcome(self, api_client, order, webhook_secret):
        api_client.post(
            reverse("payments:reconcile_webhook"),
            payment_body(order),
            format="json",
            HTTP_X_WEBHOOK_SECRET=webhook_secret,
        )

        event = WebhookEvent.objects.get()
        assert event.gateway == "paypal"
        assert event.event_type == "payment.success"
        assert event.event_id == "5O190127TN364715T"
        assert event.payload["amount"] == "100.00"
        assert event.success is True

    def test_rolled_back_notification_logged_with_error(self, api_client, order, webhook_secret):
        missing = "7d4a1c52-1111-4e4e-9a9a-000000000000"

        api_client.post(
            reverse("payments:reconcile_webhook"),
            payment_body(order, order_ids=[missing]),
            format="json",
            HTTP_X_WEBHOOK_SECRET=webhook_secret,
        )

        event = WebhookEvent.objects.get()
        assert event.success is False
        assert event.response_code == 400
        assert event.error_code == "ORDER_NOT_FOUND"

    def test_unauthorized_request_logged_without_payload(self, api_client, order, webhook_secret):
        api_client.post(
            reverse("payments:reconcile_refund_webhook"),
            {"gateway_refund_id": "re_x", "payment_method": "payu"},
            format="json",
            HTTP_X_WEBHOOK_SECRET="wrong",
        )

        event = WebhookEvent.objects.get()
        assert event.response_code == 401
        assert event.error_code == "UNAUTHORIZED"
        assert event.event_id == "re_x"
        assert event.payload == {}
