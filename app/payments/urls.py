"""
URL configuration for the payments app.

Routes:
    - POST /webhooks/stripe/ - Stripe webhook endpoint
    - POST /webhooks/reconcile/ - Shared-secret payment notification
    - POST /webhooks/reconcile/refund/ - Shared-secret refund notification
    - GET/POST /orders/<order_id>/ledger/ - Order ledger and manual entries
    - GET /transactions/<transaction_id>/refund-eligibility/ - Refund eligibility

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments.views import OrderLedgerView, RefundEligibilityView
from payments.webhooks.views import (
    ReconcilePaymentWebhookView,
    ReconcileRefundWebhookView,
    stripe_webhook,
)

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path(
        "webhooks/reconcile/",
        ReconcilePaymentWebhookView.as_view(),
        name="reconcile_webhook",
    ),
    path(
        "webhooks/reconcile/refund/",
        ReconcileRefundWebhookView.as_view(),
        name="reconcile_refund_webhook",
    ),
    # Ledger
    path("orders/<uuid:order_id>/ledger/", OrderLedgerView.as_view(), name="order_ledger"),
    # Refunds
    path(
        "transactions/<uuid:transaction_id>/refund-eligibility/",
        RefundEligibilityView.as_view(),
        name="refund_eligibility",
    ),
]
