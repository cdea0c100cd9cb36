"""
Webhook handling for gateway payment and refund notifications.

Modules:
    gateways: Per-gateway payload parsing (fee and net amount)
    reconciliation: WebhookReconciliationService, the atomic engine
    views: HTTP endpoints (Stripe, and shared-secret reconcile calls)

Usage:
    # In urls.py
    from payments.webhooks.views import ReconcilePaymentWebhookView, stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
        path("webhooks/reconcile/", ReconcilePaymentWebhookView.as_view(), name="reconcile_webhook"),
    ]
"""
