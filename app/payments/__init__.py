"""
Payments app: order ledger and gateway webhook reconciliation.

This app handles:
- Currency normalization into the base currency
- The append-only per-order ledger and its running balance
- Gateway transactions, recorded idempotently per gateway attempt
- Refunds and the transaction refund aggregates
- Derived order payment status (unpaid/partial/paid/overpaid)
- Atomic reconciliation of gateway payment and refund notifications

Related apps:
    - orders: Orders, guest checkout sessions, fulfillment orders

Usage:
    from payments.webhooks.reconciliation import WebhookReconciliationService

    result = WebhookReconciliationService.process_payment_webhook(data, actor)
"""
