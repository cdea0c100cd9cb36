"""
Tests for payments app.

This package contains test modules for:
- test_models.py: PaymentTransaction, Refund, ExchangeRate and WebhookEvent model tests
- test_currency.py: CurrencyNormalizer tests
- test_transaction_registry.py: TransactionRegistry tests
- test_refund_service.py: RefundService tests
- test_status_projector.py: StatusProjector tests
- test_manual_entries.py: ManualLedgerService tests
- test_views.py: Order ledger and refund eligibility API tests

Ledger and webhook tests live in payments/ledger/tests and
payments/webhooks/tests.

Usage:
    pytest payments/tests/
    pytest payments/tests/test_refund_service.py
"""
