"""
Payment services.

This package provides:
- currency: CurrencyNormalizer, conversion into the base currency
- transaction_registry: TransactionRegistry, idempotent transaction upsert
- refund_service: RefundService, refund recording and aggregates
- status_projector: StatusProjector, derived order payment status
- manual_entries: ManualLedgerService, authorized manual ledger entries

Usage:
    from payments.services.refund_service import RefundService

    result = RefundService.record_refund(params, actor=actor)

Note:
    Nothing is re-exported here. payments.ledger.services imports
    payments.services.currency, and the refund service imports the
    ledger, so eager imports in this package would be circular.
"""
