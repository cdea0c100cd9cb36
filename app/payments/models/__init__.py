"""
Payment domain models.

- PaymentTransaction: One row per gateway payment attempt
- LedgerEntry: Append-only money movements per order (payments.ledger)
- Refund: Gateway-reported refunds with django-fsm states
- ExchangeRate: Rates into the base currency used by the normalizer
- WebhookEvent: Append-only log of inbound gateway webhooks
"""

from payments.ledger.models import LedgerEntry
from payments.models.exchange_rate import ExchangeRate
from payments.models.refund import Refund
from payments.models.transaction import PaymentTransaction
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "ExchangeRate",
    "LedgerEntry",
    "PaymentTransaction",
    "Refund",
    "WebhookEvent",
]
