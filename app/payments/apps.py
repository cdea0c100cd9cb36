"""
Payments app configuration.

This app provides the payment ledger and webhook reconciliation:
- Append-only per-order ledger with running balances
- Idempotent gateway transaction registry
- Refund tracking with django-fsm state transitions
- Atomic reconciliation of gateway notifications
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
