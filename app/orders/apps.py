"""
Orders app configuration.

Holds the order-side collaborators of the payment ledger: customer orders
with their amount due, guest checkout sessions and the fulfillment orders
created once a payment succeeds.
"""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    """Configuration for the orders application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"
    verbose_name = "Orders"
