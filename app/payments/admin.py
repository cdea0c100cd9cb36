"""
Payment admin configuration.

Registers payment models with the Django admin. Everything money-bearing
is read-only: transactions, refunds and ledger entries change only through
the reconciliation services, and the webhook event log is append-only.
Exchange rates are the one editable table.
"""

from django.contrib import admin

from payments.ledger.admin import LedgerEntryAdmin
from payments.models import ExchangeRate, PaymentTransaction, Refund, WebhookEvent

__all__ = [
    "ExchangeRateAdmin",
    "LedgerEntryAdmin",
    "PaymentTransactionAdmin",
    "RefundAdmin",
    "WebhookEventAdmin",
]


class ReadOnlyAdminMixin:
    """Show every field, allow no add/change/delete."""

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


class RefundInline(admin.TabularInline):
    model = Refund
    extra = 0
    can_delete = False
    fields = ["gateway_refund_id", "amount", "currency", "refund_type", "state", "completed_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for PaymentTransaction.

    Provides visibility into gateway attempts, fees and refund aggregates.
    """

    list_display = [
        "gateway_transaction_id",
        "payment_method",
        "order",
        "amount_display",
        "gateway_fee_amount",
        "status",
        "total_refunded",
        "is_fully_refunded",
        "created_at",
    ]
    list_filter = ["payment_method", "status", "is_fully_refunded", "currency"]
    search_fields = [
        "id",
        "gateway_transaction_id",
        "transaction_id",
        "customer_email",
        "order__order_number",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [RefundInline]

    fieldsets = (
        (
            None,
            {
                "fields": (
                    "id",
                    "order",
                    "transaction_id",
                    "gateway_transaction_id",
                    "payment_method",
                    "status",
                ),
            },
        ),
        (
            "Amounts",
            {
                "fields": (
                    "amount",
                    "currency",
                    "gateway_fee_amount",
                    "gateway_fee_currency",
                    "net_amount",
                ),
            },
        ),
        (
            "Refunds",
            {
                "fields": (
                    "total_refunded",
                    "refund_count",
                    "is_fully_refunded",
                    "last_refund_at",
                ),
            },
        ),
        (
            "Customer",
            {
                "fields": ("customer_name", "customer_email", "customer_phone"),
            },
        ),
        (
            "Audit",
            {
                "fields": ("gateway_response", "created_by", "created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: PaymentTransaction) -> str:
        return f"{obj.amount} {obj.currency}"


@admin.register(Refund)
class RefundAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for Refund.

    Provides visibility into refund status and history.
    """

    list_display = [
        "gateway_refund_id",
        "payment_transaction",
        "amount_display",
        "refund_type",
        "state",
        "reason_code",
        "completed_at",
        "created_at",
    ]
    list_filter = ["state", "refund_type", "gateway_code", "currency"]
    search_fields = [
        "id",
        "gateway_refund_id",
        "payment_transaction__gateway_transaction_id",
        "order__order_number",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    @admin.display(description="Amount")
    def amount_display(self, obj: Refund) -> str:
        return f"{obj.amount} {obj.currency}"


@admin.register(ExchangeRate)
class ExchangeRateAdmin(admin.ModelAdmin):
    list_display = ["currency", "rate_to_base", "effective_at", "source"]
    list_filter = ["currency", "source"]
    ordering = ["currency", "-effective_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "created_at",
        "gateway",
        "event_type",
        "event_id",
        "response_code",
        "success",
        "error_code",
    ]
    list_filter = ["gateway", "success", "response_code"]
    search_fields = ["event_id", "event_type", "error_code"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
