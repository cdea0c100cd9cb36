"""
Django admin configuration for the ledger.

LedgerEntry is read-only here: no add, change or delete. Manual entries go
through the manual-entry API so they are permission-checked, balanced and
re-projected like every other append.
"""

from django.contrib import admin

from .models import LedgerEntry


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    """Read-only view of ledger entries and their balance chain."""

    list_display = [
        "created_at",
        "order",
        "sequence",
        "entry_type",
        "amount_display",
        "base_amount",
        "balance_after",
        "status",
        "is_fallback_rate",
        "created_by",
    ]
    list_filter = ["entry_type", "status", "is_fallback_rate", "currency"]
    search_fields = [
        "id",
        "idempotency_key",
        "reference_number",
        "order__order_number",
        "payment_transaction__gateway_transaction_id",
        "created_by",
    ]
    list_select_related = ["order"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            "Entry Details",
            {
                "fields": (
                    "id",
                    "order",
                    "payment_transaction",
                    "sequence",
                    "entry_type",
                    "status",
                    "created_at",
                ),
            },
        ),
        (
            "Amounts",
            {
                "fields": (
                    "amount",
                    "currency",
                    "base_amount",
                    "base_currency",
                    "exchange_rate",
                    "is_fallback_rate",
                    "balance_before",
                    "balance_after",
                ),
            },
        ),
        (
            "Audit",
            {
                "fields": (
                    "reference_number",
                    "idempotency_key",
                    "notes",
                    "created_by",
                    "gateway_response",
                ),
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    @admin.display(description="Amount")
    def amount_display(self, obj: LedgerEntry) -> str:
        return f"{obj.amount} {obj.currency}"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False
