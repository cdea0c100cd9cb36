import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.db import migrations, models

GATEWAY_CHOICES = [
    ("stripe", "Stripe"),
    ("paypal", "PayPal"),
    ("payu", "PayU"),
    ("bank_transfer", "Bank Transfer"),
    ("manual", "Manual"),
]


def uuid_pk():
    return models.UUIDField(
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
        primary_key=True,
        serialize=False,
    )


def timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="ExchangeRate",
            fields=[
                ("id", uuid_pk()),
                *timestamps(),
                ("currency", models.CharField(help_text="ISO 4217 currency code", max_length=3)),
                (
                    "rate_to_base",
                    models.DecimalField(
                        decimal_places=8,
                        help_text="Base-currency units per one unit of this currency",
                        max_digits=18,
                    ),
                ),
                (
                    "effective_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When this rate starts to apply",
                    ),
                ),
                ("source", models.CharField(blank=True, default="manual", max_length=64)),
            ],
            options={
                "verbose_name": "Exchange Rate",
                "verbose_name_plural": "Exchange Rates",
                "ordering": ["currency", "-effective_at"],
                "indexes": [
                    models.Index(
                        fields=["currency", "-effective_at"],
                        name="payments_rate_currency_eff_idx",
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("rate_to_base__gt", 0)),
                        name="exchange_rate_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentTransaction",
            fields=[
                ("id", uuid_pk()),
                *timestamps(),
                (
                    "transaction_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Merchant-side reference sent to the gateway",
                        max_length=255,
                    ),
                ),
                (
                    "gateway_transaction_id",
                    models.CharField(help_text="Identifier assigned by the gateway", max_length=255),
                ),
                (
                    "payment_method",
                    models.CharField(
                        choices=GATEWAY_CHOICES,
                        help_text="Gateway that processed the attempt",
                        max_length=32,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Gross amount in the payment currency",
                        max_digits=14,
                    ),
                ),
                ("currency", models.CharField(help_text="ISO 4217 currency code", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "gateway_fee_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Processing cost withheld by the gateway",
                        max_digits=14,
                    ),
                ),
                ("gateway_fee_currency", models.CharField(blank=True, default="", max_length=3)),
                (
                    "net_amount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Gross amount minus gateway fee",
                        max_digits=14,
                        null=True,
                    ),
                ),
                (
                    "total_refunded",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14),
                ),
                ("refund_count", models.PositiveIntegerField(default=0)),
                ("is_fully_refunded", models.BooleanField(default=False)),
                ("last_refund_at", models.DateTimeField(blank=True, null=True)),
                (
                    "gateway_response",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Opaque gateway payload, never parsed downstream",
                    ),
                ),
                ("customer_email", models.EmailField(blank=True, default="", max_length=254)),
                ("customer_name", models.CharField(blank=True, default="", max_length=255)),
                ("customer_phone", models.CharField(blank=True, default="", max_length=32)),
                (
                    "created_by",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Actor that first recorded the attempt",
                        max_length=255,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        help_text="Primary order this payment was made for",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_transactions",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Transaction",
                "verbose_name_plural": "Payment Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "status"],
                        name="payments_tx_order_status_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("gateway_transaction_id", "payment_method"),
                        name="unique_gateway_transaction_per_method",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payment_transaction_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                ("id", uuid_pk()),
                *timestamps(),
                (
                    "gateway_refund_id",
                    models.CharField(
                        help_text="Refund identifier assigned by the gateway",
                        max_length=255,
                        unique=True,
                    ),
                ),
                ("gateway_code", models.CharField(choices=GATEWAY_CHOICES, max_length=32)),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Refund amount in the transaction currency",
                        max_digits=14,
                    ),
                ),
                ("currency", models.CharField(help_text="ISO 4217 currency code", max_length=3)),
                (
                    "refund_type",
                    models.CharField(
                        choices=[("full", "Full"), ("partial", "Partial")],
                        default="partial",
                        max_length=10,
                    ),
                ),
                ("reason_code", models.CharField(default="CUSTOMER_REQUEST", max_length=64)),
                ("reason_description", models.TextField(blank=True, default="")),
                (
                    "state",
                    django_fsm.FSMField(
                        choices=[
                            ("requested", "Requested"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="requested",
                        help_text="Current state of the refund (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("gateway_status", models.CharField(blank=True, default="", max_length=64)),
                ("gateway_response", models.JSONField(blank=True, default=dict)),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, default="")),
                ("created_by", models.CharField(blank=True, default="", max_length=255)),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order the refund is booked against",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="orders.order",
                    ),
                ),
                (
                    "payment_transaction",
                    models.ForeignKey(
                        help_text="Payment transaction being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="payments.paymenttransaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["payment_transaction", "state"],
                        name="payments_refund_tx_state_idx",
                    ),
                    models.Index(
                        fields=["state", "created_at"],
                        name="payments_refund_state_crt_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="refund_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", uuid_pk()),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this entry was recorded",
                    ),
                ),
                (
                    "sequence",
                    models.PositiveIntegerField(help_text="Position in the order's balance chain"),
                ),
                (
                    "entry_type",
                    models.CharField(
                        choices=[
                            ("customer_payment", "Customer Payment"),
                            ("gateway_fee", "Gateway Fee"),
                            ("refund", "Refund"),
                            ("partial_refund", "Partial Refund"),
                            ("credit_applied", "Credit Applied"),
                            ("adjustment", "Adjustment"),
                        ],
                        help_text="Category of this entry",
                        max_length=32,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Signed amount in the native currency",
                        max_digits=14,
                    ),
                ),
                ("currency", models.CharField(help_text="Native ISO 4217 code", max_length=3)),
                (
                    "base_amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Signed amount in the base currency",
                        max_digits=14,
                    ),
                ),
                ("base_currency", models.CharField(max_length=3)),
                (
                    "exchange_rate",
                    models.DecimalField(
                        decimal_places=8,
                        default=Decimal("1"),
                        help_text="Native to base rate used for this entry",
                        max_digits=18,
                    ),
                ),
                (
                    "is_fallback_rate",
                    models.BooleanField(
                        default=False,
                        help_text="No rate was known and 1:1 was assumed",
                    ),
                ),
                ("balance_before", models.DecimalField(decimal_places=2, max_digits=14)),
                ("balance_after", models.DecimalField(decimal_places=2, max_digits=14)),
                ("reference_number", models.CharField(blank=True, default="", max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("completed", "Completed"), ("pending", "Pending")],
                        default="completed",
                        max_length=20,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "created_by",
                    models.CharField(
                        help_text="Identifier of the actor that created this entry",
                        max_length=255,
                    ),
                ),
                ("gateway_response", models.JSONField(blank=True, default=dict)),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Unique key to prevent duplicate entries",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order the movement is booked against",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="orders.order",
                    ),
                ),
                (
                    "payment_transaction",
                    models.ForeignKey(
                        blank=True,
                        help_text="Gateway attempt that caused this movement",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="payments.paymenttransaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Ledger Entry",
                "verbose_name_plural": "Ledger Entries",
                "ordering": ["order", "sequence"],
                "permissions": [
                    ("add_manual_ledger_entry", "Can record manual ledger entries"),
                ],
                "indexes": [
                    models.Index(fields=["entry_type"], name="ledger_entry_type_idx"),
                    models.Index(
                        fields=["payment_transaction", "entry_type"],
                        name="ledger_tx_entry_type_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("order", "sequence"),
                        name="unique_ledger_sequence_per_order",
                    )
                ],
            },
        ),
    ]
