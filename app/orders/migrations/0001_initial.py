import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
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
                (
                    "order_number",
                    models.CharField(
                        help_text="Human-facing order reference",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="USD",
                        help_text="ISO 4217 currency code the order is priced in",
                        max_length=3,
                    ),
                ),
                (
                    "total_due",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Amount owed in the base currency",
                        max_digits=14,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("unpaid", "Unpaid"),
                            ("partial", "Partially Paid"),
                            ("paid", "Paid"),
                            ("overpaid", "Overpaid"),
                        ],
                        db_index=True,
                        default="unpaid",
                        help_text="Derived from completed ledger entries",
                        max_length=20,
                    ),
                ),
                (
                    "amount_paid",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Sum of completed payments net of refunds, base currency",
                        max_digits=14,
                    ),
                ),
                (
                    "overpayment_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Amount paid above total_due",
                        max_digits=14,
                    ),
                ),
                ("payment_method", models.CharField(blank=True, default="", max_length=32)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "payment_details",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Snapshot of the last reconciled payment notification",
                    ),
                ),
                ("customer_name", models.CharField(blank=True, default="", max_length=255)),
                ("customer_email", models.EmailField(blank=True, default="", max_length=254)),
                ("customer_phone", models.CharField(blank=True, default="", max_length=32)),
                ("shipping_address", models.JSONField(blank=True, default=dict)),
                ("is_guest", models.BooleanField(default=False)),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        help_text="Owning user, empty for guest orders",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("total_due__gte", 0)),
                        name="order_total_due_non_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="GuestCheckoutSession",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
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
                (
                    "session_token",
                    models.CharField(
                        help_text="Opaque token identifying the guest checkout",
                        max_length=128,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("completed", "Completed"),
                            ("expired", "Expired"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=20,
                    ),
                ),
                ("guest_name", models.CharField(blank=True, default="", max_length=255)),
                ("guest_email", models.EmailField(blank=True, default="", max_length=254)),
                ("guest_phone", models.CharField(blank=True, default="", max_length=32)),
                ("shipping_address", models.JSONField(blank=True, default=dict)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="guest_sessions",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Guest Checkout Session",
                "verbose_name_plural": "Guest Checkout Sessions",
                "ordering": ["-created_at"],
            },
        ),
    ]
