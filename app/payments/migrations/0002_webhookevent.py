import uuid

from django.db import migrations, models

GATEWAY_CHOICES = [
    ("stripe", "Stripe"),
    ("paypal", "PayPal"),
    ("payu", "PayU"),
    ("bank_transfer", "Bank Transfer"),
    ("manual", "Manual"),
]


class Migration(migrations.Migration):

    dependencies = [
        ("payments", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="WebhookEvent",
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
                        help_text="Timestamp when the request was answered",
                    ),
                ),
                (
                    "gateway",
                    models.CharField(
                        choices=GATEWAY_CHOICES,
                        help_text="Gateway the request claims to come from",
                        max_length=32,
                    ),
                ),
                ("endpoint", models.CharField(help_text="Request path", max_length=255)),
                ("event_type", models.CharField(blank=True, default="", max_length=100)),
                (
                    "event_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Gateway event, transaction or refund identifier",
                        max_length=255,
                    ),
                ),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("response_code", models.PositiveSmallIntegerField()),
                ("response_body", models.JSONField(blank=True, default=dict)),
                ("success", models.BooleanField()),
                ("error_code", models.CharField(blank=True, default="", max_length=64)),
                ("error_message", models.TextField(blank=True, default="")),
                ("client_ip", models.GenericIPAddressField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["gateway", "event_id"], name="webhook_event_lookup_idx"),
                    models.Index(fields=["success", "created_at"], name="webhook_event_outcome_idx"),
                ],
            },
        ),
    ]
