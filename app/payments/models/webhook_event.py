"""
Append-only log of inbound gateway webhooks.

Every request a webhook endpoint answers is recorded with the payload it
carried, the status code sent back and whether it was applied. Rows are
never updated; a redelivery is a new row, so the log shows every attempt.

Usage:
    from payments.models import WebhookEvent

    WebhookEvent.objects.filter(gateway="stripe", success=False)
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import AppendOnlyMixin, UUIDPrimaryKeyMixin
from payments.exceptions import WebhookEventImmutableError
from payments.state_machines import GatewayCode


class WebhookEvent(UUIDPrimaryKeyMixin, AppendOnlyMixin, models.Model):
    """
    One inbound webhook request and the answer it got.

    Fields:
        gateway: Gateway the request claims to come from
        endpoint: Request path
        event_type: Gateway event type, or payment/refund for the generic endpoints
        event_id: Gateway event, transaction or refund identifier
        payload: Body as received (empty when the request failed authentication)
        response_code: HTTP status returned to the gateway
        response_body: JSON body returned to the gateway
        success: The notification was applied or had already been
        error_code / error_message: Why it was not
        client_ip: Caller address
        created_at: Timestamp when the request was answered
    """

    immutable_error = WebhookEventImmutableError

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when the request was answered",
    )
    gateway = models.CharField(
        max_length=32,
        choices=GatewayCode.choices,
        help_text="Gateway the request claims to come from",
    )
    endpoint = models.CharField(max_length=255, help_text="Request path")
    event_type = models.CharField(max_length=100, blank=True, default="")
    event_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Gateway event, transaction or refund identifier",
    )
    payload = models.JSONField(default=dict, blank=True)
    response_code = models.PositiveSmallIntegerField()
    response_body = models.JSONField(default=dict, blank=True)
    success = models.BooleanField()
    error_code = models.CharField(max_length=64, blank=True, default="")
    error_message = models.TextField(blank=True, default="")
    client_ip = models.GenericIPAddressField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["gateway", "event_id"], name="webhook_event_lookup_idx"),
            models.Index(fields=["success", "created_at"], name="webhook_event_outcome_idx"),
        ]

    def __str__(self) -> str:
        outcome = "ok" if self.success else self.error_code or "failed"
        return f"{self.gateway} {self.event_type or 'event'} {self.event_id}: {outcome}"
