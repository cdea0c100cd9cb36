"""
Webhook event log.

Each webhook view records one WebhookEvent per request it answers, after
reconciliation has committed or rolled back, so the row survives either
outcome.

Usage:
    from payments.webhooks.events import record_webhook_event

    record_webhook_event(
        request,
        gateway=GatewayCode.STRIPE,
        status_code=response.status_code,
        event_type=event["type"],
        event_id=event["id"],
        payload=event,
        results=results,
    )
"""

from __future__ import annotations

import ipaddress
import logging
from typing import TYPE_CHECKING, Any

from core.helpers import get_client_ip
from payments.models import WebhookEvent

if TYPE_CHECKING:
    from collections.abc import Sequence

    from django.http import HttpRequest

    from payments.webhooks.reconciliation import ReconciliationResult

logger = logging.getLogger(__name__)


def _client_ip(request: HttpRequest) -> str | None:
    ip = get_client_ip(request)
    try:
        return str(ipaddress.ip_address(ip))
    except ValueError:
        return None


def record_webhook_event(
    request: HttpRequest,
    *,
    gateway: str,
    status_code: int,
    event_type: str = "",
    event_id: str = "",
    payload: Any = None,
    results: Sequence[ReconciliationResult] = (),
    error_code: str = "",
    error_message: str = "",
) -> WebhookEvent:
    """
    Append the log row for one answered webhook request.

    ``error_code`` and ``error_message`` default to those of the first
    failed result.
    """
    failed = [r for r in results if not r.success]
    if failed and not error_code:
        error_code = failed[0].error_code or ""
        error_message = failed[0].error_message or ""

    event = WebhookEvent.objects.create(
        gateway=(gateway or "")[:32],
        endpoint=request.path[:255],
        event_type=(event_type or "")[:100],
        event_id=str(event_id or "")[:255],
        payload=payload if isinstance(payload, dict) else {},
        response_code=status_code,
        response_body={"results": [r.to_dict() for r in results]} if results else {},
        success=status_code < 400 and not failed,
        error_code=error_code[:64],
        error_message=error_message,
        client_ip=_client_ip(request),
    )

    logger.debug(
        "Recorded webhook event",
        extra={
            "webhook_event_id": str(event.id),
            "gateway": event.gateway,
            "event_id": event.event_id,
            "success": event.success,
        },
    )
    return event
