"""
Core views providing infrastructure endpoints.
"""

import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for load balancers and orchestration probes.

    Webhook delivery depends entirely on the database, so that is the only
    component checked.

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable
    """
    health_status = {"status": "healthy", "database": "unknown"}
    status_code = 200

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        logger.exception("Health check database probe failed")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        status_code = 503

    return JsonResponse(health_status, status=status_code)
