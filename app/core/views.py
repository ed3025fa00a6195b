"""
Infrastructure endpoints that sit outside the payment domain.
"""

import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for container probes and load balancers.

    Reports database connectivity and which payment gateways are
    configured. Gateway reachability is not probed.

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "gateways": ["card_checkout", "invoice_qr"]
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "gateways": sorted(getattr(settings, "PAYMENT_GATEWAYS", {}).keys()),
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        logger.exception("Health check database probe failed")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    return JsonResponse(health_status, status=200 if is_healthy else 503)
