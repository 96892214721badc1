"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the business domain but are
essential for running the service, such as health checks.
"""

from django.db import connection
from django.http import JsonResponse


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - gateway: "configured" or "unconfigured"

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable

    An unconfigured mobile-money gateway does not fail the check: customers
    can still pay through the manual channel.
    """
    from payments.adapters import MpesaAdapter

    health_status = {
        "status": "healthy",
        "database": "unknown",
        "gateway": "configured" if MpesaAdapter.is_configured() else "unconfigured",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)
