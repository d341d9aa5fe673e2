"""
Infrastructure views (not part of the billing domain).
"""

from django.db import connection
from django.http import JsonResponse

from billing.gateways import get_gateway
from billing.state_machines import Gateway


def health_check(request):
    """
    Health check endpoint for load balancers and container orchestration.

    Reports database connectivity and, for each gateway, whether webhook
    signatures are verified. An unverified gateway does not fail the check
    but is surfaced so the degraded mode stays visible to operators.

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "webhook_signatures": {"stripe": "verified", "mercadopago": "unverified"}
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "webhook_signatures": {},
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

    for name in (Gateway.STRIPE, Gateway.MERCADOPAGO):
        verifier = get_gateway(name).verifier
        if verifier.config.is_configured:
            mode = "verified"
        elif verifier.is_degraded:
            mode = "unverified"
        else:
            mode = "rejecting"
        health_status["webhook_signatures"][str(name)] = mode

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)
