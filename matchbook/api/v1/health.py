import json
import logging

from fastapi import APIRouter
from fastapi.responses import Response

from matchbook.config import settings
from matchbook.core.metrics import get_metrics, get_metrics_content_type
from matchbook.services.browser import browser_manager

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "/health",
    summary="Liveness check",
    description="Basic liveness check that returns HTTP 200 if the application process is running.",
)
async def liveness():
    """Liveness check: returns 200 if the process is running."""
    return {"status": "healthy"}


@router.get(
    "/health/ready",
    summary="Readiness check",
    description="Readiness check reporting the browser session state and whether a Places API key is configured. The browser is launched lazily, so an uninitialized session is still ready. Reports degraded status when only the scraper fallback is available.",
)
async def readiness():
    """Readiness check: browser session and Places API configuration."""
    checks = {
        "browser": browser_manager.state.value,
        "places_api": "configured" if settings.GOOGLE_MAPS_API_KEY else "missing key",
    }

    # Without a key resolution still works, but only through the scraper
    status = "ready" if settings.GOOGLE_MAPS_API_KEY else "degraded"

    return Response(
        content=json.dumps({"status": status, "checks": checks}),
        status_code=200,
        media_type="application/json",
    )


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose application metrics in Prometheus exposition format. Returns HTTP 404 if metrics collection is disabled in the application configuration.",
)
async def metrics():
    """Prometheus metrics endpoint."""
    if not settings.METRICS_ENABLED:
        return Response(content="Metrics disabled", status_code=404)

    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type(),
    )
