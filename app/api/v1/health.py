"""
Health Check Endpoints

GET /api/v1/health     - shallow, no external calls
GET /api/v1/health/db  - deep: database + search engine

Timeout: 5 seconds per component. A search engine outage only degrades
the service, since search falls back to the database.
"""
import asyncio
import logging
import time

from fastapi import APIRouter

from app.core.config import settings
from app.models.schemas import ComponentHealth, ComponentStatus, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

HEALTH_CHECK_TIMEOUT = 5


async def check_api_health() -> ComponentHealth:
    """Check API component health"""
    start = time.time()
    latency = (time.time() - start) * 1000
    return ComponentHealth(
        name="API",
        status=ComponentStatus.HEALTHY,
        latency_ms=round(latency, 2),
        message="API is responding",
    )


async def check_database_health() -> ComponentHealth:
    """Run SELECT 1 against the archive store."""
    start = time.time()
    try:
        from app.core.database import test_connection

        connected = await asyncio.to_thread(test_connection)
        latency = (time.time() - start) * 1000
        if connected:
            return ComponentHealth(
                name="Database",
                status=ComponentStatus.HEALTHY,
                latency_ms=round(latency, 2),
                message="Database connected",
            )
        return ComponentHealth(
            name="Database",
            status=ComponentStatus.UNAVAILABLE,
            latency_ms=round(latency, 2),
            message="Database unavailable",
        )
    except Exception as e:
        latency = (time.time() - start) * 1000
        logger.error(f"Database health check failed: {e}")
        return ComponentHealth(
            name="Database",
            status=ComponentStatus.UNAVAILABLE,
            latency_ms=round(latency, 2),
            message=str(e),
        )


async def check_search_engine_health() -> ComponentHealth:
    """Probe the search engine. Unavailable means search uses the fallback."""
    start = time.time()
    from app.services.search_client import get_search_client

    healthy = await get_search_client().health()
    latency = (time.time() - start) * 1000
    if healthy:
        return ComponentHealth(
            name="Search Engine",
            status=ComponentStatus.HEALTHY,
            latency_ms=round(latency, 2),
            message="Search engine available",
        )
    return ComponentHealth(
        name="Search Engine",
        status=ComponentStatus.UNAVAILABLE,
        latency_ms=round(latency, 2),
        message="Search engine unavailable (database fallback active)",
    )


def determine_overall_status(components: dict[str, ComponentHealth]) -> str:
    """
    - healthy: all components healthy
    - unhealthy: API or database unavailable
    - degraded: anything else
    """
    statuses = [c.status for c in components.values()]

    if all(s == ComponentStatus.HEALTHY for s in statuses):
        return "healthy"
    for critical in ("api", "database"):
        component = components.get(critical)
        if component is None or component.status == ComponentStatus.UNAVAILABLE:
            return "unhealthy"
    return "degraded"


async def check_with_timeout(
    check_func,
    component_name: str,
    timeout_seconds: float = HEALTH_CHECK_TIMEOUT
) -> ComponentHealth:
    """Execute health check with timeout; UNAVAILABLE on timeout."""
    try:
        return await asyncio.wait_for(check_func(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Health check timeout for {component_name} (>{timeout_seconds}s)")
        return ComponentHealth(
            name=component_name,
            status=ComponentStatus.UNAVAILABLE,
            latency_ms=timeout_seconds * 1000,
            message=f"Health check timeout (>{timeout_seconds}s)",
        )


@router.get("", summary="Shallow Health Check")
async def health_check_shallow():
    """Shallow health check - no database or search engine access."""
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/db", response_model=HealthResponse, summary="Deep Health Check")
async def health_check_deep() -> HealthResponse:
    """Deep health check covering the database and the search engine."""
    components = {
        "api": await check_with_timeout(check_api_health, "API"),
        "database": await check_with_timeout(check_database_health, "Database"),
        "search_engine": await check_with_timeout(check_search_engine_health, "Search Engine"),
    }

    overall_status = determine_overall_status(components)
    logger.info(f"Deep health check: {overall_status}")

    return HealthResponse(
        status=overall_status,
        version=settings.app_version,
        environment=settings.environment,
        components=components,
    )
