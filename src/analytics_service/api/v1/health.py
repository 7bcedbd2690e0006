"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text

from analytics_service import __version__
from analytics_service.api.dependencies import get_cache
from analytics_service.config import Settings, get_settings
from analytics_service.infrastructure.database.connection import get_db_session
from analytics_service.infrastructure.redis import CacheService
from analytics_service.middleware.request_context import get_endpoint_stats

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information without touching
    any dependency.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "storage": settings.storage_backend,
            "redis": "configured",
            "suggester": "configured" if settings.gemini_api_key else "disabled",
        },
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    settings: Settings = Depends(get_settings),
    cache: CacheService = Depends(get_cache),
) -> ReadinessResponse:
    """
    Readiness check endpoint.

    The store must be reachable; Redis is reported but optional, since the
    catalog cache degrades to a no-op without it.
    """
    checks: dict[str, bool] = {}

    if settings.storage_backend == "memory":
        checks["storage"] = True
    else:
        try:
            async with get_db_session() as session:
                await session.execute(text("SELECT 1"))
            checks["storage"] = True
        except Exception as e:
            logger.warning("Storage readiness check failed", error=str(e))
            checks["storage"] = False

    checks["redis"] = await cache.health_check()

    return ReadinessResponse(ready=checks["storage"], checks=checks)


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.

    Returns 200 whenever the process is serving requests.
    """
    return {"status": "alive"}


@router.get("/health/stats")
async def latency_stats() -> dict[str, dict]:
    """Per-path request latency (count, avg, p50, p95) since startup."""
    return get_endpoint_stats()
