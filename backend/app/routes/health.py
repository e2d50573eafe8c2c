"""
Point Cloud Annotator Backend: Health Check Route
===================================================

What:  GET /health for container orchestration liveness probes.
How:   The gateway reports its identity only; it does not probe the handler.
       The handler additionally probes its database (SELECT 1) and its cache
       (PING) and reports each one.

Status levels:
    healthy:   everything reachable                  (HTTP 200)
    degraded:  cache unreachable, store still fine   (HTTP 200)
    unhealthy: database unreachable                  (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Request, Response, status

from app import SERVICE_NAME, __version__
from app.database import ping_database
from app.dependencies import CacheDep, EngineDep
from app.schemas.annotation import HealthResponse
from app.services.cache_base import NullAnnotationCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(
    request: Request,
    response: Response,
    engine: EngineDep,
    cache: CacheDep,
) -> HealthResponse:
    app_settings = request.app.state.settings
    overall = "healthy"
    db_status = None
    cache_status = None

    if app_settings.is_handler:
        # ── Database ──────────────────────────────────────────────────────
        db_status = "connected"
        try:
            if engine is None:
                raise RuntimeError("database engine not initialized")
            await ping_database(engine)
        except Exception as e:
            db_status = "disconnected"
            overall = "unhealthy"
            logger.warning("Health check: database unreachable: %s", e)

        # ── Cache ─────────────────────────────────────────────────────────
        if cache is None or isinstance(cache, NullAnnotationCache):
            cache_status = "disabled"
        elif await cache.health_check():
            cache_status = "connected"
        else:
            cache_status = "disconnected"
            if overall == "healthy":
                overall = "degraded"
            logger.warning("Health check: cache unreachable")

    if overall == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status=overall,
        role=app_settings.service_role,
        service=SERVICE_NAME,
        version=__version__,
        database=db_status,
        cache=cache_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
