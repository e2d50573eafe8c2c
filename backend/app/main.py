"""
Point Cloud Annotator Backend: FastAPI Application Factory
============================================================

What:  Creates and configures the FastAPI application for either process role.
How:   Factory pattern: create_app() returns a configured FastAPI instance whose
       routes and lifespan depend on SERVICE_ROLE.
Who:   Called by uvicorn (uvicorn app.main:app) and by `python -m app`.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware Chain:                                       │
    │  ┌──────────┐ ┌──────────┐ ┌───────────────┐ ┌────────┐  │
    │  │  Req ID  │→│ Logging  │→│ GZip(handler) │→│  CORS  │  │
    │  └──────────┘ └──────────┘ └───────────────┘ └────────┘  │
    │                                                          │
    │  Routes:                                                 │
    │    gateway:  /api/v1/annotations[/...] → ProxyService    │
    │    handler:  /api/v1/annotations CRUD  → AnnotationService│
    │    both:     GET /health                                 │
    │                                                          │
    │  Exception Handlers:                                     │
    │    AnnotatorError         → its own status + error code  │
    │    RequestValidationError → 400 invalid_request          │
    │    Exception              → 500 internal_error           │
    └──────────────────────────────────────────────────────────┘

Lifecycle (handler):
    Startup:
    1. Configure logging
    2. Build the engine and wait for the database (tenacity backoff; fatal)
    3. Create the annotations table when DB_AUTO_CREATE is on
    4. Connect the cache (tenacity backoff; non-fatal, degrades to misses)
    5. Wire store + cache into the AnnotationService on app.state

    Shutdown:
    1. Close the cache client
    2. Dispose the engine

Lifecycle (gateway):
    Startup builds the shared httpx client inside ProxyService; shutdown
    closes it.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app import SERVICE_NAME, __version__
from app.config import Settings, settings
from app.database import (
    build_engine,
    build_session_factory,
    create_tables,
    dispose_engine,
    wait_for_database,
)
from app.exceptions import AnnotatorError, ConfigurationError, NotFoundError
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import annotations, health, proxy
from app.services.annotation_service import AnnotationService
from app.services.annotation_store import AnnotationStore
from app.services.cache_base import AnnotationCache, NullAnnotationCache
from app.services.memory_cache import InMemoryAnnotationCache
from app.services.proxy_service import ProxyService
from app.services.redis_cache import RedisAnnotationCache

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure the root logger once per process.

    Format: 2024-01-15T12:00:00 [INFO] app.services.annotation_store: message
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Component Construction
# ══════════════════════════════════════════════════════════════════════════

async def connect_cache(app_settings: Settings) -> AnnotationCache:
    """
    Build the cache selected by CACHE_BACKEND.

    For Redis, PING is retried with backoff. A Redis that never answers is
    kept anyway: every call on it degrades to a miss, and it picks up by
    itself once the server appears.
    """
    if app_settings.cache_backend == "none":
        logger.info("Cache disabled (CACHE_BACKEND=none)")
        return NullAnnotationCache()

    if app_settings.cache_backend == "memory":
        logger.info("Using in-process cache (ttl=%ds)", app_settings.cache_ttl)
        return InMemoryAnnotationCache(ttl=app_settings.cache_ttl)

    cache = RedisAnnotationCache.create(app_settings.redis_url, ttl=app_settings.cache_ttl)
    retrying = AsyncRetrying(
        stop=stop_after_attempt(app_settings.startup_retry_attempts),
        wait=wait_exponential_jitter(initial=0.5, max=app_settings.startup_retry_max_wait),
        retry=retry_if_result(lambda healthy: not healthy),
        retry_error_callback=lambda retry_state: False,
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )
    if await retrying(cache.health_check):
        logger.info("Connected to Redis (ttl=%ds)", app_settings.cache_ttl)
    else:
        logger.warning("Redis unreachable at startup, continuing with cache misses")
    return cache


async def _start_handler(app: FastAPI, app_settings: Settings) -> None:
    engine = build_engine(app_settings)
    app.state.engine = engine

    await wait_for_database(engine, app_settings)
    if app_settings.db_auto_create:
        await create_tables(engine)
        logger.info("Annotations table ready")

    cache = await connect_cache(app_settings)
    app.state.cache = cache

    store = AnnotationStore(build_session_factory(engine))
    app.state.annotation_service = AnnotationService(store=store, cache=cache)


async def _stop_handler(app: FastAPI) -> None:
    cache = getattr(app.state, "cache", None)
    if cache is not None:
        await cache.close()
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        await dispose_engine(engine)


def _start_gateway(app: FastAPI, app_settings: Settings) -> None:
    proxy_service = ProxyService(app_settings.handler_url, timeout=app_settings.proxy_timeout)
    try:
        target = proxy_service.upstream_base()
        logger.info("Forwarding /api/v1/annotations to %s", target)
    except ConfigurationError:
        # Each proxied request will answer 500 configuration_error
        logger.error("HANDLER_URL %r is not usable", app_settings.handler_url)
    app.state.proxy_service = proxy_service


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Build the role's components on startup and release them on shutdown.

    A database that stays unreachable after the retries aborts startup; the
    orchestrator restarts the container.
    """
    app_settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(app_settings.log_level)
    logger.info("=" * 60)
    logger.info("%s %s starting in %s role", SERVICE_NAME, __version__, app_settings.service_role)

    if app_settings.is_handler:
        await _start_handler(app, app_settings)
    else:
        _start_gateway(app, app_settings)

    logger.info("Server ready at http://%s:%d", app_settings.server_host, app_settings.server_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("%s shutting down...", SERVICE_NAME)

    if app_settings.is_handler:
        await _stop_handler(app)
    else:
        proxy_service = getattr(app.state, "proxy_service", None)
        if proxy_service is not None:
            await proxy_service.close()

    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "request_id": request_id_var.get(""),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to the {error, message, request_id} body.

    Handler hierarchy:
        NotFoundError           → 404, logged at DEBUG (a result, not a fault)
        ValidationError         → 400, logged at WARNING
        other AnnotatorError    → its status_code, logged at ERROR with context
        RequestValidationError  → 400 invalid_request (malformed JSON, bad types)
        Exception (fallback)    → 500 internal_error, traceback logged

    Responses never contain stack traces, SQL or driver messages; those go
    to the server log only.
    """

    @app.exception_handler(AnnotatorError)
    async def handle_annotator_error(request: Request, exc: AnnotatorError):
        rid = request_id_var.get("")
        if isinstance(exc, NotFoundError):
            logger.debug("[%s] Not found: %s", rid, exc.context)
        elif exc.status_code < 500:
            logger.warning("[%s] %s: %s", rid, exc.error_code, exc.message)
        else:
            logger.error(
                "[%s] %s: %s | Context: %s", rid, exc.error_code, exc.message, exc.context
            )
        return _error_response(exc.status_code, exc.error_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        else:
            message = "invalid request body"
        logger.warning("[%s] Invalid request: %s", request_id_var.get(""), message)
        return _error_response(400, "invalid_request", message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        return _error_response(500, "internal_error", "an unexpected error occurred")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Overrides the module-level settings (tests build apps
            for both roles this way).
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="Point Cloud Annotator API",
        description=(
            f"Annotation CRUD for 3D point clouds ({app_settings.service_role} role)."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added executes first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # The gateway relays bytes as-is; only the handler encodes responses
    if app_settings.is_handler:
        app.add_middleware(GZipMiddleware, minimum_size=500)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    if app_settings.is_handler:
        app.include_router(annotations.router)
    else:
        app.include_router(proxy.router)
    app.include_router(health.router)

    return app


# uvicorn expects `app.main:app` to be importable
app = create_app()
