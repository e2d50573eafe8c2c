"""
Point Cloud Annotator Backend: Test Configuration (conftest.py)
=================================================================

What:  Shared pytest fixtures for the entire test suite.
How:   A real AnnotationStore on an in-memory SQLite database (aiosqlite),
       the in-process cache, and httpx AsyncClients wired to app instances
       for both roles. No PostgreSQL, Redis or network is needed.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── engine:          in-memory SQLite engine with the annotations table
    ├── store:           AnnotationStore over `engine`
    ├── cache:           InMemoryAnnotationCache
    ├── service:         AnnotationService(store, cache)
    ├── handler_client:  AsyncClient for a handler-role app using `service`
    └── make_gateway_client: builds a gateway-role client whose upstream is an
                         httpx.MockTransport handler supplied by the test

ASGITransport does not run the lifespan, so the fixtures place the services
on app.state themselves, exactly where the lifespan would.
"""

import os

# Must be set before anything imports app.config (module-level settings)
os.environ["SERVICE_ROLE"] = "handler"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests

from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import build_session_factory, create_tables
from app.main import create_app
from app.schemas.annotation import AnnotationCreate
from app.services.annotation_service import AnnotationService
from app.services.annotation_store import AnnotationStore
from app.services.memory_cache import InMemoryAnnotationCache
from app.services.proxy_service import ProxyService

HANDLER_URL = "http://handler.test:8081"


# ══════════════════════════════════════════════════════════════════════════
# Settings
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def handler_settings() -> Settings:
    return Settings(
        _env_file=None,
        service_role="handler",
        database_url="sqlite+aiosqlite://",
        cache_backend="memory",
        log_level="WARNING",
    )


@pytest.fixture
def gateway_settings() -> Settings:
    return Settings(
        _env_file=None,
        service_role="gateway",
        handler_url=HANDLER_URL,
        log_level="WARNING",
    )


# ══════════════════════════════════════════════════════════════════════════
# Store / Cache / Service
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    In-memory SQLite engine with the annotations table created.

    StaticPool keeps one connection alive, so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine) -> AnnotationStore:
    return AnnotationStore(build_session_factory(engine))


@pytest.fixture
def cache() -> InMemoryAnnotationCache:
    return InMemoryAnnotationCache(ttl=300)


@pytest.fixture
def service(store, cache) -> AnnotationService:
    return AnnotationService(store=store, cache=cache)


@pytest.fixture
def poi_request() -> AnnotationCreate:
    """The annotation used throughout the end-to-end scenarios."""
    return AnnotationCreate(x=1.5, y=2.5, z=3.5, title="POI")


# ══════════════════════════════════════════════════════════════════════════
# API Clients
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def handler_client(handler_settings, engine, cache, service) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTPX AsyncClient talking to a handler-role app.

    Usage:
        async def test_list(handler_client):
            response = await handler_client.get("/api/v1/annotations")
            assert response.status_code == 200
    """
    app = create_app(handler_settings)
    app.state.engine = engine
    app.state.cache = cache
    app.state.annotation_service = service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def make_gateway_client(gateway_settings):
    """
    Factory fixture: make_gateway_client(upstream_handler) returns a client
    for a gateway-role app whose outbound calls go to `upstream_handler`
    (a function taking an httpx.Request and returning an httpx.Response,
    or raising an httpx exception).
    """
    clients = []
    proxies = []

    def _make(
        upstream_handler: Callable[[httpx.Request], httpx.Response],
        handler_url: str = HANDLER_URL,
    ) -> AsyncClient:
        upstream = httpx.AsyncClient(transport=httpx.MockTransport(upstream_handler))
        proxy_service = ProxyService(handler_url, client=upstream)
        proxies.append(proxy_service)

        app = create_app(gateway_settings)
        app.state.proxy_service = proxy_service

        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://gateway")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
    for proxy_service in proxies:
        await proxy_service.close()
