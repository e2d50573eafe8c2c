"""
Point Cloud Annotator Backend: Dependency Injection
=====================================================

What:  FastAPI dependencies that hand route handlers the services built by the
       lifespan.
How:   The lifespan stores each service on app.state; the getters below read
       them back from request.app.state. Nothing here is module-level mutable
       state, so a test can build an app, assign its own services and go.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from app.services.annotation_service import AnnotationService
from app.services.cache_base import AnnotationCache
from app.services.proxy_service import ProxyService


def get_annotation_service(request: Request) -> AnnotationService:
    """
    AnnotationService from app.state (handler role).

    Raises:
        RuntimeError: the lifespan did not initialize it
    """
    service = getattr(request.app.state, "annotation_service", None)
    if service is None:
        raise RuntimeError("AnnotationService not initialized. Check lifespan setup.")
    return service


def get_proxy_service(request: Request) -> ProxyService:
    """
    ProxyService from app.state (gateway role).

    Raises:
        RuntimeError: the lifespan did not initialize it
    """
    service = getattr(request.app.state, "proxy_service", None)
    if service is None:
        raise RuntimeError("ProxyService not initialized. Check lifespan setup.")
    return service


# Optional lookups for the health probe: a missing dependency is reported,
# not raised
def get_engine(request: Request) -> Optional[AsyncEngine]:
    return getattr(request.app.state, "engine", None)


def get_cache(request: Request) -> Optional[AnnotationCache]:
    return getattr(request.app.state, "cache", None)


AnnotationServiceDep = Annotated[AnnotationService, Depends(get_annotation_service)]
ProxyServiceDep = Annotated[ProxyService, Depends(get_proxy_service)]
EngineDep = Annotated[Optional[AsyncEngine], Depends(get_engine)]
CacheDep = Annotated[Optional[AnnotationCache], Depends(get_cache)]
