"""
Point Cloud Annotator Backend: Annotation Service (Cache-Aside Orchestrator)
=============================================================================

What:  Business logic for annotation CRUD, layering one consistent cache-aside
       policy over the durable store.
How:   Composes an AnnotationStore and an AnnotationCache handed in by the
       lifespan. Routes call exactly one method per request.
Who:   Called by the handler-role routes in app/routes/annotations.py.

Read path:
    ┌──────────┐  hit   ┌──────────┐
    │  Cache   │──────▶│ response │
    └────┬─────┘        └──────────┘
         │ miss / error
    ┌────▼─────┐  found ┌──────────────────┐
    │  Store   │──────▶│ repopulate cache │──▶ response
    └────┬─────┘        └──────────────────┘
         │ absent
         ▼
    NotFoundError (404)

Write path:
    validate ─▶ store write ─▶ refresh/remove per-item entry ─▶ drop aggregate

Rules:
    - Validation runs before any store call; a ValidationError means nothing
      was written.
    - The store is the source of truth. Update reads the current row from the
      store, never from the cache.
    - Every successful create, update and delete drops the aggregate list
      entry, so a later list read cannot serve pre-mutation data.
    - Cache calls are best-effort. A cache failure is logged and otherwise
      ignored; it never turns into an error response.
"""

import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.exceptions import NotFoundError, ValidationError
from app.schemas.annotation import AnnotationCreate, AnnotationData, AnnotationUpdate
from app.services.annotation_store import AnnotationStore
from app.services.cache_base import AnnotationCache

logger = logging.getLogger(__name__)

MAX_TEXT_BYTES = 256


def validate_fields(
    title: Optional[str] = None,
    description: Optional[str] = None,
    coordinates: Optional[Dict[str, float]] = None,
) -> None:
    """
    Apply the annotation field rules to whichever fields are given.

    Title must be non-empty; title and description are limited to
    MAX_TEXT_BYTES bytes of UTF-8 (not characters); coordinates must be finite.

    Raises:
        ValidationError: the first violated rule
    """
    if title is not None:
        if not title:
            raise ValidationError(message="title must not be empty", field="title")
        if len(title.encode("utf-8")) > MAX_TEXT_BYTES:
            raise ValidationError(
                message=f"title exceeds maximum length of {MAX_TEXT_BYTES} bytes",
                field="title",
            )

    if description is not None and len(description.encode("utf-8")) > MAX_TEXT_BYTES:
        raise ValidationError(
            message=f"description exceeds maximum length of {MAX_TEXT_BYTES} bytes",
            field="description",
        )

    for name, value in (coordinates or {}).items():
        if not math.isfinite(value):
            raise ValidationError(message=f"{name} must be a finite number", field=name)


class AnnotationService:
    """
    Cache-aside CRUD over annotations.

    Both collaborators are injected, so tests can swap in an in-memory cache
    or a mock store without touching the network.
    """

    def __init__(self, store: AnnotationStore, cache: AnnotationCache) -> None:
        self.store = store
        self.cache = cache

    # ── Cache helpers ─────────────────────────────────────────────────────

    async def _quietly(
        self, operation: str, method: Callable[..., Awaitable[Any]], *args: Any
    ) -> Any:
        """Call a cache method, logging and discarding any failure."""
        try:
            return await method(*args)
        except Exception as e:
            logger.warning("Cache %s failed, continuing without cache: %s", operation, e)
            return None

    async def _cached(self, annotation_id: str) -> Optional[AnnotationData]:
        return await self._quietly("get", self.cache.get, annotation_id)

    async def _refresh(self, annotation: AnnotationData) -> None:
        await self._quietly("set", self.cache.set, annotation)

    async def _invalidate_list(self) -> None:
        await self._quietly("invalidate_all", self.cache.invalidate_all)

    # ── Operations ────────────────────────────────────────────────────────

    async def create(self, request: AnnotationCreate) -> AnnotationData:
        """
        Validate, write through to the store, then seed the cache.

        Raises:
            ValidationError: title/description/coordinates rejected
            DatabaseError: the insert failed
        """
        validate_fields(
            title=request.title,
            description=request.description,
            coordinates={"x": request.x, "y": request.y, "z": request.z},
        )

        annotation = await self.store.create(request)

        await self._refresh(annotation)
        await self._invalidate_list()
        return annotation

    async def get_by_id(self, annotation_id: str) -> AnnotationData:
        """
        Cache first, store on miss.

        Raises:
            NotFoundError: no annotation with this id
            DatabaseError: the store query failed
        """
        cached = await self._cached(annotation_id)
        if cached is not None:
            logger.debug("Returning cached annotation %s", annotation_id)
            return cached

        annotation = await self.store.get_by_id(annotation_id)
        if annotation is None:
            raise NotFoundError(resource="annotation", resource_id=annotation_id)

        await self._refresh(annotation)
        return annotation

    async def get_all(self) -> List[AnnotationData]:
        """
        Cached aggregate list, or the store's full list (newest first) on miss.

        A cached empty list is a hit. The result is never None.
        """
        cached = await self._quietly("get_all", self.cache.get_all)
        if cached is not None:
            annotations, found = cached
            if found:
                logger.debug("Returning cached annotations")
                return annotations

        annotations = await self.store.get_all()
        await self._quietly("set_all", self.cache.set_all, annotations)
        return annotations

    async def update(self, annotation_id: str, request: AnnotationUpdate) -> AnnotationData:
        """
        Apply the fields present in `request` to the stored annotation.

        Raises:
            ValidationError: a present field is rejected
            NotFoundError: no annotation with this id
            DatabaseError: the store read or write failed
        """
        changes = request.changes()
        validate_fields(
            title=changes.get("title"),
            description=changes.get("description"),
            coordinates={k: changes[k] for k in ("x", "y", "z") if k in changes},
        )

        annotation = await self.store.update(annotation_id, changes)

        await self._refresh(annotation)
        await self._invalidate_list()
        return annotation

    async def delete(self, annotation_id: str) -> None:
        """
        Hard-delete an annotation and evict it from the cache.

        Raises:
            NotFoundError: no annotation with this id (nothing is touched)
            DatabaseError: the delete failed
        """
        await self.store.delete(annotation_id)

        await self._quietly("delete", self.cache.delete, annotation_id)
        await self._invalidate_list()
