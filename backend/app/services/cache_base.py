"""
Point Cloud Annotator Backend: Abstract Annotation Cache Interface
====================================================================

What:  Abstract base class defining the cache-aside contract the
       AnnotationService relies on, plus the always-miss NullAnnotationCache.
How:   Concrete caches inherit from AnnotationCache and implement every
       abstract method. RedisAnnotationCache is the production backend;
       InMemoryAnnotationCache backs local development and tests.
Who:   Owned and called exclusively by AnnotationService.

Contract:
    Two kinds of entries exist:
        per-item   one entry per annotation id
        aggregate  one entry holding the full list served by GET /annotations

    - A cache is advisory. No method raises: technical failures are logged
      and reported as a miss (reads) or False (writes). A broken cache must
      behave exactly like an always-miss cache.
    - The aggregate is a denormalized view of the per-item entries, so every
      per-item write or delete also drops the aggregate.
    - Every entry expires after a fixed TTL; that is the only staleness bound
      when an invalidation is lost.
"""

from abc import ABC, abstractmethod
from typing import List, Tuple

from app.schemas.annotation import AnnotationData

ANNOTATION_KEY_PREFIX = "annotation:"
ALL_ANNOTATIONS_KEY = "annotations:all"
DEFAULT_TTL_SECONDS = 300


def annotation_key(annotation_id: str) -> str:
    return f"{ANNOTATION_KEY_PREFIX}{annotation_id}"


class AnnotationCache(ABC):
    """Abstract cache in front of the annotation store."""

    @abstractmethod
    async def get(self, annotation_id: str) -> AnnotationData | None:
        """
        Cached annotation for `annotation_id`, or None on miss.

        Undecodable payloads and backend errors are also reported as None.
        """
        ...

    @abstractmethod
    async def get_all(self) -> Tuple[List[AnnotationData], bool]:
        """
        The cached aggregate list and a found flag.

        `([], True)` is a cached empty list; `([], False)` means "not cached,
        ask the store".
        """
        ...

    @abstractmethod
    async def set(self, annotation: AnnotationData) -> bool:
        """Upsert one entry and drop the aggregate. Returns False on failure."""
        ...

    @abstractmethod
    async def set_all(self, annotations: List[AnnotationData]) -> bool:
        """Overwrite the aggregate entry. Returns False on failure."""
        ...

    @abstractmethod
    async def delete(self, annotation_id: str) -> bool:
        """Remove one entry and drop the aggregate. Returns False on failure."""
        ...

    @abstractmethod
    async def invalidate_all(self) -> bool:
        """Drop the aggregate entry only; per-item entries survive."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release backend connections. No-op unless overridden."""
        return None


class NullAnnotationCache(AnnotationCache):
    """
    Cache that never stores anything (CACHE_BACKEND=none).

    Every read misses and every write succeeds trivially, so the service
    always falls through to the store.
    """

    async def get(self, annotation_id: str) -> AnnotationData | None:
        return None

    async def get_all(self) -> Tuple[List[AnnotationData], bool]:
        return [], False

    async def set(self, annotation: AnnotationData) -> bool:
        return True

    async def set_all(self, annotations: List[AnnotationData]) -> bool:
        return True

    async def delete(self, annotation_id: str) -> bool:
        return True

    async def invalidate_all(self) -> bool:
        return True

    async def health_check(self) -> bool:
        return True
