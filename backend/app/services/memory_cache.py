"""
Process-local AnnotationCache (CACHE_BACKEND=memory).

Same contract and TTL semantics as the Redis backend, without a network
dependency. Backed by a cachetools.TTLCache: an entry is gone once
`ttl` seconds have elapsed on the cache clock, and the least recently used
entry is evicted once `maxsize` is reached. Entries are not shared between
processes, so this is meant for single-process development runs and the
test suite.
"""

import time
from typing import Callable, List, Tuple

from cachetools import TTLCache

from app.schemas.annotation import AnnotationData
from app.services.cache_base import (
    ALL_ANNOTATIONS_KEY,
    DEFAULT_TTL_SECONDS,
    AnnotationCache,
    annotation_key,
)

DEFAULT_MAXSIZE = 10_000


class InMemoryAnnotationCache(AnnotationCache):
    """TTLCache-backed cache; values are deep copies of what was stored."""

    def __init__(
        self,
        ttl: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = DEFAULT_MAXSIZE,
    ) -> None:
        self._ttl = ttl
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)

    async def get(self, annotation_id: str) -> AnnotationData | None:
        value = self._entries.get(annotation_key(annotation_id))
        if value is None:
            return None
        return value.model_copy(deep=True)

    async def get_all(self) -> Tuple[List[AnnotationData], bool]:
        value = self._entries.get(ALL_ANNOTATIONS_KEY)
        if value is None:
            return [], False
        return [a.model_copy(deep=True) for a in value], True

    async def set(self, annotation: AnnotationData) -> bool:
        self._entries[annotation_key(annotation.id)] = annotation.model_copy(deep=True)
        self._entries.pop(ALL_ANNOTATIONS_KEY, None)
        return True

    async def set_all(self, annotations: List[AnnotationData]) -> bool:
        self._entries[ALL_ANNOTATIONS_KEY] = [a.model_copy(deep=True) for a in annotations]
        return True

    async def delete(self, annotation_id: str) -> bool:
        self._entries.pop(annotation_key(annotation_id), None)
        self._entries.pop(ALL_ANNOTATIONS_KEY, None)
        return True

    async def invalidate_all(self) -> bool:
        self._entries.pop(ALL_ANNOTATIONS_KEY, None)
        return True

    async def health_check(self) -> bool:
        return True

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)
