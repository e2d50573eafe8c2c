"""
Point Cloud Annotator Backend: Redis Annotation Cache
=======================================================

What:  Production AnnotationCache backed by Redis (redis.asyncio).
How:   JSON payloads under two key shapes, each written with SET ... EX ttl:

           annotation:{id}    one AnnotationData
           annotations:all    the full list, newest first

       Per-item writes and deletes drop the aggregate key in the same
       MULTI/EXEC pipeline, so the two never diverge even if the process
       dies between the commands.

Failure handling:
    Every Redis error is logged at WARNING and converted into a miss or a
    False return. Nothing in this module raises to the caller.
"""

import logging
from typing import List, Tuple

import redis.asyncio as redis
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from app.schemas.annotation import AnnotationData
from app.services.cache_base import (
    ALL_ANNOTATIONS_KEY,
    DEFAULT_TTL_SECONDS,
    AnnotationCache,
    annotation_key,
)

logger = logging.getLogger(__name__)

_annotation_list = TypeAdapter(List[AnnotationData])


class RedisAnnotationCache(AnnotationCache):
    """Redis implementation of the annotation cache-aside contract."""

    def __init__(self, client: redis.Redis, ttl: int = DEFAULT_TTL_SECONDS) -> None:
        """
        Args:
            client: Shared redis.asyncio client; safe for concurrent use.
            ttl: Time-to-live in seconds applied to every entry.
        """
        self._client = client
        self._ttl = ttl

    @classmethod
    def create(cls, redis_url: str, ttl: int = DEFAULT_TTL_SECONDS) -> "RedisAnnotationCache":
        """Build a cache with its own client from a redis:// URL."""
        client = redis.from_url(redis_url, decode_responses=False)
        return cls(client=client, ttl=ttl)

    @property
    def ttl(self) -> int:
        return self._ttl

    async def get(self, annotation_id: str) -> AnnotationData | None:
        key = annotation_key(annotation_id)
        try:
            payload = await self._client.get(key)
        except RedisError as e:
            logger.warning("Failed to get %s from cache: %s", key, e)
            return None

        if payload is None:
            return None

        try:
            annotation = AnnotationData.model_validate_json(payload)
        except PydanticValidationError as e:
            logger.warning("Discarding undecodable cache entry %s: %s", key, e)
            return None

        logger.debug("Cache hit: %s", key)
        return annotation

    async def get_all(self) -> Tuple[List[AnnotationData], bool]:
        try:
            payload = await self._client.get(ALL_ANNOTATIONS_KEY)
        except RedisError as e:
            logger.warning("Failed to get all annotations from cache: %s", e)
            return [], False

        if payload is None:
            return [], False

        try:
            annotations = _annotation_list.validate_json(payload)
        except PydanticValidationError as e:
            logger.warning("Discarding undecodable aggregate cache entry: %s", e)
            return [], False

        logger.debug("Cache hit for all annotations (%d)", len(annotations))
        return annotations, True

    async def set(self, annotation: AnnotationData) -> bool:
        key = annotation_key(annotation.id)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(key, annotation.model_dump_json(), ex=self._ttl)
                pipe.delete(ALL_ANNOTATIONS_KEY)
                await pipe.execute()
        except RedisError as e:
            logger.warning("Failed to set %s in cache: %s", key, e)
            return False

        logger.debug("Cached %s", key)
        return True

    async def set_all(self, annotations: List[AnnotationData]) -> bool:
        try:
            await self._client.set(
                ALL_ANNOTATIONS_KEY,
                _annotation_list.dump_json(annotations),
                ex=self._ttl,
            )
        except RedisError as e:
            logger.warning("Failed to cache all annotations: %s", e)
            return False

        logger.debug("Cached all annotations (%d)", len(annotations))
        return True

    async def delete(self, annotation_id: str) -> bool:
        key = annotation_key(annotation_id)
        try:
            await self._client.delete(key, ALL_ANNOTATIONS_KEY)
        except RedisError as e:
            logger.warning("Failed to delete %s from cache: %s", key, e)
            return False

        logger.debug("Deleted %s from cache", key)
        return True

    async def invalidate_all(self) -> bool:
        try:
            await self._client.delete(ALL_ANNOTATIONS_KEY)
        except RedisError as e:
            logger.warning("Failed to invalidate aggregate cache entry: %s", e)
            return False
        return True

    async def health_check(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        logger.info("Closing Redis connection")
        await self._client.aclose()
