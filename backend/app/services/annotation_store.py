"""
Point Cloud Annotator Backend: Annotation Store (Durable Repository)
=====================================================================

What:  CRUD repository over the `annotations` table.
How:   Each operation opens its own AsyncSession from the shared factory and
       runs inside one transaction. Rows are converted to AnnotationData
       before leaving this module; no ORM instance escapes.
Who:   Called only by AnnotationService.

Signals:
    get_by_id()     returns None when the id does not exist
    update/delete   raise NotFoundError when the id does not exist
    anything else   SQLAlchemyError is wrapped in DatabaseError (→ 500)

    Ids that are not valid UUIDs cannot exist in the table, so they are
    answered like any other unknown id instead of reaching the driver.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import DatabaseError, NotFoundError
from app.models.annotation import Annotation
from app.schemas.annotation import AnnotationCreate, AnnotationData

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("x", "y", "z", "title", "description")


def _parse_id(annotation_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(annotation_id)
    except (ValueError, TypeError, AttributeError):
        return None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_schema(row: Annotation) -> AnnotationData:
    return AnnotationData(
        id=str(row.id),
        x=row.x,
        y=row.y,
        z=row.z,
        title=row.title,
        description=row.description or "",
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


class AnnotationStore:
    """
    PostgreSQL-backed annotation repository.

    Thread/task safety: stateless apart from the session factory, which hands
    out an independent session (and pooled connection) per call.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, request: AnnotationCreate) -> AnnotationData:
        """
        Insert a new annotation; the store assigns id and both timestamps.

        created_at and updated_at are the same instant on creation.
        """
        now = datetime.now(timezone.utc)
        row = Annotation(
            id=uuid.uuid4(),
            x=request.x,
            y=request.y,
            z=request.z,
            title=request.title,
            description=request.description,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except SQLAlchemyError as e:
            logger.error("Failed to create annotation: %s", e)
            raise DatabaseError(
                message="failed to create annotation",
                context={"error_type": type(e).__name__},
            ) from e

        logger.info("Created annotation %s", row.id)
        return to_schema(row)

    async def get_by_id(self, annotation_id: str) -> Optional[AnnotationData]:
        """Fetch one annotation, or None if no such id exists."""
        key = _parse_id(annotation_id)
        if key is None:
            return None

        try:
            async with self._session_factory() as session:
                row = await session.get(Annotation, key)
        except SQLAlchemyError as e:
            logger.error("Failed to get annotation %s: %s", annotation_id, e)
            raise DatabaseError(
                message="failed to retrieve annotation",
                context={"annotation_id": annotation_id, "error_type": type(e).__name__},
            ) from e

        return to_schema(row) if row is not None else None

    async def get_all(self) -> List[AnnotationData]:
        """
        Every annotation, newest first.

        Query plan: SELECT ... ORDER BY created_at DESC, served by
        idx_annotations_created_at. Returns [] on an empty table.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Annotation).order_by(Annotation.created_at.desc())
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list annotations: %s", e)
            raise DatabaseError(
                message="failed to retrieve annotations",
                context={"error_type": type(e).__name__},
            ) from e

        return [to_schema(row) for row in rows]

    async def update(self, annotation_id: str, changes: Dict[str, Any]) -> AnnotationData:
        """
        Read-modify-write of one annotation inside a single transaction.

        Only keys in `changes` are applied; updated_at is always refreshed.
        The row is locked with SELECT ... FOR UPDATE where the dialect
        supports it (ignored by SQLite).

        Raises:
            NotFoundError: no annotation with this id
            DatabaseError: the query or commit failed
        """
        key = _parse_id(annotation_id)
        if key is None:
            raise NotFoundError(resource="annotation", resource_id=annotation_id)

        try:
            async with self._session_factory() as session, session.begin():
                row = await session.get(Annotation, key, with_for_update=True)
                if row is None:
                    raise NotFoundError(resource="annotation", resource_id=annotation_id)

                for field in UPDATABLE_FIELDS:
                    if field in changes:
                        setattr(row, field, changes[field])
                row.updated_at = max(datetime.now(timezone.utc), _as_utc(row.created_at))
        except SQLAlchemyError as e:
            logger.error("Failed to update annotation %s: %s", annotation_id, e)
            raise DatabaseError(
                message="failed to update annotation",
                context={"annotation_id": annotation_id, "error_type": type(e).__name__},
            ) from e

        logger.info("Updated annotation %s", annotation_id)
        return to_schema(row)

    async def delete(self, annotation_id: str) -> None:
        """
        Hard-delete one annotation.

        Raises:
            NotFoundError: no row was affected
            DatabaseError: the statement failed
        """
        key = _parse_id(annotation_id)
        if key is None:
            raise NotFoundError(resource="annotation", resource_id=annotation_id)

        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    delete(Annotation).where(Annotation.id == key)
                )
        except SQLAlchemyError as e:
            logger.error("Failed to delete annotation %s: %s", annotation_id, e)
            raise DatabaseError(
                message="failed to delete annotation",
                context={"annotation_id": annotation_id, "error_type": type(e).__name__},
            ) from e

        if result.rowcount == 0:
            raise NotFoundError(resource="annotation", resource_id=annotation_id)

        logger.info("Deleted annotation %s", annotation_id)
