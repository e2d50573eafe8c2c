"""
Point Cloud Annotator Backend: Annotation SQLAlchemy Model
============================================================

What:  ORM model representing the `annotations` table.
How:   Inherits from the shared DeclarativeBase; Alembic and create_tables()
       both read its metadata.
Who:   Used only by AnnotationStore. Everything above the store works with
       the pydantic `AnnotationData` schema instead of ORM instances.

Table Design:
    - UUID primary key generated in Python by the store on insert
    - x/y/z as DOUBLE PRECISION, no range constraint
    - title/description as VARCHAR(256); the 256-byte bound is enforced by the
      service before any write, the column width is only a backstop
    - created_at/updated_at as TIMESTAMP WITH TIME ZONE, always UTC

    Index on created_at: the list endpoint orders by created_at DESC.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Float, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from app.database import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Annotation(Base):
    """
    A titled 3D point placed on a point cloud.

    Lifecycle:
        1. Inserted by Create with both timestamps set to the same instant
        2. Mutated in place by Update (updated_at refreshed)
        3. Hard-deleted by Delete (no tombstone, no history)
    """

    __tablename__ = "annotations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    x: Mapped[float] = mapped_column(Float(precision=53), nullable=False)
    y: Mapped[float] = mapped_column(Float(precision=53), nullable=False)
    z: Mapped[float] = mapped_column(Float(precision=53), nullable=False)

    title: Mapped[str] = mapped_column(String(256), nullable=False)

    description: Mapped[str] = mapped_column(
        String(256),
        nullable=False,
        default="",
        server_default=text("''"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_annotations_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Annotation(id={self.id}, title='{self.title}', created_at='{self.created_at}')>"
