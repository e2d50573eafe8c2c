"""Create annotations table

Revision ID: 001
Revises: None
Create Date: 2024-06-01 00:00:00.000000+00:00

What:  Creates the `annotations` table backing the handler's CRUD API.
How:   UUID primary key assigned by the application, DOUBLE PRECISION
       coordinates, VARCHAR(256) text columns, TIMESTAMP WITH TIME ZONE audit
       columns and one index for the newest-first list query.

Rollback: downgrade() drops the table (all annotations are lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "annotations",

        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Annotation identifier, generated by the application on insert",
        ),

        sa.Column("x", sa.Float(precision=53), nullable=False, comment="X coordinate"),
        sa.Column("y", sa.Float(precision=53), nullable=False, comment="Y coordinate"),
        sa.Column("z", sa.Float(precision=53), nullable=False, comment="Z coordinate"),

        sa.Column(
            "title",
            sa.String(256),
            nullable=False,
            comment="Short label; at most 256 bytes of UTF-8",
        ),

        sa.Column(
            "description",
            sa.String(256),
            nullable=False,
            server_default=sa.text("''"),
            comment="Free text; at most 256 bytes of UTF-8",
        ),

        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="Set once on insert (UTC)",
        ),

        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="Refreshed on every update (UTC)",
        ),

        sa.PrimaryKeyConstraint("id"),
    )

    # GET /api/v1/annotations orders by created_at DESC
    op.create_index(
        "idx_annotations_created_at",
        "annotations",
        [sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_annotations_created_at", table_name="annotations")
    op.drop_table("annotations")
