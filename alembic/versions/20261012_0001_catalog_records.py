"""Catalog records table holding every collection as JSON payloads.

Revision ID: 20261012_0001
Revises:
Create Date: 2026-10-12 10:00:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261012_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "catalog_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("collection", sa.String(length=64), nullable=False),
        sa.Column("record_id", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "collection", "record_id", name="uq_catalog_records_collection_record_id"
        ),
    )
    op.create_index(
        "idx_catalog_records_collection", "catalog_records", ["collection"]
    )


def downgrade() -> None:
    op.drop_index("idx_catalog_records_collection", table_name="catalog_records")
    op.drop_table("catalog_records")
