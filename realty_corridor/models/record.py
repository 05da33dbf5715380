"""Catalog record table model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from realty_corridor.models.base import Base


class CatalogRecord(Base):
    """One stored record of a catalog collection, kept as a JSON payload."""

    __tablename__ = "catalog_records"
    __table_args__ = (
        UniqueConstraint(
            "collection", "record_id", name="uq_catalog_records_collection_record_id"
        ),
        Index("idx_catalog_records_collection", "collection"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(64), nullable=False)
    record_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
