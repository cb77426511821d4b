"""
Generic document storage for the privileged-data collaborator.

Each row is one document of a named collection (``users``, ``geofences``)
with an opaque JSON payload.
"""

from typing import Any

from sqlalchemy import JSON, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from superadmin.db.base import Base, TimestampMixin, UUIDMixin


class Document(Base, UUIDMixin, TimestampMixin):
    """A single document in a collection."""

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict
    )

    __table_args__ = (
        Index("ix_documents_collection_created_at", "collection", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.id}>"
