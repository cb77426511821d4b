"""
Privileged-data document store.

Backs the ``/admin-data`` endpoint. Documents are grouped by collection and
carry an opaque JSON payload; the console only lists, creates, updates and
deletes them.
"""

import logging
import math
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from superadmin.core.exceptions import DocumentNotFoundError, PersistenceFailureError
from superadmin.models.document import Document

logger = logging.getLogger(__name__)

WRITABLE_ENTITIES = ("users", "geofences")
READ_ONLY_ENTITIES = ("audit_logs", "analytics")
ENTITIES = WRITABLE_ENTITIES + READ_ONLY_ENTITIES
MAX_LIST_LIMIT = 200


def document_to_dict(document: Document) -> dict[str, Any]:
    """Flatten a document into the shape returned to the console."""
    return {
        **(document.data or {}),
        "id": str(document.id),
        "createdAt": document.created_at.isoformat() if document.created_at else None,
        "updatedAt": document.updated_at.isoformat() if document.updated_at else None,
    }


class DocumentStore(ABC):
    """Collection-oriented storage used by the privileged-data handlers."""

    @abstractmethod
    async def list(self, collection: str, limit: int | None = None) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def create(self, collection: str, data: dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> None:
        ...


class SQLDocumentStore(DocumentStore):
    """DocumentStore over the ``documents`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get(self, collection: str, document_id: str) -> Document:
        try:
            key = UUID(document_id)
        except ValueError:
            raise DocumentNotFoundError(collection, document_id)
        result = await self.db.execute(
            select(Document).where(Document.collection == collection, Document.id == key)
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(collection, document_id)
        return document

    async def list(self, collection: str, limit: int | None = None) -> list[dict[str, Any]]:
        query = select(Document).where(Document.collection == collection).order_by(Document.created_at)
        if limit is not None:
            query = query.limit(limit)
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise PersistenceFailureError("list", str(e))
        return [document_to_dict(d) for d in result.scalars().all()]

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        payload = {k: v for k, v in data.items() if k not in ("id", "createdAt", "updatedAt")}
        document = Document(collection=collection, data=payload)
        try:
            self.db.add(document)
            await self.db.commit()
            await self.db.refresh(document)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceFailureError("create", str(e))
        return str(document.id)

    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        try:
            document = await self._get(collection, document_id)
            merged = dict(document.data or {})
            merged.update({k: v for k, v in data.items() if k not in ("id", "createdAt", "updatedAt")})
            # Reassign so the JSON column is flagged dirty
            document.data = merged
            document.updated_at = datetime.now(timezone.utc)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceFailureError("update", str(e))

    async def delete(self, collection: str, document_id: str) -> None:
        try:
            document = await self._get(collection, document_id)
            await self.db.delete(document)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceFailureError("delete", str(e))


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def _as_number(value: Any) -> float:
    """Coerce a stored figure to a finite number; anything else counts as zero."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return 0.0
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return 0.0


def summarize_users(users: list[dict[str, Any]], today: date) -> dict[str, Any]:
    """Aggregate the analytics figures shown on the console dashboard.

    Per-user figures are read from ``stats``: ``totalTrades``, ``winRate``
    and ``lastUpdated``. Missing or non-numeric values count as zero.
    """
    total_users = len(users)
    active_today = 0
    total_trades = 0
    win_rate_sum = 0.0

    for user in users:
        stats = user.get("stats")
        if not isinstance(stats, dict):
            stats = {}
        if _parse_date(stats.get("lastUpdated")) == today:
            active_today += 1
        total_trades += int(_as_number(stats.get("totalTrades")))
        win_rate_sum += _as_number(stats.get("winRate"))

    avg_win_rate = round(win_rate_sum / total_users, 2) if total_users else 0

    return {
        "totalUsers": total_users,
        "activeToday": active_today,
        "totalTrades": total_trades,
        "avgWinRate": avg_win_rate,
    }
