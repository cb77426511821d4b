"""
Audit log model for security-relevant events.

Rows are append-only: the application inserts them and never updates or
deletes them. Retention is an operational concern.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from superadmin.db.base import Base, UUIDMixin


class AuditLog(Base, UUIDMixin):
    """Immutable record of an authentication or privileged-data event."""

    __tablename__ = "superadmin_audit_logs"

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(16), nullable=False, index=True)  # auth, crud, settings, system
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IPv6 max length
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)

    __table_args__ = (
        Index("idx_superadmin_audit_logs_timestamp_desc", timestamp.desc()),
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} success={self.success} at {self.timestamp}>"
