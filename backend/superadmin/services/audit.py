"""
Audit logging service for security-relevant events.

Usage:
    await audit_logger.append(AuditAction.LOGIN_SUCCESS, AuditCategory.AUTH, "Login", ip, ua, True)

Each entry is written in its own session and transaction, independent of the
request's database session. A failed write is reported to the diagnostic log
and never reaches the caller.
"""
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from superadmin.core.sanitization import sanitize_text
from superadmin.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

DETAILS_MAX_LENGTH = 500


class AuditCategory:
    AUTH = "auth"
    CRUD = "crud"
    SETTINGS = "settings"
    SYSTEM = "system"

    ALL = (AUTH, CRUD, SETTINGS, SYSTEM)


class AuditAction:
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_PENDING_2FA = "LOGIN_PENDING_2FA"
    LOGIN_FAILED_INVALID_USERNAME = "LOGIN_FAILED_INVALID_USERNAME"
    LOGIN_FAILED_INVALID_PASSWORD = "LOGIN_FAILED_INVALID_PASSWORD"
    LOGIN_FAILED_INVALID_TOTP = "LOGIN_FAILED_INVALID_TOTP"
    LOGIN_BLOCKED_RATE_LIMIT = "LOGIN_BLOCKED_RATE_LIMIT"
    LOGIN_ERROR = "LOGIN_ERROR"
    SESSION_VERIFY_FAILED = "SESSION_VERIFY_FAILED"
    LOGOUT = "LOGOUT"
    ADMIN_DATA_UNAUTHORIZED = "ADMIN_DATA_UNAUTHORIZED"
    TOTP_SETUP_VIEWED = "TOTP_SETUP_VIEWED"

    @staticmethod
    def for_data(operation: str, entity: str) -> str:
        """Action name for a privileged-data call, e.g. ``READ_USERS``."""
        return f"{operation.upper()}_{entity.upper()}"


class AuditLogger:
    """Append-only writer for the audit trail."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def append(
        self,
        action: str,
        category: str,
        details: str = "",
        ip_address: str | None = None,
        user_agent: str | None = None,
        success: bool = True,
    ) -> None:
        try:
            entry = AuditLog(
                timestamp=self._clock(),
                action=action,
                category=category,
                details=sanitize_text(details or "", max_length=DETAILS_MAX_LENGTH),
                ip_address=(ip_address or "")[:45] or None,
                user_agent=(user_agent or "")[:512] or None,
                success=success,
            )
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
        except Exception as e:
            # Audit is best effort; the protocol outcome must not change
            logger.error(f"Failed to write audit entry {action}: {e}")


async def list_audit_logs(
    db: AsyncSession,
    category: str | None = None,
    success: bool | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[AuditLog], int]:
    """Return one page of entries, newest first, and the total match count."""
    query = select(AuditLog)

    if category:
        query = query.where(AuditLog.category == category)
    if success is not None:
        query = query.where(AuditLog.success == success)
    if search:
        # Search text is literal: wildcards typed by the caller match themselves
        escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        query = query.where(
            or_(
                AuditLog.action.ilike(pattern, escape="\\"),
                AuditLog.details.ilike(pattern, escape="\\"),
                AuditLog.ip_address.ilike(pattern, escape="\\"),
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    query = query.order_by(AuditLog.timestamp.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all()), total
