import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from superadmin.api.deps import get_audit_logger, request_context, require_superadmin
from superadmin.core.errors import internal_error
from superadmin.db.session import get_db
from superadmin.schemas.audit import AuditLogEntry, AuditLogListResponse
from superadmin.services.audit import AuditAction, AuditCategory, AuditLogger, list_audit_logs
from superadmin.services.session import SessionClaim
from superadmin.utils.request import RequestContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/superadmin/audit-logs", tags=["superadmin-audit"])

READ_AUDIT_LOGS = AuditAction.for_data("read", "audit_logs")


@router.get("", response_model=AuditLogListResponse)
async def get_audit_logs(
    db: Annotated[AsyncSession, Depends(get_db)],
    _: Annotated[SessionClaim, Depends(require_superadmin)],
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
    ctx: Annotated[RequestContext, Depends(request_context)],
    category: Literal["auth", "crud", "settings", "system"] | None = Query(None),
    status: Literal["success", "failure"] | None = Query(None),
    search: str | None = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """
    Get audit log entries with optional filters.
    Returns a paginated list, newest first. The read itself is audited.
    """
    success = None if status is None else status == "success"
    try:
        logs, total = await list_audit_logs(
            db,
            category=category,
            success=success,
            search=search.strip() if search else None,
            limit=limit,
            offset=offset,
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch audit logs: {e}")
        await audit.append(
            READ_AUDIT_LOGS, AuditCategory.CRUD, "Failed to fetch audit logs", ctx.ip_address, ctx.user_agent, False
        )
        raise internal_error("Failed to fetch audit logs")

    await audit.append(
        READ_AUDIT_LOGS,
        AuditCategory.CRUD,
        f"Viewed {len(logs)} of {total} audit entries",
        ctx.ip_address,
        ctx.user_agent,
        True,
    )

    return AuditLogListResponse(
        items=[AuditLogEntry.model_validate(log) for log in logs],
        total=total,
        limit=limit,
        offset=offset,
    )
