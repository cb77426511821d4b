"""
Privileged-data endpoint backing the console dashboard pages.

Every call is gated by ``require_superadmin`` and writes exactly one audit
entry: ``<OPERATION>_<ENTITY>`` on success or failure.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from superadmin.api.deps import get_audit_logger, get_clock, get_document_store, request_context, require_superadmin
from superadmin.core.errors import internal_error, not_found, validation_error
from superadmin.core.exceptions import DocumentNotFoundError, PersistenceFailureError
from superadmin.core.sanitization import sanitize_identifier
from superadmin.db.session import get_db
from superadmin.schemas.data import (
    DataCreateRequest,
    DataCreateResponse,
    DataListResponse,
    DataMutationResponse,
    DataUpdateRequest,
)
from superadmin.services.audit import AuditAction, AuditCategory, AuditLogger, list_audit_logs
from superadmin.services.documents import (
    ENTITIES,
    MAX_LIST_LIMIT,
    WRITABLE_ENTITIES,
    DocumentStore,
    summarize_users,
)
from superadmin.services.rate_limit import Clock
from superadmin.services.session import SessionClaim
from superadmin.utils.request import RequestContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/superadmin/admin-data", tags=["superadmin-data"])


async def _record(
    audit: AuditLogger,
    operation: str,
    entity: str,
    details: str,
    ctx: RequestContext,
    success: bool,
) -> None:
    await audit.append(
        AuditAction.for_data(operation, entity or "unknown"),
        AuditCategory.CRUD,
        details,
        ctx.ip_address,
        ctx.user_agent,
        success,
    )


@router.get("", response_model=DataListResponse)
async def read_data(
    _: Annotated[SessionClaim, Depends(require_superadmin)],
    store: Annotated[DocumentStore, Depends(get_document_store)],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
    ctx: Annotated[RequestContext, Depends(request_context)],
    clock: Annotated[Clock, Depends(get_clock)],
    entity: str = Query(""),
    limit: int = Query(50, ge=1),
):
    """Fetch users, geofences, recent audit entries or the analytics summary."""
    entity = sanitize_identifier(entity)
    limit = min(limit, MAX_LIST_LIMIT)

    if entity not in ENTITIES:
        await _record(audit, "read", entity, f"Rejected read of unknown entity '{entity}'", ctx, False)
        raise validation_error("Invalid entity", details={"entity": entity})

    try:
        if entity == "audit_logs":
            entries, _total = await list_audit_logs(db, limit=limit)
            data = [
                {
                    "id": str(e.id),
                    "timestamp": e.timestamp.isoformat() if e.timestamp else "",
                    "action": e.action,
                    "category": e.category,
                    "details": e.details,
                    "ip": e.ip_address,
                    "userAgent": e.user_agent,
                    "success": e.success,
                }
                for e in entries
            ]
        elif entity == "analytics":
            users = await store.list("users")
            data = [summarize_users(users, today=clock().date())]
        else:
            data = await store.list(entity, limit=limit)
    except (PersistenceFailureError, SQLAlchemyError) as e:
        logger.error(f"Failed to fetch {entity}: {e}")
        await _record(audit, "read", entity, f"Failed to fetch {entity}", ctx, False)
        raise internal_error("Failed to fetch data")
    except Exception:
        logger.exception(f"Unexpected error fetching {entity}")
        await _record(audit, "read", entity, f"Failed to fetch {entity}", ctx, False)
        raise internal_error("Failed to fetch data")

    await _record(audit, "read", entity, f"Fetched {len(data)} {entity} records", ctx, True)
    return DataListResponse(data=data, count=len(data))


@router.post("", response_model=DataCreateResponse)
async def create_data(
    body: DataCreateRequest,
    _: Annotated[SessionClaim, Depends(require_superadmin)],
    store: Annotated[DocumentStore, Depends(get_document_store)],
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
    ctx: Annotated[RequestContext, Depends(request_context)],
):
    try:
        document_id = await store.create(body.entity, body.data)
    except PersistenceFailureError as e:
        logger.error(f"Failed to create {body.entity}: {e}")
        await _record(audit, "create", body.entity, f"Failed to create {body.entity}", ctx, False)
        raise internal_error("Failed to create")

    await _record(audit, "create", body.entity, f"Created {body.entity} with ID: {document_id}", ctx, True)
    return DataCreateResponse(success=True, id=document_id)


@router.put("", response_model=DataMutationResponse)
async def update_data(
    body: DataUpdateRequest,
    _: Annotated[SessionClaim, Depends(require_superadmin)],
    store: Annotated[DocumentStore, Depends(get_document_store)],
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
    ctx: Annotated[RequestContext, Depends(request_context)],
):
    document_id = sanitize_identifier(body.id)
    try:
        await store.update(body.entity, document_id, body.data)
    except DocumentNotFoundError:
        await _record(audit, "update", body.entity, f"{body.entity} {document_id} not found", ctx, False)
        raise not_found(body.entity.rstrip("s").capitalize(), details={"id": document_id})
    except PersistenceFailureError as e:
        logger.error(f"Failed to update {body.entity}/{document_id}: {e}")
        await _record(audit, "update", body.entity, f"Failed to update {body.entity} {document_id}", ctx, False)
        raise internal_error("Failed to update")

    await _record(audit, "update", body.entity, f"Updated {body.entity} with ID: {document_id}", ctx, True)
    return DataMutationResponse(success=True)


@router.delete("", response_model=DataMutationResponse)
async def delete_data(
    _: Annotated[SessionClaim, Depends(require_superadmin)],
    store: Annotated[DocumentStore, Depends(get_document_store)],
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
    ctx: Annotated[RequestContext, Depends(request_context)],
    entity: str = Query(""),
    id: str = Query(""),
):
    entity = sanitize_identifier(entity)
    document_id = sanitize_identifier(id)

    if entity not in WRITABLE_ENTITIES or not document_id:
        await _record(audit, "delete", entity, "Entity and ID required", ctx, False)
        raise validation_error("Entity and ID required")

    try:
        await store.delete(entity, document_id)
    except DocumentNotFoundError:
        await _record(audit, "delete", entity, f"{entity} {document_id} not found", ctx, False)
        raise not_found(entity.rstrip("s").capitalize(), details={"id": document_id})
    except PersistenceFailureError as e:
        logger.error(f"Failed to delete {entity}/{document_id}: {e}")
        await _record(audit, "delete", entity, f"Failed to delete {entity} {document_id}", ctx, False)
        raise internal_error("Failed to delete")

    await _record(audit, "delete", entity, f"Deleted {entity} with ID: {document_id}", ctx, True)
    return DataMutationResponse(success=True)
