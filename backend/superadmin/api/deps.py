from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from superadmin.core.config import settings
from superadmin.core.errors import unauthorized
from superadmin.core.exceptions import InvalidTokenError
from superadmin.core.redis import get_redis
from superadmin.db.session import async_session_maker, get_db
from superadmin.services.audit import AuditAction, AuditCategory, AuditLogger
from superadmin.services.auth import AuthService
from superadmin.services.credentials import CredentialVerifier
from superadmin.services.documents import DocumentStore, SQLDocumentStore
from superadmin.services.rate_limit import Clock, RateLimiter, build_rate_limiter, utcnow
from superadmin.services.session import STAGE_FULL, SessionClaim, SessionManager
from superadmin.services.totp import SecondFactorVerifier
from superadmin.utils.request import RequestContext, get_request_context

security = HTTPBearer(auto_error=False)

# Process-wide collaborators, created on first use
_rate_limiter: RateLimiter | None = None
_credential_verifier: CredentialVerifier | None = None
_second_factor_verifier: SecondFactorVerifier | None = None
_session_manager: SessionManager | None = None
_audit_logger: AuditLogger | None = None


async def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        redis_client = await get_redis() if settings.RATE_LIMIT_BACKEND == "redis" else None
        _rate_limiter = build_rate_limiter(settings, redis_client)
    return _rate_limiter


def get_credential_verifier() -> CredentialVerifier:
    global _credential_verifier
    if _credential_verifier is None:
        _credential_verifier = CredentialVerifier.from_settings(settings)
    return _credential_verifier


def get_second_factor_verifier() -> SecondFactorVerifier:
    global _second_factor_verifier
    if _second_factor_verifier is None:
        _second_factor_verifier = SecondFactorVerifier(valid_window=settings.TOTP_VALID_WINDOW)
    return _second_factor_verifier


def get_session_manager() -> SessionManager:
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager.from_settings(settings)
    return _session_manager


def get_audit_logger() -> AuditLogger:
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger(async_session_maker)
    return _audit_logger


def get_clock() -> Clock:
    """Wall clock for request-time decisions such as "active today"."""
    return utcnow


def get_document_store(db: Annotated[AsyncSession, Depends(get_db)]) -> DocumentStore:
    return SQLDocumentStore(db)


def get_auth_service(
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    credentials: Annotated[CredentialVerifier, Depends(get_credential_verifier)],
    second_factor: Annotated[SecondFactorVerifier, Depends(get_second_factor_verifier)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
) -> AuthService:
    return AuthService(rate_limiter, credentials, second_factor, sessions, audit)


def extract_session_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    """Bearer header wins over the session cookie."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME) or None


async def get_session_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str | None:
    return extract_session_token(request, credentials)


async def require_superadmin(
    request: Request,
    token: Annotated[str | None, Depends(get_session_token)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
) -> SessionClaim:
    """Gate for privileged endpoints. Pending-2FA tokens are refused."""
    try:
        return sessions.open(token or "", stage=STAGE_FULL)
    except InvalidTokenError as e:
        ctx = get_request_context(request)
        await audit.append(
            AuditAction.ADMIN_DATA_UNAUTHORIZED,
            AuditCategory.AUTH,
            f"Unauthorized {request.method} {request.url.path}: {e.reason}",
            ctx.ip_address,
            ctx.user_agent,
            success=False,
        )
        raise unauthorized()


def request_context(request: Request) -> RequestContext:
    return get_request_context(request)
