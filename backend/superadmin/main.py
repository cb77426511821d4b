import logging
import os
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.trustedhost import TrustedHostMiddleware

from superadmin.api.audit import router as audit_router
from superadmin.api.auth import router as auth_router
from superadmin.api.data import router as data_router
from superadmin.api.totp import router as totp_router
from superadmin.core.config import APP_VERSION, INSECURE_DEFAULTS, settings
from superadmin.core.errors import (
    HTTPError,
    http_error_handler,
    invalid_credentials_handler,
    invalid_token_handler,
    rate_limited_handler,
    request_validation_handler,
)
from superadmin.core.exceptions import InvalidCredentialsError, InvalidTokenError, RateLimitedError
from superadmin.core.logging import setup_logging
from superadmin.core.middleware import ErrorResponseMiddleware, RequestValidationMiddleware
from superadmin.core.redis import close_redis
from superadmin.db.session import get_db

logger = logging.getLogger(__name__)


def check_security_configuration() -> None:
    """Refuse to start in production with insecure secrets or an unprovisioned account."""
    if settings.DEBUG:
        return

    critical_failures = []

    if settings.JWT_SECRET_KEY.lower() in INSECURE_DEFAULTS:
        critical_failures.append(
            "JWT_SECRET_KEY is using insecure default in production. "
            "Set a secure secret via environment variable: "
            "JWT_SECRET_KEY=$(openssl rand -base64 32)"
        )

    if settings.SESSION_ENCRYPTION_KEY.lower() in INSECURE_DEFAULTS:
        critical_failures.append(
            "SESSION_ENCRYPTION_KEY is using insecure default in production. "
            "Set a secure key via environment variable: "
            "SESSION_ENCRYPTION_KEY=$(openssl rand -base64 32)"
        )

    if settings.JWT_SECRET_KEY == settings.SESSION_ENCRYPTION_KEY:
        critical_failures.append("JWT_SECRET_KEY and SESSION_ENCRYPTION_KEY must be different")

    if not settings.SUPERADMIN_PASSWORD_HASH:
        critical_failures.append("SUPERADMIN_PASSWORD_HASH is not set")

    if critical_failures:
        raise RuntimeError(
            "CRITICAL SECURITY CONFIGURATION ERROR:\n" + "\n".join(f"  - {msg}" for msg in critical_failures)
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    # Setup structured logging first
    setup_logging()

    # Startup
    check_security_configuration()
    if not settings.TOTP_SECRET:
        logger.warning("TOTP_SECRET is not set, second factor is disabled")

    yield

    # Shutdown
    logger.info("Closing Redis connection")
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version=APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
    redirect_slashes=False,
)

# Register custom exception handlers
app.add_exception_handler(HTTPError, http_error_handler)
app.add_exception_handler(RateLimitedError, rate_limited_handler)
app.add_exception_handler(InvalidCredentialsError, invalid_credentials_handler)
app.add_exception_handler(InvalidTokenError, invalid_token_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)


@app.middleware("http")
async def bind_request_id(request: Request, call_next):
    """Bind the request ID to every log entry written during this request."""
    request_id = getattr(request.state, "request_id", None)
    structlog.contextvars.clear_contextvars()
    if request_id:
        structlog.contextvars.bind_contextvars(request_id=request_id)
    try:
        return await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)


# Production security middleware
if not settings.DEBUG:
    # Prevent host header attacks (configure allowed hosts via env var)
    allowed_hosts = os.environ.get("ALLOWED_HOSTS", "")
    if allowed_hosts:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=[h.strip() for h in allowed_hosts.split(",")]
        )


# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add OWASP-recommended security headers to all responses."""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = (
        "geolocation=(), "
        "microphone=(), "
        "camera=(), "
        "payment=(), "
        "usb=()"
    )
    response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
    response.headers["Cross-Origin-Resource-Policy"] = "same-origin"
    # Session tokens and audit data must never be cached
    response.headers["Cache-Control"] = "no-store"

    # Only enable HSTS in production with HTTPS
    if not settings.DEBUG:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"

    return response


# Request validation middleware (sets request.state.request_id)
app.add_middleware(
    RequestValidationMiddleware,
    max_request_size=1024 * 1024,
    enforce_content_type=True,
)


# Error response middleware (add last to catch all errors)
app.add_middleware(ErrorResponseMiddleware)


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check endpoint for container orchestration.

    Returns 200 when the database answers, 503 otherwise.
    """
    checks = {
        "status": "healthy",
        "database": False,
    }

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["status"] = "unhealthy"

    status_code = 200 if checks["database"] else 503
    return JSONResponse(content=checks, status_code=status_code)


# Include routers with /api prefix
app.include_router(auth_router, prefix="/api")
app.include_router(data_router, prefix="/api")
app.include_router(audit_router, prefix="/api")
app.include_router(totp_router, prefix="/api")
