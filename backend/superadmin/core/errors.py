"""
Standardized error response system.

Privileged-data and audit endpoints answer with the standard error envelope.
The login and verify protocol endpoints keep their own minimal bodies so that
security failures never reveal more than a generic message.
"""
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from superadmin.core.exceptions import (
    InvalidCredentialsError,
    InvalidTokenError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)

GENERIC_INVALID_CREDENTIALS = "Invalid credentials"
GENERIC_RATE_LIMITED = "Too many login attempts. Try again later."
GENERIC_INVALID_TOKEN = "Invalid or expired token"
GENERIC_INVALID_REQUEST = "Invalid request"


class ErrorCode:
    """Standard error codes."""

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"

    # Authentication/Authorization
    UNAUTHORIZED = "UNAUTHORIZED"

    # Resource errors
    NOT_FOUND = "NOT_FOUND"

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse:
    """Standard error response format."""

    @staticmethod
    def create(
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> JSONResponse:
        """
        Create a standardized error response.

        Args:
            code: Machine-readable error code
            message: Human-readable error message
            status_code: HTTP status code
            details: Additional error details (optional)
            request_id: Request correlation ID (optional)

        Returns:
            JSONResponse with standard error format
        """
        error_data: Dict[str, Any] = {
            "error": {
                "code": code,
                "message": message,
            }
        }

        if details:
            error_data["error"]["details"] = details

        if request_id:
            error_data["error"]["request_id"] = request_id

        return JSONResponse(status_code=status_code, content=error_data)


class HTTPError(HTTPException):
    """
    Enhanced HTTPException with standard error response format.

    Usage:
        raise HTTPError(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            message="Document not found",
            details={"id": "abc"}
        )
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(status_code=status_code, detail=message)


async def http_error_handler(request: Request, exc: HTTPError) -> JSONResponse:
    """Handle HTTPError exceptions and return standardized error response."""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    return ErrorResponse.create(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        request_id=request_id,
    )


async def rate_limited_handler(request: Request, exc: RateLimitedError) -> JSONResponse:
    """429 for refused login attempts; lockout expiry is the only detail returned."""
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": GENERIC_RATE_LIMITED,
            "lockedUntil": exc.locked_until.isoformat() if exc.locked_until else None,
        },
    )


async def invalid_credentials_handler(request: Request, exc: InvalidCredentialsError) -> JSONResponse:
    """401 for any credential failure. The failing field is never disclosed."""
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={
            "error": GENERIC_INVALID_CREDENTIALS,
            "remainingAttempts": exc.remaining_attempts,
        },
    )


async def invalid_token_handler(request: Request, exc: InvalidTokenError) -> JSONResponse:
    """401 for session verification failures."""
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"valid": False, "error": GENERIC_INVALID_TOKEN},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Reject bodies that do not match the endpoint schema without echoing them back."""
    logger.warning(f"Rejected malformed request to {request.url.path}: {len(exc.errors())} validation error(s)")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": GENERIC_INVALID_REQUEST},
    )


# Convenience functions for common errors

def not_found(resource: str, details: Optional[Dict[str, Any]] = None) -> HTTPError:
    """Create a 404 NOT_FOUND error."""
    return HTTPError(
        status_code=status.HTTP_404_NOT_FOUND,
        code=ErrorCode.NOT_FOUND,
        message=f"{resource} not found",
        details=details,
    )


def unauthorized(message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None) -> HTTPError:
    """Create a 401 UNAUTHORIZED error."""
    return HTTPError(
        status_code=status.HTTP_401_UNAUTHORIZED,
        code=ErrorCode.UNAUTHORIZED,
        message=message,
        details=details,
    )


def validation_error(message: str, details: Optional[Dict[str, Any]] = None) -> HTTPError:
    """Create a 400 VALIDATION_ERROR error."""
    return HTTPError(
        status_code=status.HTTP_400_BAD_REQUEST,
        code=ErrorCode.VALIDATION_ERROR,
        message=message,
        details=details,
    )


def internal_error(message: str = "Internal server error", details: Optional[Dict[str, Any]] = None) -> HTTPError:
    """Create a 500 INTERNAL_ERROR error."""
    return HTTPError(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code=ErrorCode.INTERNAL_ERROR,
        message=message,
        details=details,
    )
