"""Custom middleware for request validation and error handling."""

import logging
import uuid
from typing import Callable

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from superadmin.core.errors import ErrorCode, ErrorResponse

logger = logging.getLogger(__name__)


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestValidationMiddleware(BaseHTTPMiddleware):
    """Middleware for request validation and security checks.

    Enforces:
    - Request size limits
    - Content-Type validation for POST/PUT/PATCH requests that carry a body
    - Request ID generation
    """

    def __init__(
        self,
        app: ASGIApp,
        max_request_size: int = 1024 * 1024,  # 1 MB default
        enforce_content_type: bool = True,
    ) -> None:
        super().__init__(app)
        self.max_request_size = max_request_size
        self.enforce_content_type = enforce_content_type

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and apply validation."""
        request_id = request.headers.get("X-Request-ID", "") or str(uuid.uuid4())
        request.state.request_id = request_id

        content_length = request.headers.get("content-length")
        body_size = 0
        if content_length:
            try:
                body_size = int(content_length)
            except ValueError:
                body_size = 0
            if body_size > self.max_request_size:
                logger.warning(f"Request too large: {body_size} bytes from {_client_host(request)}")
                return ErrorResponse.create(
                    code=ErrorCode.REQUEST_TOO_LARGE,
                    message=f"Request too large. Maximum size is {self.max_request_size} bytes",
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    request_id=request_id,
                )

        # Body-less POSTs (logout, verify) carry no Content-Type
        if self.enforce_content_type and request.method in {"POST", "PUT", "PATCH"} and body_size > 0:
            content_type = request.headers.get("content-type", "")
            if not content_type.startswith("application/json"):
                logger.warning(f"Invalid Content-Type from {_client_host(request)}: {content_type}")
                return ErrorResponse.create(
                    code=ErrorCode.INVALID_CONTENT_TYPE,
                    message="Content-Type must be application/json",
                    status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                    request_id=request_id,
                )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class ErrorResponseMiddleware(BaseHTTPMiddleware):
    """Middleware to standardize error responses.

    Catches exceptions that escaped every handler and returns the same
    envelope as ``HTTPError`` without leaking internals.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception:
            request_id = getattr(request.state, "request_id", "unknown")
            logger.exception(f"Request error: {request.method} {request.url.path}")

            return ErrorResponse.create(
                code=ErrorCode.INTERNAL_ERROR,
                message="An unexpected error occurred",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                request_id=request_id,
            )
