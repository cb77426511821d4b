import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from superadmin.api.deps import get_auth_service, get_session_token, request_context
from superadmin.core.config import settings
from superadmin.core.errors import internal_error
from superadmin.core.exceptions import InvalidCredentialsError, RateLimitedError
from superadmin.schemas.auth import LoginRequest, LoginResponse, LogoutResponse, SessionUser, VerifyResponse
from superadmin.services.auth import AuthService
from superadmin.utils.request import RequestContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/superadmin", tags=["superadmin-auth"])


def set_session_cookie(response: Response, token: str, max_age: int) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        max_age=max_age,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value="",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        max_age=0,
        path="/",
    )


@router.post("/login", response_model=LoginResponse, response_model_by_alias=True)
async def login(
    body: LoginRequest,
    auth: Annotated[AuthService, Depends(get_auth_service)],
    ctx: Annotated[RequestContext, Depends(request_context)],
):
    """
    Authenticate the superadmin.

    Returns a pending-stage token with ``requires2FA`` when a second factor is
    provisioned and no code was supplied. Only a full login sets the cookie.
    """
    try:
        result = await auth.login(body.username, body.password, body.totp_code, ctx)
    except (RateLimitedError, InvalidCredentialsError):
        raise
    except Exception:
        # Already audited as LOGIN_ERROR by the service
        raise internal_error("Login failed")

    payload = LoginResponse(
        success=True,
        token=result.token,
        requires_2fa=result.requires_2fa,
        expires_in=result.expires_in,
    )
    response = JSONResponse(content=payload.model_dump(by_alias=True))
    if result.sets_cookie:
        set_session_cookie(response, result.token, result.expires_in)
    return response


@router.post("/verify", response_model=VerifyResponse)
async def verify(
    token: Annotated[str | None, Depends(get_session_token)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
    ctx: Annotated[RequestContext, Depends(request_context)],
):
    """Check a session token from the Authorization header or the session cookie."""
    claim = await auth.verify(token, ctx)
    return VerifyResponse(
        valid=True,
        user=SessionUser(
            username=claim.subject,
            role=claim.role,
            exp=int(claim.expires_at.timestamp()),
        ),
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    response: Response,
    auth: Annotated[AuthService, Depends(get_auth_service)],
    ctx: Annotated[RequestContext, Depends(request_context)],
):
    """Clear the session cookie. Tokens are not revoked server side."""
    await auth.logout(ctx)
    clear_session_cookie(response)
    return LogoutResponse(success=True)
