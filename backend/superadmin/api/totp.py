from typing import Annotated

from fastapi import APIRouter, Depends

from superadmin.api.deps import get_audit_logger, request_context, require_superadmin
from superadmin.core.config import settings
from superadmin.schemas.totp import TotpSetupResponse
from superadmin.services.audit import AuditAction, AuditCategory, AuditLogger
from superadmin.services.session import SessionClaim
from superadmin.services.totp import generate_qr_uri, generate_totp_secret
from superadmin.utils.request import RequestContext

router = APIRouter(prefix="/superadmin/totp-setup", tags=["superadmin-settings"])


@router.get("", response_model=TotpSetupResponse)
async def get_totp_setup(
    claim: Annotated[SessionClaim, Depends(require_superadmin)],
    audit: Annotated[AuditLogger, Depends(get_audit_logger)],
    ctx: Annotated[RequestContext, Depends(request_context)],
):
    """
    Provisioning details for enrolling the secret in an authenticator app.

    Without a configured secret the second factor is off; a fresh candidate
    secret is returned so it can be enrolled and then set as TOTP_SECRET.
    It is not stored anywhere.
    """
    secret = settings.TOTP_SECRET
    enabled = bool(secret)
    if not enabled:
        secret = generate_totp_secret()

    await audit.append(
        AuditAction.TOTP_SETUP_VIEWED,
        AuditCategory.SETTINGS,
        "TOTP provisioning details viewed" if enabled else "TOTP candidate secret generated",
        ctx.ip_address,
        ctx.user_agent,
        True,
    )

    return TotpSetupResponse(
        enabled=enabled,
        issuer=settings.TOTP_ISSUER,
        account_name=claim.subject,
        secret=secret,
        qr_uri=generate_qr_uri(secret, claim.subject, settings.TOTP_ISSUER),
    )
