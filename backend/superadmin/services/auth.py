"""
Login, verify and logout protocol for the privileged account.

Login walks AwaitingCredentials -> AwaitingSecondFactor -> Authenticated,
with Denied (rate limited) and Rejected (bad credentials) as terminal states.
Each transition writes exactly one audit entry.
"""

import logging
from dataclasses import dataclass

from superadmin.core.exceptions import InvalidCredentialsError, InvalidTokenError, RateLimitedError
from superadmin.core.sanitization import sanitize_credential
from superadmin.services.audit import AuditAction, AuditCategory, AuditLogger
from superadmin.services.credentials import CredentialVerifier
from superadmin.services.rate_limit import RateLimitDecision, RateLimiter
from superadmin.services.session import STAGE_FULL, STAGE_PENDING_2FA, SessionClaim, SessionManager
from superadmin.services.totp import SecondFactorVerifier
from superadmin.utils.request import RequestContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    token: str
    requires_2fa: bool
    expires_in: int

    @property
    def sets_cookie(self) -> bool:
        return not self.requires_2fa


class AuthService:
    """Orchestrates the login protocol over injected collaborators."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        credentials: CredentialVerifier,
        second_factor: SecondFactorVerifier,
        sessions: SessionManager,
        audit: AuditLogger,
    ):
        self.rate_limiter = rate_limiter
        self.credentials = credentials
        self.second_factor = second_factor
        self.sessions = sessions
        self.audit = audit

    async def _audit_auth(self, action: str, details: str, ctx: RequestContext, success: bool) -> None:
        await self.audit.append(
            action, AuditCategory.AUTH, details, ctx.ip_address, ctx.user_agent, success
        )

    async def _reject(
        self,
        action: str,
        reason: str,
        details: str,
        decision: RateLimitDecision,
        ctx: RequestContext,
    ) -> InvalidCredentialsError:
        await self.rate_limiter.record(ctx.ip_address, False)
        await self._audit_auth(action, details, ctx, success=False)
        return InvalidCredentialsError(reason, decision.remaining_attempts - 1)

    async def login(
        self,
        username: str,
        password: str,
        totp_code: str | None,
        ctx: RequestContext,
    ) -> LoginResult:
        """Run one login attempt.

        Raises:
            RateLimitedError: the address is locked out or out of attempts.
            InvalidCredentialsError: username, password or TOTP code was wrong.
        """
        address = ctx.ip_address
        decision = await self.rate_limiter.check(address)
        if not decision.allowed:
            await self._audit_auth(
                AuditAction.LOGIN_BLOCKED_RATE_LIMIT,
                f"Login blocked for {address}",
                ctx,
                success=False,
            )
            raise RateLimitedError(decision.locked_until)

        resolved = False
        try:
            username = sanitize_credential(username)
            password = sanitize_credential(password)
            code = sanitize_credential(totp_code) if totp_code else ""

            account = self.credentials.lookup(username)
            if account is None:
                self.credentials.burn_time(password)
                resolved = True
                raise await self._reject(
                    AuditAction.LOGIN_FAILED_INVALID_USERNAME,
                    "invalid_username",
                    f"Invalid username: {username}",
                    decision,
                    ctx,
                )

            if not self.credentials.verify_password(account, password):
                resolved = True
                raise await self._reject(
                    AuditAction.LOGIN_FAILED_INVALID_PASSWORD,
                    "invalid_password",
                    f"Invalid password for {username}",
                    decision,
                    ctx,
                )

            if code:
                if not self.second_factor.verify(code, account.totp_secret):
                    resolved = True
                    raise await self._reject(
                        AuditAction.LOGIN_FAILED_INVALID_TOTP,
                        "invalid_totp",
                        f"Invalid TOTP code for {username}",
                        decision,
                        ctx,
                    )
            elif account.has_second_factor:
                claim = self.sessions.new_claim(account.username, stage=STAGE_PENDING_2FA)
                token = self.sessions.issue(claim)
                await self._audit_auth(
                    AuditAction.LOGIN_PENDING_2FA,
                    f"Password verified for {username}, awaiting TOTP",
                    ctx,
                    success=True,
                )
                # Slot released in finally; the failure count is kept
                return LoginResult(token=token, requires_2fa=True, expires_in=claim.lifetime_seconds)

            await self.rate_limiter.record(address, True)
            resolved = True
            claim = self.sessions.new_claim(account.username, stage=STAGE_FULL)
            token = self.sessions.issue(claim)
            await self._audit_auth(
                AuditAction.LOGIN_SUCCESS,
                f"Successful login for {username}",
                ctx,
                success=True,
            )
            logger.info(f"Superadmin login from {address}")
            return LoginResult(token=token, requires_2fa=False, expires_in=claim.lifetime_seconds)
        except InvalidCredentialsError:
            raise
        except Exception as e:
            logger.error(f"Login error from {address}: {e}")
            await self._audit_auth(AuditAction.LOGIN_ERROR, f"Login error: {type(e).__name__}", ctx, success=False)
            raise
        finally:
            if not resolved:
                await self.rate_limiter.release(address)

    async def verify(self, token: str | None, ctx: RequestContext) -> SessionClaim:
        """Open a full-stage session token; failures are audited and re-raised."""
        try:
            return self.sessions.open(token or "", stage=STAGE_FULL)
        except InvalidTokenError as e:
            await self._audit_auth(
                AuditAction.SESSION_VERIFY_FAILED,
                f"Session verification failed: {e.reason}",
                ctx,
                success=False,
            )
            raise

    async def logout(self, ctx: RequestContext) -> None:
        await self._audit_auth(AuditAction.LOGOUT, "Superadmin logged out", ctx, success=True)
