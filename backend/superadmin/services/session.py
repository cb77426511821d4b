"""
Session issuing and verification.

A session token is an HS256 JWT wrapped in Fernet encryption. The JWT proves
who issued the claim; the Fernet layer keeps the claim opaque to the client
and rejects any tampered byte before the signature is even looked at.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from cryptography.fernet import Fernet, InvalidToken

from superadmin.core.encryption import get_session_fernet
from superadmin.core.exceptions import InvalidTokenError
from superadmin.core.security import create_access_token, decode_access_token

logger = logging.getLogger(__name__)

STAGE_FULL = "full"
STAGE_PENDING_2FA = "pending_2fa"
STAGES = (STAGE_FULL, STAGE_PENDING_2FA)


@dataclass(frozen=True)
class SessionClaim:
    """Identity asserted by a session token. Timestamps are whole seconds, UTC."""

    subject: str
    role: str
    issued_at: datetime
    expires_at: datetime
    stage: str = STAGE_FULL

    @property
    def lifetime_seconds(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())


def _whole_seconds(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(microsecond=0)


class SessionManager:
    """Issues and opens session tokens for a single privileged role."""

    def __init__(
        self,
        signing_key: str,
        encryption_key: str,
        role: str,
        lifetime: timedelta = timedelta(hours=2),
        pending_lifetime: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._signing_key = signing_key
        self._fernet: Fernet = get_session_fernet(encryption_key)
        self.role = role
        self.lifetime = lifetime
        self.pending_lifetime = pending_lifetime
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, clock: Callable[[], datetime] | None = None) -> "SessionManager":
        kwargs = {"clock": clock} if clock else {}
        return cls(
            signing_key=settings.JWT_SECRET_KEY,
            encryption_key=settings.SESSION_ENCRYPTION_KEY,
            role=settings.SUPERADMIN_ROLE,
            lifetime=timedelta(minutes=settings.SESSION_LIFETIME_MINUTES),
            pending_lifetime=timedelta(minutes=settings.PENDING_2FA_LIFETIME_MINUTES),
            **kwargs,
        )

    def new_claim(self, subject: str, stage: str = STAGE_FULL) -> SessionClaim:
        if stage not in STAGES:
            raise ValueError(f"Unknown session stage: {stage}")
        issued_at = _whole_seconds(self._clock())
        lifetime = self.lifetime if stage == STAGE_FULL else self.pending_lifetime
        return SessionClaim(
            subject=subject,
            role=self.role,
            issued_at=issued_at,
            expires_at=issued_at + lifetime,
            stage=stage,
        )

    def issue(self, claim: SessionClaim) -> str:
        signed = create_access_token(
            {"sub": claim.subject, "role": claim.role, "stage": claim.stage},
            issued_at=claim.issued_at,
            expires_at=claim.expires_at,
            secret_key=self._signing_key,
        )
        return self._fernet.encrypt(signed.encode()).decode()

    def open(self, token: str, stage: str = STAGE_FULL) -> SessionClaim:
        """Return the claim carried by ``token`` or raise InvalidTokenError."""
        if not token:
            raise InvalidTokenError("missing")

        try:
            signed = self._fernet.decrypt(token.encode()).decode()
        except (InvalidToken, UnicodeError, ValueError):
            raise InvalidTokenError("decryption_failed")

        payload = decode_access_token(signed, secret_key=self._signing_key)
        if payload is None:
            raise InvalidTokenError("bad_signature")

        try:
            claim = SessionClaim(
                subject=str(payload["sub"]),
                role=str(payload["role"]),
                issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
                stage=str(payload.get("stage", STAGE_FULL)),
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidTokenError("malformed_claims")

        if not self._clock() < claim.expires_at:
            raise InvalidTokenError("expired")
        if claim.role != self.role:
            raise InvalidTokenError("wrong_role")
        if claim.stage != stage:
            raise InvalidTokenError("wrong_stage")

        return claim
