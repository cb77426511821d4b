"""Password hashing and JWT signing primitives."""

from datetime import datetime
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from superadmin.core.config import settings


def build_password_context(rounds: int | None = None) -> CryptContext:
    """Create a bcrypt CryptContext with the configured cost factor."""
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=rounds or settings.BCRYPT_ROUNDS,
    )


pwd_context = build_password_context()


def get_password_hash(password: str, context: CryptContext | None = None) -> str:
    return (context or pwd_context).hash(password)


def verify_password(
    plain_password: str,
    hashed_password: str,
    context: CryptContext | None = None,
) -> bool:
    """Constant-time salted hash comparison. Malformed hashes never verify."""
    try:
        return (context or pwd_context).verify(plain_password, hashed_password)
    except ValueError:
        # passlib raises ValueError (UnknownHashError) for empty or unrecognised hashes
        return False


def create_access_token(
    data: dict[str, Any],
    issued_at: datetime,
    expires_at: datetime,
    secret_key: str | None = None,
) -> str:
    """Sign a JWT carrying ``data`` plus iat/exp/iss/aud."""
    to_encode = data.copy()
    to_encode.update(
        {
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": settings.JWT_ISSUER,
            "aud": settings.JWT_AUDIENCE,
        }
    )
    return jwt.encode(
        to_encode,
        secret_key or settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_access_token(token: str, secret_key: str | None = None) -> dict[str, Any] | None:
    """Verify signature, issuer and audience. Returns None on any failure.

    Expiry is not checked here: callers compare ``exp`` against their own clock.
    """
    try:
        return jwt.decode(
            token,
            secret_key or settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options={"verify_exp": False},
        )
    except JWTError:
        return None
