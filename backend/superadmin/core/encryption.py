import base64
import hashlib

from cryptography.fernet import Fernet

from superadmin.core.config import settings


def derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet key from an arbitrary-length secret string."""
    if not secret or secret.strip() == "":
        raise ValueError(
            "SESSION_ENCRYPTION_KEY must be set in environment variables. "
            "Generate a secure random key using: openssl rand -base64 32"
        )

    # Fernet requires 32 url-safe base64-encoded bytes
    key = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key)


def get_session_fernet(secret: str | None = None) -> Fernet:
    """Build the Fernet instance used to wrap session tokens."""
    return Fernet(derive_fernet_key(secret or settings.SESSION_ENCRYPTION_KEY))
