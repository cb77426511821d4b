"""Custom exceptions for the SuperAdmin backend."""

from datetime import datetime


class RateLimitedError(Exception):
    """Raised when a login attempt is refused by the rate limiter."""

    def __init__(self, locked_until: datetime | None = None):
        self.locked_until = locked_until
        super().__init__("Too many login attempts")


class InvalidCredentialsError(Exception):
    """Raised for a bad username, bad password or bad TOTP code.

    The reason is kept for audit logging only and is never shown to the caller.
    """

    def __init__(self, reason: str, remaining_attempts: int = 0):
        self.reason = reason
        self.remaining_attempts = max(0, remaining_attempts)
        super().__init__(f"Invalid credentials: {reason}")


class InvalidTokenError(Exception):
    """Raised when a session token cannot be opened.

    Covers malformed, tampered, foreign-signed, expired, wrong-role and
    wrong-stage tokens.
    """

    def __init__(self, reason: str = "invalid"):
        self.reason = reason
        super().__init__(f"Invalid session token: {reason}")


class PersistenceFailureError(Exception):
    """Raised when the privileged document store cannot complete an operation."""

    def __init__(self, operation: str, reason: str = "unknown"):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")


class DocumentNotFoundError(Exception):
    """Raised when an update or delete targets a document that does not exist."""

    def __init__(self, collection: str, document_id: str):
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"{collection}/{document_id} not found")
