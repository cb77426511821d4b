import ipaddress
import os
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


def _get_version() -> str:
    """Read version from pyproject.toml or environment variable."""
    if env_version := os.getenv("SUPERADMIN_VERSION"):
        return env_version

    try:
        pyproject_path = Path(__file__).parent.parent.parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            content = pyproject_path.read_text()
            for line in content.split("\n"):
                if line.startswith("version"):
                    # Parse: version = "0.1.0"
                    return line.split("=")[1].strip().strip('"').strip("'")
    except OSError:
        pass

    return "0.0.0-dev"


APP_VERSION = _get_version()

INSECURE_DEFAULTS = [
    "dev-secret-key-change-in-prod",
    "dev-session-key-change-in-prod",
    "default-dev-key-change-in-prod",
    "secret",
    "changeme",
]


class Settings(BaseSettings):
    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "superadmin"
    POSTGRES_PASSWORD: str = "devpassword"
    POSTGRES_DB: str = "superadmin"
    SQLALCHEMY_DATABASE_URL: str | None = None  # Overrides the POSTGRES_* settings when set

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URL:
            return self.SQLALCHEMY_DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # Session token: JWT signing layer
    JWT_SECRET_KEY: str = "dev-secret-key-change-in-prod"  # In production, ALWAYS override via env var
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "asterika-superadmin"
    JWT_AUDIENCE: str = "asterika-admin-portal"

    # Session token: encryption layer (kept separate from the signing secret)
    SESSION_ENCRYPTION_KEY: str = "dev-session-key-change-in-prod"  # In production, ALWAYS override via env var
    SESSION_LIFETIME_MINUTES: int = 120
    PENDING_2FA_LIFETIME_MINUTES: int = 5
    SESSION_COOKIE_NAME: str = "sa_session"
    SESSION_COOKIE_SECURE: bool | None = None  # Defaults to "not DEBUG"

    # Privileged account
    SUPERADMIN_USERNAME: str = "superadmin"
    SUPERADMIN_ROLE: str = "superadmin"
    SUPERADMIN_PASSWORD_HASH: str = ""  # bcrypt hash, generate with superadmin.core.security.get_password_hash
    BCRYPT_ROUNDS: int = 12

    # Second factor
    TOTP_SECRET: str = ""  # Empty disables the second factor
    TOTP_ISSUER: str = "Asterika-Admin"
    TOTP_VALID_WINDOW: int = 1

    # Login rate limiting
    RATE_LIMIT_MAX_ATTEMPTS: int = 5
    RATE_LIMIT_LOCKOUT_MINUTES: int = 15
    RATE_LIMIT_WINDOW_MINUTES: int = 15
    RATE_LIMIT_BACKEND: str = "memory"  # "memory" or "redis"
    REDIS_URL: str = "redis://localhost:6379"

    # Reverse proxies whose X-Forwarded-For / X-Real-IP headers are believed.
    # JSON list of addresses or CIDR ranges, e.g. ["10.0.0.0/8"]. Empty trusts no one.
    TRUSTED_PROXIES: list[str] = []

    # App
    APP_NAME: str = "SuperAdmin Console"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    @property
    def cookie_secure(self) -> bool:
        if self.SESSION_COOKIE_SECURE is None:
            return not self.DEBUG
        return self.SESSION_COOKIE_SECURE

    @field_validator("JWT_SECRET_KEY", "SESSION_ENCRYPTION_KEY")
    @classmethod
    def validate_secrets(cls, v: str, info) -> str:
        """Validate that secret keys are set and not default values in production."""
        if not v or v.strip() == "":
            raise ValueError(
                f"{info.field_name} must be set in environment variables. "
                f"Generate a secure random key using: openssl rand -base64 32"
            )

        if v.lower() in INSECURE_DEFAULTS:
            # Settings is validated before DEBUG is resolved, so read it from the environment
            debug_mode = os.environ.get("DEBUG", "").lower() in ("true", "1", "yes")

            if not debug_mode:
                raise ValueError(
                    f"{info.field_name} is using an insecure default value. "
                    f"This is NEVER acceptable in production. "
                    f"Generate a secure key using: openssl rand -base64 32"
                )

            import logging
            logger = logging.getLogger(__name__)
            logger.warning(
                f"{info.field_name} is using an insecure default value in DEBUG mode. "
                f"This is acceptable for development but MUST be changed in production!"
            )
        elif len(v) < 32:
            raise ValueError(
                f"{info.field_name} must be at least 32 characters long for security. "
                f"Generate a secure key using: openssl rand -base64 32"
            )

        return v

    @field_validator("RATE_LIMIT_BACKEND")
    @classmethod
    def validate_rate_limit_backend(cls, v: str) -> str:
        if v not in ("memory", "redis"):
            raise ValueError("RATE_LIMIT_BACKEND must be 'memory' or 'redis'")
        return v

    @field_validator("TRUSTED_PROXIES")
    @classmethod
    def validate_trusted_proxies(cls, v: list[str]) -> list[str]:
        for entry in v:
            try:
                ipaddress.ip_network(entry.strip(), strict=False)
            except ValueError:
                raise ValueError(f"TRUSTED_PROXIES entry is not an address or CIDR range: {entry!r}")
        return [entry.strip() for entry in v]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
