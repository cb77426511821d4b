"""
Credential verification for the privileged account.

The console has exactly one account, configured through settings, but
verification goes through a lookup-then-verify path so that unknown usernames
and wrong passwords cost the same.
"""

import hmac
from dataclasses import dataclass

from passlib.context import CryptContext

from superadmin.core.security import get_password_hash, pwd_context, verify_password


@dataclass(frozen=True)
class Account:
    username: str
    password_hash: str
    role: str
    totp_secret: str = ""

    @property
    def has_second_factor(self) -> bool:
        return bool(self.totp_secret)


class CredentialVerifier:
    """Checks a username/password pair against the configured accounts."""

    def __init__(self, accounts: list[Account], context: CryptContext | None = None):
        self._accounts = list(accounts)
        self._context = context or pwd_context
        # Verified against when the username is unknown
        self._dummy_hash = get_password_hash("superadmin-timing-equalizer", self._context)

    @classmethod
    def from_settings(cls, settings, context: CryptContext | None = None) -> "CredentialVerifier":
        account = Account(
            username=settings.SUPERADMIN_USERNAME,
            password_hash=settings.SUPERADMIN_PASSWORD_HASH,
            role=settings.SUPERADMIN_ROLE,
            totp_secret=settings.TOTP_SECRET,
        )
        return cls([account], context)

    def lookup(self, username: str) -> Account | None:
        """Find an account by exact username using constant-time comparison."""
        match = None
        candidate = username.encode()
        for account in self._accounts:
            # Every account is compared so the scan length does not depend on the match
            if hmac.compare_digest(account.username.encode(), candidate):
                match = account
        return match

    def verify_password(self, account: Account, password: str) -> bool:
        if not account.password_hash:
            # Unprovisioned account: still spend the hashing time
            self.burn_time(password)
            return False
        return verify_password(password, account.password_hash, self._context)

    def burn_time(self, password: str) -> None:
        """Run a hash verification whose result is discarded."""
        verify_password(password, self._dummy_hash, self._context)

    def verify(self, username: str, password: str) -> bool:
        account = self.lookup(username)
        if account is None:
            self.burn_time(password)
            return False
        return self.verify_password(account, password)
