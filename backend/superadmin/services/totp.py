"""
TOTP (Time-based One-Time Password) service.

Handles second-factor verification for the privileged account and the
provisioning URI shown on the setup page.
"""

import hmac
import threading
from datetime import datetime, timezone
from typing import Callable

import pyotp

TOTP_INTERVAL = 30


def generate_totp_secret() -> str:
    """
    Generate a new TOTP secret.

    Returns:
        32-character base32 encoded secret
    """
    return pyotp.random_base32(length=32)


def generate_qr_uri(secret: str, account_name: str, issuer: str = "Asterika-Admin") -> str:
    """
    Generate an otpauth:// URI for QR code display.

    Args:
        secret: TOTP secret
        account_name: Label shown in the authenticator app
        issuer: Application name

    Returns:
        otpauth:// URI string
    """
    totp = pyotp.TOTP(secret)
    return totp.provisioning_uri(name=account_name, issuer_name=issuer)


def is_well_formed_code(code: str | None) -> bool:
    return bool(code) and len(code) == 6 and code.isdigit()


class SecondFactorVerifier:
    """TOTP verifier with replay protection.

    A code is accepted only if its time step is newer than the last step
    accepted for the same secret.
    """

    def __init__(
        self,
        valid_window: int = 1,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.valid_window = valid_window
        self._clock = clock
        self._last_steps: dict[str, int] = {}
        self._lock = threading.Lock()

    def _matching_step(self, secret: str, code: str, now: datetime) -> int | None:
        totp = pyotp.TOTP(secret)
        current = totp.timecode(now)
        for offset in range(-self.valid_window, self.valid_window + 1):
            step = current + offset
            if hmac.compare_digest(code, totp.generate_otp(step)):
                return step
        return None

    def verify(self, code: str | None, secret: str) -> bool:
        if not is_well_formed_code(code) or not secret:
            return False

        now = self._clock()
        try:
            step = self._matching_step(secret, code, now)
        except (ValueError, TypeError):
            # Malformed base32 secret
            return False
        if step is None:
            return False

        with self._lock:
            last = self._last_steps.get(secret)
            if last is not None and step <= last:
                return False
            self._last_steps[secret] = step
        return True
