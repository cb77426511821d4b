"""
Caller-side session controller for the superadmin console.

Drives the two-step login (credentials, then TOTP when the server asks for
it), keeps the session token for at most the lifetime the server granted,
and attaches it to privileged requests.

Usage:
    async with SuperAdminSession("https://admin.example.com") as session:
        if not await session.submit_credentials("superadmin", password):
            if session.step is LoginStep.TOTP:
                await session.submit_totp(code)
        response = await session.request("GET", "/admin-data", params={"entity": "users"})
"""

import logging
import time
from enum import Enum
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

API_PREFIX = "/api/superadmin"


class LoginStep(str, Enum):
    CREDENTIALS = "credentials"
    TOTP = "totp"
    AUTHENTICATED = "authenticated"


class NotAuthenticatedError(Exception):
    """Raised when a privileged request is attempted without a live session."""


class TokenStore:
    """Holds one token until it expires."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._token: str | None = None
        self._expires_at: float = 0.0

    def set(self, token: str, ttl_seconds: float) -> None:
        self._token = token
        self._expires_at = self._clock() + max(0.0, ttl_seconds)

    def get(self) -> str | None:
        if self._token is None:
            return None
        if self._clock() >= self._expires_at:
            self.clear()
            return None
        return self._token

    def clear(self) -> None:
        self._token = None
        self._expires_at = 0.0


class SuperAdminSession:
    """Login state machine over the superadmin HTTP API."""

    def __init__(
        self,
        base_url: str = "",
        client: httpx.AsyncClient | None = None,
        token_store: TokenStore | None = None,
        timeout: float = 10.0,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)
        self.tokens = token_store or TokenStore()
        self.step = LoginStep.CREDENTIALS
        self.user: dict[str, Any] | None = None
        self.error: str | None = None
        self.remaining_attempts: int | None = None
        self.locked_until: str | None = None
        self._pending: tuple[str, str] | None = None

    async def __aenter__(self) -> "SuperAdminSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def is_authenticated(self) -> bool:
        return self.step is LoginStep.AUTHENTICATED and self.tokens.get() is not None

    def _reset(self) -> None:
        self.tokens.clear()
        self.step = LoginStep.CREDENTIALS
        self.user = None
        self._pending = None

    async def _post_login(self, username: str, password: str, totp_code: str | None) -> bool:
        body: dict[str, Any] = {"username": username, "password": password}
        if totp_code:
            body["totpCode"] = totp_code

        self.error = None
        try:
            response = await self._client.post(f"{API_PREFIX}/login", json=body)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Superadmin login request failed: {type(e).__name__}")
            self.error = "Login failed"
            return False

        if response.status_code == 429:
            self.error = data.get("error", "Too many login attempts")
            self.locked_until = data.get("lockedUntil")
            self.remaining_attempts = 0
            self._reset()
            return False

        if response.status_code != 200:
            self.error = data.get("error", "Login failed")
            self.remaining_attempts = data.get("remainingAttempts")
            if self.step is not LoginStep.TOTP:
                self._reset()
            return False

        self.remaining_attempts = None
        self.locked_until = None

        if data.get("requires2FA") and not totp_code:
            # Pending token is only good for completing the second step
            self._pending = (username, password)
            self.step = LoginStep.TOTP
            return False

        self.tokens.set(data["token"], float(data.get("expiresIn", 0)))
        self.step = LoginStep.AUTHENTICATED
        self._pending = None
        return True

    async def submit_credentials(self, username: str, password: str) -> bool:
        """First step. Returns True only when no second factor is needed."""
        self._reset()
        return await self._post_login(username, password, None)

    async def submit_totp(self, code: str) -> bool:
        """Second step: repeat the login with the TOTP code."""
        if self.step is not LoginStep.TOTP or self._pending is None:
            raise NotAuthenticatedError("Credentials must be submitted before a TOTP code")
        username, password = self._pending
        return await self._post_login(username, password, code)

    async def restore(self) -> bool:
        """Re-verify a held token, e.g. after a page reload."""
        token = self.tokens.get()
        if token is None:
            self._reset()
            return False

        try:
            response = await self._client.post(
                f"{API_PREFIX}/verify", headers={"Authorization": f"Bearer {token}"}
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Superadmin verify request failed: {type(e).__name__}")
            return False

        if response.status_code == 200 and data.get("valid"):
            self.user = data.get("user")
            self.step = LoginStep.AUTHENTICATED
            return True

        self._reset()
        return False

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a privileged request with the bearer token attached."""
        token = self.tokens.get()
        if token is None or self.step is not LoginStep.AUTHENTICATED:
            self._reset()
            raise NotAuthenticatedError("No active superadmin session")

        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {token}"
        response = await self._client.request(method, f"{API_PREFIX}{path}", headers=headers, **kwargs)
        if response.status_code == 401:
            self._reset()
        return response

    async def logout(self) -> None:
        """Tell the server (best effort) and drop local state."""
        token = self.tokens.get()
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            await self._client.post(f"{API_PREFIX}/logout", headers=headers)
        except httpx.HTTPError as e:
            logger.info(f"Superadmin logout request failed: {type(e).__name__}")
        self._reset()
        self.error = None
