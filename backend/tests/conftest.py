"""Pytest fixtures for backend tests."""

import os

# Settings are read at import time; tests run in DEBUG with the development secrets
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SQLALCHEMY_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from superadmin.api.deps import (
    get_audit_logger,
    get_clock,
    get_credential_verifier,
    get_document_store,
    get_rate_limiter,
    get_second_factor_verifier,
    get_session_manager,
)
from superadmin.core.security import build_password_context, get_password_hash
from superadmin.db.base import Base
from superadmin.db.session import get_db
from superadmin.main import app
from superadmin.models import AuditLog
from superadmin.services.audit import AuditLogger
from superadmin.services.credentials import Account, CredentialVerifier
from superadmin.services.documents import SQLDocumentStore
from superadmin.services.rate_limit import InMemoryLoginAttemptStore, RateLimiter, RateLimitPolicy
from superadmin.services.session import SessionManager
from superadmin.services.totp import SecondFactorVerifier

USERNAME = "superadmin"
PASSWORD = "Correct-Horse-Battery-9"
ROLE = "superadmin"
TOTP_SECRET = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"
SIGNING_KEY = "test-signing-key-0123456789abcdef0123456789"
ENCRYPTION_KEY = "test-encryption-key-0123456789abcdef01234567"


class FakeClock:
    """Settable UTC clock shared by the components under test."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="session")
def password_context():
    return build_password_context(rounds=4)


@pytest.fixture(scope="session")
def password_hash(password_context) -> str:
    return get_password_hash(PASSWORD, password_context)


@pytest.fixture
def totp_secret() -> str:
    """No second factor unless a test class overrides this fixture."""
    return ""


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a file-backed SQLite engine so separate sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'superadmin.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def audit_logger(session_factory, clock) -> AuditLogger:
    return AuditLogger(session_factory, clock=clock)


@pytest.fixture
def rate_limiter(clock) -> RateLimiter:
    return RateLimiter(InMemoryLoginAttemptStore(), RateLimitPolicy(), clock=clock)


@pytest.fixture
def credential_verifier(password_hash, password_context, totp_secret) -> CredentialVerifier:
    account = Account(username=USERNAME, password_hash=password_hash, role=ROLE, totp_secret=totp_secret)
    return CredentialVerifier([account], password_context)


@pytest.fixture
def second_factor(clock) -> SecondFactorVerifier:
    return SecondFactorVerifier(valid_window=1, clock=clock)


@pytest.fixture
def session_manager(clock) -> SessionManager:
    return SessionManager(
        signing_key=SIGNING_KEY,
        encryption_key=ENCRYPTION_KEY,
        role=ROLE,
        lifetime=timedelta(hours=2),
        pending_lifetime=timedelta(minutes=5),
        clock=clock,
    )


@pytest.fixture
def document_store(test_session) -> SQLDocumentStore:
    return SQLDocumentStore(test_session)


@pytest_asyncio.fixture(scope="function")
async def client(
    test_session: AsyncSession,
    rate_limiter: RateLimiter,
    credential_verifier: CredentialVerifier,
    second_factor: SecondFactorVerifier,
    session_manager: SessionManager,
    audit_logger: AuditLogger,
    document_store: SQLDocumentStore,
    clock: FakeClock,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an unauthenticated test client wired to the test collaborators."""

    async def override_db():
        yield test_session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_credential_verifier] = lambda: credential_verifier
    app.dependency_overrides[get_second_factor_verifier] = lambda: second_factor
    app.dependency_overrides[get_session_manager] = lambda: session_manager
    app.dependency_overrides[get_audit_logger] = lambda: audit_logger
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_document_store] = lambda: document_store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"User-Agent": "pytest-client"},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def full_token(session_manager: SessionManager) -> str:
    """A valid full-stage session token."""
    return session_manager.issue(session_manager.new_claim(USERNAME))


@pytest_asyncio.fixture(scope="function")
async def authenticated_client(client: AsyncClient, full_token: str) -> AsyncClient:
    """Test client sending a valid bearer token."""
    client.headers["Authorization"] = f"Bearer {full_token}"
    return client


async def fetch_audit_entries(session_factory) -> list[AuditLog]:
    """Read every audit entry in insertion-independent order."""
    async with session_factory() as session:
        result = await session.execute(select(AuditLog).order_by(AuditLog.action))
        return list(result.scalars().all())


@pytest.fixture
def audit_entries(session_factory):
    async def _fetch() -> list[AuditLog]:
        return await fetch_audit_entries(session_factory)

    return _fetch
