"""
Rate limiting service for login protection.

Tracks failed login attempts per client address and enforces the lockout
policy. State lives in an injected LoginAttemptStore so the limiter can run
against process memory (single worker) or Redis (shared across workers).

Every admitted check reserves an attempt slot until the outcome is recorded
or released, so concurrent requests from one address cannot collectively
exceed the configured attempt budget.
"""

import logging
import threading
from contextlib import contextmanager
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Lockout thresholds."""

    max_attempts: int = 5
    lockout: timedelta = timedelta(minutes=15)
    window: timedelta = timedelta(minutes=15)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining_attempts: int
    locked_until: datetime | None = None


@dataclass
class LoginAttemptRecord:
    """Per-address attempt counters."""

    address: str
    failure_count: int = 0
    locked_until: datetime | None = None
    window_started_at: datetime | None = None
    pending: int = 0


class LoginAttemptStore(ABC):
    """Storage backend for login attempt records.

    Implementations must make each method atomic per address.
    """

    @abstractmethod
    async def reserve(self, address: str, now: datetime, policy: RateLimitPolicy) -> RateLimitDecision:
        """Admit or deny an attempt; an admitted attempt holds a pending slot."""

    @abstractmethod
    async def record(self, address: str, success: bool, now: datetime, policy: RateLimitPolicy) -> None:
        """Resolve a pending slot with the attempt outcome."""

    @abstractmethod
    async def release(self, address: str) -> None:
        """Drop a pending slot without recording an outcome."""

    @abstractmethod
    async def get(self, address: str) -> LoginAttemptRecord | None:
        """Return a snapshot of the record for ``address``."""


class InMemoryLoginAttemptStore(LoginAttemptStore):
    """Process-local store guarded by one lock per address.

    Addresses with nothing left to enforce are forgotten, and a sweep once per
    failure window drops addresses whose lockout or window has elapsed.
    """

    def __init__(self) -> None:
        self._records: dict[str, LoginAttemptRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._last_prune: datetime | None = None

    def __len__(self) -> int:
        return len(self._records)

    def _lock_for(self, address: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(address)
            if lock is None:
                lock = self._locks[address] = threading.Lock()
            return lock

    @contextmanager
    def _locked(self, address: str) -> Iterator[None]:
        # A lock retired while we waited on it no longer guards the address
        while True:
            lock = self._lock_for(address)
            lock.acquire()
            with self._locks_guard:
                current = self._locks.get(address) is lock
            if current:
                break
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def _discard_if_idle(self, address: str) -> None:
        """Forget ``address`` unless it still has failures, a lockout or pending slots.

        Caller holds the address lock.
        """
        record = self._records.get(address)
        if record is not None and (record.failure_count or record.locked_until is not None or record.pending):
            return
        with self._locks_guard:
            self._records.pop(address, None)
            self._locks.pop(address, None)

    def _expire(self, record: LoginAttemptRecord, now: datetime, policy: RateLimitPolicy) -> None:
        """Reset counters whose lockout or failure window has elapsed."""
        if record.locked_until is not None and now >= record.locked_until:
            record.failure_count = 0
            record.locked_until = None
            record.window_started_at = None
        elif (
            record.locked_until is None
            and record.window_started_at is not None
            and now - record.window_started_at > policy.window
        ):
            record.failure_count = 0
            record.window_started_at = None

    def prune(self, now: datetime, policy: RateLimitPolicy) -> None:
        """Drop every address whose counters have expired."""
        with self._locks_guard:
            addresses = list(self._locks)
        for address in addresses:
            with self._locked(address):
                record = self._records.get(address)
                if record is not None:
                    self._expire(record, now, policy)
                self._discard_if_idle(address)

    def _maybe_prune(self, now: datetime, policy: RateLimitPolicy) -> None:
        with self._locks_guard:
            if self._last_prune is not None and now - self._last_prune < policy.window:
                return
            self._last_prune = now
        self.prune(now, policy)

    async def reserve(self, address: str, now: datetime, policy: RateLimitPolicy) -> RateLimitDecision:
        self._maybe_prune(now, policy)
        with self._locked(address):
            record = self._records.setdefault(address, LoginAttemptRecord(address=address))
            self._expire(record, now, policy)

            if record.locked_until is not None:
                return RateLimitDecision(allowed=False, remaining_attempts=0, locked_until=record.locked_until)

            used = record.failure_count + record.pending
            if used >= policy.max_attempts:
                # Budget fully taken by in-flight attempts
                return RateLimitDecision(allowed=False, remaining_attempts=0)

            record.pending += 1
            return RateLimitDecision(allowed=True, remaining_attempts=policy.max_attempts - used)

    async def record(self, address: str, success: bool, now: datetime, policy: RateLimitPolicy) -> None:
        with self._locked(address):
            record = self._records.setdefault(address, LoginAttemptRecord(address=address))
            record.pending = max(0, record.pending - 1)

            if success:
                record.failure_count = 0
                record.locked_until = None
                record.window_started_at = None
                self._discard_if_idle(address)
                return

            self._expire(record, now, policy)
            if record.window_started_at is None:
                record.window_started_at = now
            record.failure_count += 1
            if record.failure_count >= policy.max_attempts and record.locked_until is None:
                record.locked_until = now + policy.lockout
                logger.warning(f"Login lockout for {address} until {record.locked_until.isoformat()}")

    async def release(self, address: str) -> None:
        with self._locked(address):
            record = self._records.get(address)
            if record is not None:
                record.pending = max(0, record.pending - 1)
            self._discard_if_idle(address)

    async def get(self, address: str) -> LoginAttemptRecord | None:
        with self._locked(address):
            record = self._records.get(address)
            if record is None:
                self._discard_if_idle(address)
                return None
            return LoginAttemptRecord(
                address=record.address,
                failure_count=record.failure_count,
                locked_until=record.locked_until,
                window_started_at=record.window_started_at,
                pending=record.pending,
            )


# Redis keeps one hash per address: failures, pending, window_started_at, locked_until (epoch ms)
_RESERVE_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local max_attempts = tonumber(ARGV[2])
local window = tonumber(ARGV[3])
local ttl = tonumber(ARGV[4])

local locked_until = tonumber(redis.call('HGET', key, 'locked_until') or '0')
if locked_until > 0 then
    if now < locked_until then
        return {0, 0, locked_until}
    end
    redis.call('HDEL', key, 'locked_until', 'window_started_at')
    redis.call('HSET', key, 'failures', 0)
end

local started = tonumber(redis.call('HGET', key, 'window_started_at') or '0')
if started > 0 and now - started > window then
    redis.call('HDEL', key, 'window_started_at')
    redis.call('HSET', key, 'failures', 0)
end

local failures = tonumber(redis.call('HGET', key, 'failures') or '0')
local pending = tonumber(redis.call('HGET', key, 'pending') or '0')
local used = failures + pending
if used >= max_attempts then
    return {0, 0, 0}
end

redis.call('HINCRBY', key, 'pending', 1)
redis.call('PEXPIRE', key, ttl)
return {1, max_attempts - used, 0}
"""

_RECORD_SCRIPT = """
local key = KEYS[1]
local success = tonumber(ARGV[1])
local now = tonumber(ARGV[2])
local max_attempts = tonumber(ARGV[3])
local window = tonumber(ARGV[4])
local lockout = tonumber(ARGV[5])
local ttl = tonumber(ARGV[6])

if success == 1 then
    redis.call('DEL', key)
    return 0
end

local pending = tonumber(redis.call('HGET', key, 'pending') or '0')
if pending > 0 then
    redis.call('HSET', key, 'pending', pending - 1)
end

local locked_until = tonumber(redis.call('HGET', key, 'locked_until') or '0')
if locked_until > 0 and now < locked_until then
    return locked_until
end

local failures = tonumber(redis.call('HGET', key, 'failures') or '0')
local started = tonumber(redis.call('HGET', key, 'window_started_at') or '0')
if started == 0 or now - started > window or locked_until > 0 then
    failures = 0
    started = now
    redis.call('HDEL', key, 'locked_until')
end

failures = failures + 1
redis.call('HSET', key, 'failures', failures, 'window_started_at', started)
if failures >= max_attempts then
    locked_until = now + lockout
    redis.call('HSET', key, 'locked_until', locked_until)
else
    locked_until = 0
end
redis.call('PEXPIRE', key, ttl)
return locked_until
"""

_RELEASE_SCRIPT = """
local key = KEYS[1]
local pending = tonumber(redis.call('HGET', key, 'pending') or '0')
if pending > 0 then
    redis.call('HSET', key, 'pending', pending - 1)
end
return pending
"""


def _to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _from_ms(value: int | str | None) -> datetime | None:
    if not value or int(value) == 0:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


class RedisLoginAttemptStore(LoginAttemptStore):
    """Store shared by every worker, made atomic with server-side Lua scripts."""

    KEY_PREFIX = "superadmin:login:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._reserve = redis_client.register_script(_RESERVE_SCRIPT)
        self._record = redis_client.register_script(_RECORD_SCRIPT)
        self._release = redis_client.register_script(_RELEASE_SCRIPT)

    def _key(self, address: str) -> str:
        return f"{self.KEY_PREFIX}{address}"

    @staticmethod
    def _ttl_ms(policy: RateLimitPolicy) -> int:
        # Keys outlive the longest interval that still matters, then vanish
        return int(max(policy.lockout, policy.window).total_seconds() * 1000) + 60_000

    async def reserve(self, address: str, now: datetime, policy: RateLimitPolicy) -> RateLimitDecision:
        allowed, remaining, locked_until = await self._reserve(
            keys=[self._key(address)],
            args=[
                _to_ms(now),
                policy.max_attempts,
                int(policy.window.total_seconds() * 1000),
                self._ttl_ms(policy),
            ],
        )
        return RateLimitDecision(
            allowed=bool(int(allowed)),
            remaining_attempts=int(remaining),
            locked_until=_from_ms(locked_until),
        )

    async def record(self, address: str, success: bool, now: datetime, policy: RateLimitPolicy) -> None:
        locked_until = await self._record(
            keys=[self._key(address)],
            args=[
                1 if success else 0,
                _to_ms(now),
                policy.max_attempts,
                int(policy.window.total_seconds() * 1000),
                int(policy.lockout.total_seconds() * 1000),
                self._ttl_ms(policy),
            ],
        )
        if not success and _from_ms(locked_until) is not None:
            logger.warning(f"Login lockout for {address} until {_from_ms(locked_until).isoformat()}")

    async def release(self, address: str) -> None:
        await self._release(keys=[self._key(address)])

    async def get(self, address: str) -> LoginAttemptRecord | None:
        raw = await self._redis.hgetall(self._key(address))
        if not raw:
            return None
        return LoginAttemptRecord(
            address=address,
            failure_count=int(raw.get("failures", 0)),
            locked_until=_from_ms(raw.get("locked_until")),
            window_started_at=_from_ms(raw.get("window_started_at")),
            pending=int(raw.get("pending", 0)),
        )


class RateLimiter:
    """Per-address login throttle.

    ``check`` must pass before any credential comparison. Every admitted
    check must be followed by exactly one ``record`` or ``release``.
    """

    def __init__(
        self,
        store: LoginAttemptStore,
        policy: RateLimitPolicy | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.policy = policy or RateLimitPolicy()
        self._clock = clock

    async def check(self, address: str) -> RateLimitDecision:
        return await self.store.reserve(address, self._clock(), self.policy)

    async def record(self, address: str, success: bool) -> None:
        await self.store.record(address, success, self._clock(), self.policy)

    async def release(self, address: str) -> None:
        await self.store.release(address)

    async def status(self, address: str) -> LoginAttemptRecord | None:
        return await self.store.get(address)


def build_rate_limiter(settings, redis_client=None, clock: Clock = utcnow) -> RateLimiter:
    """Create the limiter described by application settings."""
    policy = RateLimitPolicy(
        max_attempts=settings.RATE_LIMIT_MAX_ATTEMPTS,
        lockout=timedelta(minutes=settings.RATE_LIMIT_LOCKOUT_MINUTES),
        window=timedelta(minutes=settings.RATE_LIMIT_WINDOW_MINUTES),
    )
    if settings.RATE_LIMIT_BACKEND == "redis":
        if redis_client is None:
            raise ValueError("Redis rate limit backend requires a Redis client")
        store: LoginAttemptStore = RedisLoginAttemptStore(redis_client)
    else:
        store = InMemoryLoginAttemptStore()
    return RateLimiter(store, policy, clock)
