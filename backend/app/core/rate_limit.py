"""Per-user, per-action sliding-window rate limiting.

Keys follow ``user:{user_id}:{action}`` so every action has its own budget
and resetting one key never touches another user's counters. Counters live
behind the ``CounterStore`` protocol: ``InMemoryCounterStore`` for tests and
single-process development, ``RedisCounterStore`` in production.

Once a key exceeds its limit it is blocked for the preset's block duration,
regardless of how the sliding window moves in the meantime.
"""

import asyncio
import logging
import math
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

import redis.asyncio as redis

from app.core.errors import RateLimitedError

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit:"


@dataclass(frozen=True)
class RateLimitPreset:
    limit: int
    window_seconds: float
    block_seconds: float


class RateLimitPresets:
    """Budgets per class of operation."""

    STRICT = RateLimitPreset(limit=5, window_seconds=60, block_seconds=300)
    MODERATE = RateLimitPreset(limit=20, window_seconds=60, block_seconds=60)
    GENEROUS = RateLimitPreset(limit=100, window_seconds=60, block_seconds=30)
    FILE_UPLOAD = RateLimitPreset(limit=10, window_seconds=300, block_seconds=600)
    PERMISSION_MANAGEMENT = RateLimitPreset(limit=10, window_seconds=60, block_seconds=300)
    SLUG_VALIDATION = RateLimitPreset(limit=30, window_seconds=60, block_seconds=60)


@dataclass(frozen=True)
class WindowState:
    """Attempts inside the current window, the oldest attempt and any active block."""

    count: int
    oldest: float | None = None
    blocked_until: float | None = None


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime
    blocked: bool = False


def rate_limit_key(user_id: str, action: str) -> str:
    return f"user:{user_id}:{action}"


class CounterStore(Protocol):
    async def get(self, key: str, now: float, window_seconds: float) -> WindowState: ...

    async def increment(self, key: str, now: float, window_seconds: float) -> WindowState: ...

    async def block(self, key: str, until: float, ttl_seconds: float) -> None: ...

    async def reset(self, key: str) -> None: ...


class InMemoryCounterStore:
    """Process-local store. Safe for concurrent coroutines on one event loop."""

    def __init__(self) -> None:
        self._attempts: dict[str, list[float]] = {}
        self._blocks: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _prune(self, key: str, now: float, window_seconds: float) -> list[float]:
        cutoff = now - window_seconds
        attempts = [t for t in self._attempts.get(key, []) if t > cutoff]
        self._attempts[key] = attempts
        return attempts

    def _state(self, key: str, attempts: list[float], now: float) -> WindowState:
        blocked_until = self._blocks.get(key)
        if blocked_until is not None and blocked_until <= now:
            del self._blocks[key]
            blocked_until = None
        return WindowState(count=len(attempts), oldest=min(attempts) if attempts else None, blocked_until=blocked_until)

    async def get(self, key: str, now: float, window_seconds: float) -> WindowState:
        async with self._lock:
            return self._state(key, self._prune(key, now, window_seconds), now)

    async def increment(self, key: str, now: float, window_seconds: float) -> WindowState:
        async with self._lock:
            attempts = self._prune(key, now, window_seconds)
            attempts.append(now)
            return self._state(key, attempts, now)

    async def block(self, key: str, until: float, ttl_seconds: float) -> None:
        async with self._lock:
            self._blocks[key] = until

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._attempts.pop(key, None)
            self._blocks.pop(key, None)


class RedisCounterStore:
    """Sorted-set sliding window; every read-modify step runs in one MULTI block."""

    def __init__(self, client: redis.Redis, prefix: str = KEY_PREFIX):
        self.redis = client
        self.prefix = prefix

    def _window_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _block_key(self, key: str) -> str:
        return f"{self.prefix}{key}:blocked"

    @staticmethod
    def _oldest(entries: list) -> float | None:
        if not entries:
            return None
        return float(entries[0][1])

    async def get(self, key: str, now: float, window_seconds: float) -> WindowState:
        window_key = self._window_key(key)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(window_key, 0, now - window_seconds)
            pipe.zcard(window_key)
            pipe.zrange(window_key, 0, 0, withscores=True)
            pipe.get(self._block_key(key))
            _, count, oldest, blocked = await pipe.execute()
        blocked_until = float(blocked) if blocked is not None else None
        if blocked_until is not None and blocked_until <= now:
            blocked_until = None
        return WindowState(count=int(count), oldest=self._oldest(oldest), blocked_until=blocked_until)

    async def increment(self, key: str, now: float, window_seconds: float) -> WindowState:
        window_key = self._window_key(key)
        member = f"{now}:{uuid.uuid4().hex}"
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(window_key, 0, now - window_seconds)
            pipe.zadd(window_key, {member: now})
            pipe.zcard(window_key)
            pipe.zrange(window_key, 0, 0, withscores=True)
            pipe.expire(window_key, math.ceil(window_seconds))
            _, _, count, oldest, _ = await pipe.execute()
        return WindowState(count=int(count), oldest=self._oldest(oldest))

    async def block(self, key: str, until: float, ttl_seconds: float) -> None:
        await self.redis.set(self._block_key(key), str(until), ex=max(1, math.ceil(ttl_seconds)))

    async def reset(self, key: str) -> None:
        await self.redis.delete(self._window_key(key), self._block_key(key))


def _as_datetime(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=UTC)


class RateLimiter:
    """Sliding-window limiter over an injected counter store."""

    def __init__(self, store: CounterStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    async def check(self, key: str, preset: RateLimitPreset) -> RateLimitResult:
        """Record one attempt against ``key`` and report whether it is allowed."""
        now = self.clock()
        current = await self.store.get(key, now, preset.window_seconds)
        if current.blocked_until is not None:
            return RateLimitResult(
                allowed=False, remaining=0, reset_at=_as_datetime(current.blocked_until), blocked=True
            )

        state = await self.store.increment(key, now, preset.window_seconds)
        if state.count > preset.limit:
            until = now + preset.block_seconds
            await self.store.block(key, until, preset.block_seconds)
            logger.warning("Rate limit exceeded for %s; blocked for %ss", key, preset.block_seconds)
            return RateLimitResult(allowed=False, remaining=0, reset_at=_as_datetime(until), blocked=True)

        oldest = state.oldest if state.oldest is not None else now
        return RateLimitResult(
            allowed=True,
            remaining=preset.limit - state.count,
            reset_at=_as_datetime(oldest + preset.window_seconds),
        )

    async def enforce(self, user_id: str, action: str, preset: RateLimitPreset) -> RateLimitResult:
        """``check`` for ``user:{user_id}:{action}``; raises ``RateLimitedError`` when denied."""
        result = await self.check(rate_limit_key(user_id, action), preset)
        if not result.allowed:
            raise RateLimitedError(reset_at=result.reset_at, blocked=result.blocked)
        return result

    async def status(self, key: str, preset: RateLimitPreset) -> RateLimitResult:
        """Current budget for ``key`` without recording an attempt."""
        now = self.clock()
        state = await self.store.get(key, now, preset.window_seconds)
        if state.blocked_until is not None:
            return RateLimitResult(
                allowed=False, remaining=0, reset_at=_as_datetime(state.blocked_until), blocked=True
            )
        oldest = state.oldest if state.oldest is not None else now
        return RateLimitResult(
            allowed=state.count < preset.limit,
            remaining=max(0, preset.limit - state.count),
            reset_at=_as_datetime(oldest + preset.window_seconds),
        )

    async def reset(self, key: str) -> None:
        await self.store.reset(key)
        logger.info("Rate limit reset for %s", key)
