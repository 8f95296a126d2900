"""
Shared cache and lock abstraction for buffers, pauses and throttles.

The buffer store, pause state and page-visit throttle all live in one shared
cache so that every web worker sees the same queues. Mutual exclusion is kept
logically separate from data: backends expose a narrow
``lock(name, ttl) -> Lock`` factory whose locks auto-expire, so a crashed
holder can never deadlock a buffer.

Manifesto:
    - **Protocol-based:** CacheBackend defines the contract
    - **Tier-aware:** InMemoryCache for single-process apps and tests, RedisCache for fleets
    - **TTL everywhere:** data keys and locks both expire on their own
    - **Injectable clock:** InMemoryCache expiry is testable without sleeping

Architecture:
    ::

        CacheBackend (Protocol)
        ├── InMemoryCache  : single process, RLock-guarded dict, TTL on read
        └── RedisCache     : distributed, JSON values, redis-py locks

        API: get(key) → value | None
             set(key, value, ttl_seconds=None)
             add(key, value, ttl_seconds=None) → bool   (set-if-absent)
             delete(key)
             exists(key) → bool
             lock(name, ttl_seconds) → Lock
             clear()

Examples:
    >>> from sorane.core.cache import InMemoryCache
    >>> cache = InMemoryCache(default_ttl_seconds=3600)
    >>> cache.set("sorane:buffer:events", [{"id": "a"}])
    >>> lock = cache.lock("sorane:buffer:events:lock", ttl_seconds=10)
    >>> lock.acquire(timeout=1.0)
    True
    >>> lock.release()

Guardrails:
    ❌ DON'T: Use InMemoryCache when several processes append to the same buffer
    ✅ DO: Set ``SORANE_BATCH__CACHE_BACKEND=redis`` for multi-process deployments

Tags:
    cache, redis, in-memory, ttl, locks, sorane

Doc-Types:
    - API Reference
    - Infrastructure Guide
"""

from __future__ import annotations

import json
import threading
import time
import uuid
from collections.abc import Callable
from typing import Any, Protocol


class Lock(Protocol):
    """A named mutual-exclusion lock with TTL auto-expiry."""

    def acquire(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for the lock. Returns ``True`` if held."""
        ...

    def release(self) -> None:
        """Release the lock. No-op if it already expired or was never held."""
        ...


class CacheBackend(Protocol):
    """Protocol for cache backend implementations.

    Keys are strings, values are JSON-serializable.

    Implementations:
        - :class:`InMemoryCache`: single-process cache
        - :class:`RedisCache`: distributed, Redis-backed cache
    """

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key, or ``None`` if not found or expired."""
        ...

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL (``None`` → default TTL)."""
        ...

    def add(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> bool:
        """Store a value only if the key is absent. Returns ``True`` if stored."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key. No-op if key does not exist."""
        ...

    def exists(self, key: str) -> bool:
        """Check if a key exists and has not expired."""
        ...

    def lock(self, name: str, *, ttl_seconds: int) -> Lock:
        """Return a lock object for ``name`` whose hold expires after ``ttl_seconds``."""
        ...

    def clear(self) -> None:
        """Remove all keys from the cache.

        Dangerous in production; use for testing only.
        """
        ...


# ------------------------------------------------------------------ #
# In-Memory Cache
# ------------------------------------------------------------------ #


class InMemoryLock:
    """TTL lock living in an :class:`InMemoryCache`.

    A hold older than ``ttl_seconds`` is treated as abandoned and may be
    taken over by the next waiter.
    """

    def __init__(self, cache: InMemoryCache, name: str, ttl_seconds: int):
        self._cache = cache
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._token: str | None = None

    def acquire(self, timeout: float) -> bool:
        token = uuid.uuid4().hex
        deadline = time.monotonic() + max(timeout, 0.0)
        cond = self._cache._lock_cond
        with cond:
            while True:
                holder = self._cache._locks.get(self.name)
                now = self._cache._clock()
                if holder is None or holder[1] <= now:
                    self._cache._locks[self.name] = (token, now + self.ttl_seconds)
                    self._token = token
                    return True
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                # Wake up at least every 50ms to notice TTL expiry
                cond.wait(min(remaining, 0.05))

    def release(self) -> None:
        if self._token is None:
            return
        cond = self._cache._lock_cond
        with cond:
            holder = self._cache._locks.get(self.name)
            if holder is not None and holder[0] == self._token:
                del self._cache._locks[self.name]
            self._token = None
            cond.notify_all()


class InMemoryCache:
    """Thread-safe in-memory cache with TTL support.

    Attributes:
        default_ttl_seconds: Default TTL for keys (``None`` → no expiry).

    Example:
        cache = InMemoryCache(default_ttl_seconds=1800)
        cache.set("sorane.global.pause", {"reason": "401"}, ttl_seconds=900)
    """

    def __init__(
        self,
        *,
        default_ttl_seconds: int | None = 3600,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize in-memory cache.

        Args:
            default_ttl_seconds: Default TTL for all keys (``None`` → no expiry).
            clock: Returns the current epoch time in seconds.
        """
        self._store: dict[str, tuple[Any, float | None]] = {}
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._mutex = threading.RLock()
        self._locks: dict[str, tuple[str, float]] = {}
        self._lock_cond = threading.Condition()

    def _expires_at(self, ttl_seconds: int | None) -> float | None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        return (self._clock() + ttl) if ttl else None

    def _live(self, key: str) -> tuple[Any, float | None] | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry[1] is not None and self._clock() >= entry[1]:
            self._store.pop(key, None)
            return None
        return entry

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        with self._mutex:
            entry = self._live(key)
            return None if entry is None else entry[0]

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL."""
        with self._mutex:
            self._store[key] = (value, self._expires_at(ttl_seconds))

    def add(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> bool:
        """Store a value only if the key is absent."""
        with self._mutex:
            if self._live(key) is not None:
                return False
            self._store[key] = (value, self._expires_at(ttl_seconds))
            return True

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        with self._mutex:
            self._store.pop(key, None)

    def exists(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        with self._mutex:
            return self._live(key) is not None

    def lock(self, name: str, *, ttl_seconds: int) -> InMemoryLock:
        return InMemoryLock(self, name, ttl_seconds)

    def clear(self) -> None:
        """Remove all keys and locks."""
        with self._mutex:
            self._store.clear()
        with self._lock_cond:
            self._locks.clear()
            self._lock_cond.notify_all()

    def size(self) -> int:
        """Return current number of stored keys (expired keys included until read)."""
        return len(self._store)


# ------------------------------------------------------------------ #
# Redis Cache
# ------------------------------------------------------------------ #


class RedisLock:
    """Adapter over ``redis.lock.Lock`` matching the :class:`Lock` protocol."""

    def __init__(self, lock: Any, lock_error: type[Exception]):
        self._lock = lock
        self._lock_error = lock_error

    def acquire(self, timeout: float) -> bool:
        return bool(self._lock.acquire(blocking=True, blocking_timeout=timeout))

    def release(self) -> None:
        try:
            self._lock.release()
        except self._lock_error:
            # Expired by TTL or released elsewhere
            pass


class RedisCache:
    """Redis-backed distributed cache.

    Process-safe via Redis atomic operations; locks use redis-py's
    token-based ``Lock`` with a TTL.

    Example:
        cache = RedisCache("redis://localhost:6379/0", default_ttl_seconds=3600)
        cache.set("sorane:buffer:errors", [])

    Raises:
        ImportError: If ``redis`` package is not installed.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        default_ttl_seconds: int | None = 3600,
    ):
        try:
            import redis
        except ImportError as exc:
            msg = (
                "Redis backend requires 'redis' package. "
                "Install with: pip install redis"
            )
            raise ImportError(msg) from exc

        self._client = redis.from_url(url, decode_responses=False)
        self._lock_error = redis.exceptions.LockError
        self._default_ttl = default_ttl_seconds

    def get(self, key: str) -> Any | None:
        """Retrieve a value by key."""
        raw = self._client.get(key)
        if raw is None:
            return None

        return json.loads(raw)

    def set(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> None:
        """Store a value with optional TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        serialized = json.dumps(value)

        if ttl:
            self._client.setex(key, ttl, serialized)
        else:
            self._client.set(key, serialized)

    def add(self, key: str, value: Any, *, ttl_seconds: int | None = None) -> bool:
        """Store a value only if the key is absent (``SET NX``)."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        return bool(self._client.set(key, json.dumps(value), nx=True, ex=ttl or None))

    def delete(self, key: str) -> None:
        """Remove a key from the cache."""
        self._client.delete(key)

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return bool(self._client.exists(key))

    def lock(self, name: str, *, ttl_seconds: int) -> RedisLock:
        return RedisLock(self._client.lock(name, timeout=ttl_seconds), self._lock_error)

    def clear(self) -> None:
        """Remove all keys from the current Redis database.

        Warning: This flushes the entire Redis DB. Use with caution!
        """
        self._client.flushdb()


def create_cache(backend: str, *, redis_url: str | None = None, default_ttl_seconds: int | None = 3600) -> CacheBackend:
    """Build the configured cache backend (``memory`` or ``redis``)."""
    if backend == "redis":
        return RedisCache(redis_url or "redis://localhost:6379/0", default_ttl_seconds=default_ttl_seconds)
    if backend == "memory":
        return InMemoryCache(default_ttl_seconds=default_ttl_seconds)
    from sorane.core.errors import InvalidConfigError

    raise InvalidConfigError("batch.cache_backend", backend)


__all__ = [
    "Lock",
    "CacheBackend",
    "InMemoryLock",
    "InMemoryCache",
    "RedisLock",
    "RedisCache",
    "create_cache",
]
