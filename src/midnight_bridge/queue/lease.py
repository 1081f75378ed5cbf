"""Leases that make a logical submission exclusive for a bounded time."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import redis

logger = logging.getLogger(__name__)

# KEYS[1] = lease key, ARGV[1] = owner token
RELEASE_IF_OWNER = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class LeaseStore(ABC):
    """Atomic set-if-absent store with expiry.

    ``owner`` identifies the holder. A release by anyone other than the
    current holder is a no-op, so a holder whose lease already expired
    cannot drop the lease someone else took afterwards. When ``owner`` is
    omitted the store's own token is used.
    """

    @abstractmethod
    def acquire(self, key: str, ttl: float, owner: str | None = None) -> bool:
        """Take the lease for ``key``; False when someone else holds it."""

    @abstractmethod
    def release(self, key: str, owner: str | None = None) -> bool:
        """Drop the lease if ``owner`` still holds it; True when something was removed."""

    @abstractmethod
    def is_held(self, key: str) -> bool:
        pass


class InMemoryLeaseStore(LeaseStore):
    """Process-local lease store for single-process deployments and tests."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._owner = uuid.uuid4().hex
        self._leases: dict[str, tuple[str, float]] = {}

    def acquire(self, key: str, ttl: float, owner: str | None = None) -> bool:
        now = self._clock()
        with self._lock:
            current = self._leases.get(key)
            if current is not None and current[1] > now:
                return False
            self._leases[key] = (owner or self._owner, now + ttl)
            return True

    def release(self, key: str, owner: str | None = None) -> bool:
        with self._lock:
            current = self._leases.get(key)
            if current is None or current[0] != (owner or self._owner):
                return False
            del self._leases[key]
            return True

    def is_held(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            current = self._leases.get(key)
            if current is None:
                return False
            if current[1] <= now:
                del self._leases[key]
                return False
            return True


class RedisLeaseStore(LeaseStore):
    """Lease store backed by Redis ``SET NX EX``; shared across processes.

    Release is a compare-and-delete run as a Lua script, so it only removes
    the key while it still carries the releasing owner's token.
    """

    def __init__(self, client: Any, *, prefix: str = "midnight:lease") -> None:
        self._client = client
        self._prefix = prefix
        self._owner = uuid.uuid4().hex

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisLeaseStore:
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def acquire(self, key: str, ttl: float, owner: str | None = None) -> bool:
        seconds = max(1, int(ttl))
        acquired = self._client.set(self._key(key), owner or self._owner, nx=True, ex=seconds)
        if not acquired:
            logger.debug("Lease %s already held in redis", key)
        return bool(acquired)

    def release(self, key: str, owner: str | None = None) -> bool:
        removed = self._client.eval(RELEASE_IF_OWNER, 1, self._key(key), owner or self._owner)
        if not removed:
            logger.debug("Lease %s not released; held by another owner or expired", key)
        return bool(removed)

    def is_held(self, key: str) -> bool:
        return bool(self._client.exists(self._key(key)))
