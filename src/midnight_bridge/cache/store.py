"""Key/value stores behind the contract read cache."""

from __future__ import annotations

import json
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import redis

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class CacheStore(ABC):
    """TTL key/value store plus the set and counter operations the coordinator needs."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def put(self, key: str, value: Any, ttl: float) -> None:
        pass

    @abstractmethod
    def forget(self, *keys: str) -> None:
        pass

    @abstractmethod
    def index_add(self, index: str, member: str, ttl: float | None = None) -> None:
        """Add ``member``; with ``ttl`` the index lives at least that much longer."""

    @abstractmethod
    def index_members(self, index: str) -> set[str]:
        pass

    @abstractmethod
    def index_remove(self, index: str, *members: str) -> None:
        pass

    @abstractmethod
    def index_clear(self, index: str) -> None:
        pass

    @abstractmethod
    def generation(self, key: str) -> int:
        """Current value of the counter at ``key``; 0 when never bumped."""

    @abstractmethod
    def bump(self, key: str) -> int:
        pass

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING


class InMemoryCacheStore(CacheStore):
    """Process-local store; expired entries and indexes are dropped lazily on read."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._indexes: dict[str, set[str]] = {}
        self._index_expiry: dict[str, float] = {}
        self._generations: dict[str, int] = {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return default
            return entry.value

    def put(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def forget(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def _live_index(self, index: str) -> set[str] | None:
        # Caller holds the lock.
        expires_at = self._index_expiry.get(index)
        if expires_at is not None and expires_at <= self._clock():
            self._indexes.pop(index, None)
            self._index_expiry.pop(index, None)
        return self._indexes.get(index)

    def index_add(self, index: str, member: str, ttl: float | None = None) -> None:
        with self._lock:
            members = self._live_index(index)
            if members is None:
                members = self._indexes[index] = set()
            members.add(member)
            if ttl is not None:
                expires_at = self._clock() + ttl
                self._index_expiry[index] = max(self._index_expiry.get(index, 0.0), expires_at)

    def index_members(self, index: str) -> set[str]:
        with self._lock:
            return set(self._live_index(index) or ())

    def index_remove(self, index: str, *members: str) -> None:
        with self._lock:
            current = self._live_index(index)
            if current is None:
                return
            current.difference_update(members)
            if not current:
                del self._indexes[index]
                self._index_expiry.pop(index, None)

    def index_clear(self, index: str) -> None:
        with self._lock:
            self._indexes.pop(index, None)
            self._index_expiry.pop(index, None)

    def generation(self, key: str) -> int:
        with self._lock:
            return self._generations.get(key, 0)

    def bump(self, key: str) -> int:
        with self._lock:
            value = self._generations.get(key, 0) + 1
            self._generations[key] = value
            return value


class RedisCacheStore(CacheStore):
    """Redis-backed store. Values are stored as JSON, counters as plain integers."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisCacheStore:
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._client.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def put(self, key: str, value: Any, ttl: float) -> None:
        self._client.setex(key, max(1, int(ttl)), json.dumps(value, default=str))

    def forget(self, *keys: str) -> None:
        if keys:
            self._client.delete(*keys)

    def index_add(self, index: str, member: str, ttl: float | None = None) -> None:
        self._client.sadd(index, member)
        if ttl is None:
            return
        seconds = max(1, int(ttl))
        # TTL is -1 for a set that has no expiry yet.
        if self._client.ttl(index) < seconds:
            self._client.expire(index, seconds)

    def index_members(self, index: str) -> set[str]:
        return {
            member.decode("utf-8") if isinstance(member, bytes) else member
            for member in self._client.smembers(index)
        }

    def index_remove(self, index: str, *members: str) -> None:
        if members:
            self._client.srem(index, *members)

    def index_clear(self, index: str) -> None:
        self._client.delete(index)

    def generation(self, key: str) -> int:
        raw = self._client.get(key)
        return int(raw) if raw is not None else 0

    def bump(self, key: str) -> int:
        return int(self._client.incr(key))
