"""Contract read cache."""

from .coordinator import CacheCoordinator, InvalidationReport
from .store import CacheEntry, CacheStore, InMemoryCacheStore, RedisCacheStore

__all__ = [
    "CacheCoordinator",
    "CacheEntry",
    "CacheStore",
    "InMemoryCacheStore",
    "InvalidationReport",
    "RedisCacheStore",
]
