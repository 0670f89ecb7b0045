"""
Cache layer: backends, key namespace, typed collections and invalidation.
"""
from fpl_sync.cache.backends import CacheBackend, InMemoryCacheBackend, RedisCacheBackend, create_backend
from fpl_sync.cache.invalidation import CACHE_DEPENDENCIES, CacheInvalidator
from fpl_sync.cache.keys import CachePrefix, build_key
from fpl_sync.cache.store import CacheStore, EntityCache

__all__ = [
    "CACHE_DEPENDENCIES",
    "CacheBackend",
    "CacheInvalidator",
    "CachePrefix",
    "CacheStore",
    "EntityCache",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "build_key",
    "create_backend",
]
