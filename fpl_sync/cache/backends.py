"""
Cache backends storing collections as hashes (one field per record).

- RedisCacheBackend: shared cache for production, built on redis.asyncio
- InMemoryCacheBackend: process-local backend for development and tests

Backends raise ``CacheError`` for any failure so the layers above only deal
with one error kind.
"""
import fnmatch
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from fpl_sync.core.errors import CacheError, CacheErrorCode

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    @abstractmethod
    async def get_hash(self, key: str) -> Optional[Dict[str, str]]:
        """Get every field of a hash, or None when the key is absent."""

    @abstractmethod
    async def replace_hash(self, key: str, fields: Mapping[str, str], ttl: Optional[int] = None) -> None:
        """Atomically replace the whole hash under key."""

    @abstractmethod
    async def delete(self, keys: Iterable[str]) -> int:
        """Delete keys; returns how many existed."""

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        """Get keys matching a glob pattern."""

    async def close(self) -> None:
        """Release connections held by the backend."""


class InMemoryCacheBackend(CacheBackend):
    """
    In-memory backend with per-key TTL.

    Operations never await while touching the store, so each one is atomic
    with respect to other coroutines on the same event loop.
    """

    def __init__(self):
        self._store: Dict[str, Tuple[Dict[str, str], Optional[float]]] = {}

    def _live(self, key: str) -> Optional[Dict[str, str]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        fields, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._store[key]
            return None
        return fields

    async def get_hash(self, key: str) -> Optional[Dict[str, str]]:
        fields = self._live(key)
        return dict(fields) if fields is not None else None

    async def replace_hash(self, key: str, fields: Mapping[str, str], ttl: Optional[int] = None) -> None:
        self._store.pop(key, None)
        if not fields:
            return
        expires_at = time.monotonic() + ttl if ttl else None
        self._store[key] = (dict(fields), expires_at)

    async def delete(self, keys: Iterable[str]) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._store[key]
                removed += 1
        return removed

    async def keys(self, pattern: str = "*") -> List[str]:
        return [k for k in list(self._store) if fnmatch.fnmatchcase(k, pattern) and self._live(k) is not None]


class RedisCacheBackend(CacheBackend):
    """Redis backend. Collections are Redis hashes."""

    SCAN_COUNT = 500

    def __init__(self, url: Optional[str] = None, client: Optional[redis.Redis] = None):
        if client is None and url is None:
            raise ValueError("RedisCacheBackend requires a url or a client")
        self._redis = client or redis.from_url(url, decode_responses=True)

    def _translate(self, error: RedisError, operation: str, key: str) -> CacheError:
        if isinstance(error, (RedisConnectionError, RedisTimeoutError)):
            code = CacheErrorCode.CONNECTION_ERROR
        else:
            code = CacheErrorCode.OPERATION_ERROR
        logger.warning(f"Redis {operation} failed for {key}: {error}")
        return CacheError(
            f"Redis {operation} failed for {key}: {error}",
            code=code,
            cause=error,
            details={"operation": operation, "key": key},
        )

    async def get_hash(self, key: str) -> Optional[Dict[str, str]]:
        try:
            fields = await self._redis.hgetall(key)
        except RedisError as e:
            raise self._translate(e, "hgetall", key) from e
        # Redis returns an empty hash for a missing key
        return fields or None

    async def replace_hash(self, key: str, fields: Mapping[str, str], ttl: Optional[int] = None) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if fields:
                    pipe.hset(key, mapping=dict(fields))
                    if ttl:
                        pipe.expire(key, ttl)
                await pipe.execute()
        except RedisError as e:
            raise self._translate(e, "replace", key) from e

    async def delete(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        if not keys:
            return 0
        try:
            return await self._redis.delete(*keys)
        except RedisError as e:
            raise self._translate(e, "delete", ",".join(keys)) from e

    async def keys(self, pattern: str = "*") -> List[str]:
        try:
            return [k async for k in self._redis.scan_iter(match=pattern, count=self.SCAN_COUNT)]
        except RedisError as e:
            raise self._translate(e, "scan", pattern) from e

    async def close(self) -> None:
        await self._redis.aclose()


def create_backend(redis_url: Optional[str]) -> CacheBackend:
    """Redis when a URL is configured, in-memory otherwise."""
    if redis_url:
        logger.info("Using Redis cache backend")
        return RedisCacheBackend(url=redis_url)
    logger.info("REDIS_URL not set, using in-memory cache backend")
    return InMemoryCacheBackend()
