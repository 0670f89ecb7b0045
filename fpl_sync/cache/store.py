"""
Cache store and typed per-entity collections.

CacheStore is the untyped layer: get / set_all / keys_matching / invalidate
over hash collections. EntityCache sits on top of it for one entity type and
handles record serialization.

A collection that cannot be deserialized (corrupt bytes, a record shape from
an older release) is treated as a miss so that readers fall through to the
database. Backend failures raise CacheError and are left to the caller.
"""
import logging
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from fpl_sync.cache.backends import CacheBackend
from fpl_sync.cache.keys import CachePrefix, build_key
from fpl_sync.core import metrics

logger = logging.getLogger(__name__)

R = TypeVar("R")


class CacheStore:
    """
    Key-value layer over a cache backend.

    Attributes:
        backend: The backend holding the hashes
    """

    def __init__(self, backend: CacheBackend):
        self.backend = backend

    async def get(self, key: str) -> Optional[Dict[str, str]]:
        """Return the collection under key, or None on a miss."""
        return await self.backend.get_hash(key)

    async def set_all(self, key: str, items: Mapping[str, str], ttl: Optional[int] = None) -> None:
        """
        Replace the entire collection under key.

        Clear and write happen in one backend transaction, so records deleted
        upstream never linger as stale fields.
        """
        await self.backend.replace_hash(key, items, ttl)
        logger.debug(f"Cache set {key} ({len(items)} items, ttl={ttl})")

    async def keys_matching(self, pattern: str) -> List[str]:
        return sorted(await self.backend.keys(pattern))

    async def invalidate(self, keys: Sequence[str]) -> int:
        """Remove entries without repopulating them."""
        if not keys:
            return 0
        removed = await self.backend.delete(keys)
        logger.debug(f"Cache invalidated {list(keys)} ({removed} present)")
        return removed

    async def close(self) -> None:
        await self.backend.close()


class EntityCache(Generic[R]):
    """
    Typed view of one entity type's collections.

    Each record is one hash field, named by its natural key (composite keys
    joined with ':') and holding the record as JSON.
    """

    def __init__(
        self,
        store: CacheStore,
        prefix: CachePrefix,
        record_type: Type[R],
        key_fields: Tuple[str, ...],
        season: str,
        ttl: Optional[int] = None,
    ):
        self.store = store
        self.prefix = prefix
        self.record_type = record_type
        self.key_fields = key_fields
        self.season = season
        self.ttl = ttl
        self._adapter = TypeAdapter(record_type)

    @classmethod
    def for_descriptor(cls, store: CacheStore, descriptor: Any, season: str, ttl: Optional[int] = None) -> "EntityCache":
        return cls(
            store,
            prefix=descriptor.cache_prefix,
            record_type=descriptor.record_type,
            key_fields=descriptor.key_fields,
            season=season,
            ttl=ttl,
        )

    def key(self, scope_id: Optional[int] = None) -> str:
        return build_key(self.prefix, self.season, scope_id)

    def natural_key(self, record: R) -> Tuple[Any, ...]:
        return tuple(getattr(record, f) for f in self.key_fields)

    def field_name(self, record: R) -> str:
        return ":".join(str(v) for v in self.natural_key(record))

    async def get(self, scope_id: Optional[int] = None) -> Optional[List[R]]:
        """
        Read a collection.

        Returns:
            Records ordered by natural key, or None on a miss or when the
            cached payload cannot be deserialized
        """
        key = self.key(scope_id)
        fields = await self.store.get(key)
        if fields is None:
            metrics.cache_requests_total.labels(entity_type=self.prefix.value, result="miss").inc()
            return None

        try:
            records = [self._adapter.validate_json(raw) for raw in fields.values()]
        except (PydanticValidationError, ValueError, TypeError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            metrics.cache_requests_total.labels(entity_type=self.prefix.value, result="corrupt").inc()
            return None

        metrics.cache_requests_total.labels(entity_type=self.prefix.value, result="hit").inc()
        return sorted(records, key=self.natural_key)

    async def set_all(self, records: Sequence[R], scope_id: Optional[int] = None) -> str:
        """
        Replace the collection with records and return its key.

        An empty collection is not stored: the key is deleted, so the next
        read is a miss that falls through to the database.
        """
        key = self.key(scope_id)
        items = {
            self.field_name(record): self._adapter.dump_json(record).decode()
            for record in records
        }
        await self.store.set_all(key, items, self.ttl)
        return key

    async def invalidate(self, scope_id: Optional[int] = None) -> str:
        key = self.key(scope_id)
        await self.store.invalidate([key])
        return key
