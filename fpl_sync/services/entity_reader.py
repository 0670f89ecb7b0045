"""
Read-through access to synchronized entities.

Reads try the cache first. A miss, an undecodable entry or a cache outage
falls through to the database and returns exactly what the database holds.
The collection is then written back to the cache on a best-effort basis.
Cache problems are logged and never reach the caller. Database failures
surface as ServiceError.
"""
import logging
from typing import Any, Dict, List, Optional

from fpl_sync.cache.store import CacheStore, EntityCache
from fpl_sync.core import metrics
from fpl_sync.core.errors import (
    CacheError,
    NotFoundError,
    PersistenceError,
    ServiceError,
    ServiceErrorCode,
    to_service_error,
)
from fpl_sync.models.domain import EventRecord
from fpl_sync.models.enums import CacheTier, EntityType
from fpl_sync.repositories.entity_repository import EntityRepository
from fpl_sync.services.sync.entities import ENTITY_REGISTRY, EntityDescriptor, get_descriptor

logger = logging.getLogger(__name__)


class EntityReader:
    """Read path shared by the HTTP layer and scheduled jobs."""

    def __init__(
        self,
        session_factory: Any,
        cache: CacheStore,
        season: str,
        registry: Optional[Dict[EntityType, EntityDescriptor]] = None,
        cold_ttl: Optional[int] = 86400,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.season = season
        self.registry = registry if registry is not None else ENTITY_REGISTRY
        self.cold_ttl = cold_ttl

    def _descriptor(self, entity_type: Any) -> EntityDescriptor:
        try:
            return get_descriptor(entity_type, self.registry)
        except (KeyError, ValueError) as e:
            raise ServiceError(
                f"Unknown entity type: {entity_type!r}",
                code=ServiceErrorCode.VALIDATION_ERROR,
                cause=e,
            ) from e

    def _entity_cache(self, descriptor: EntityDescriptor) -> EntityCache:
        ttl = self.cold_ttl if descriptor.cache_tier == CacheTier.COLD else None
        return EntityCache.for_descriptor(self.cache, descriptor, self.season, ttl)

    async def _load(self, descriptor: EntityDescriptor, cache_scope: Optional[int]) -> List[Any]:
        try:
            async with self.session_factory() as session:
                repo = EntityRepository(descriptor, session)
                if cache_scope is None:
                    return await repo.find_all()
                return await repo.find_by_scope(cache_scope)
        except PersistenceError as e:
            raise to_service_error(e) from e

    async def _load_one(self, descriptor: EntityDescriptor, key: Any) -> Optional[Any]:
        try:
            async with self.session_factory() as session:
                return await EntityRepository(descriptor, session).find_by_id(key)
        except PersistenceError as e:
            raise to_service_error(e) from e

    async def get_all(self, entity_type: Any, scope_id: Optional[int] = None) -> List[Any]:
        """
        All records of a type (within a scope for scoped types).

        Returns:
            Records ordered by natural key ascending

        Raises:
            ServiceError: VALIDATION_ERROR for a missing scope id,
                PERSISTENCE_ERROR when the database read fails
        """
        descriptor = self._descriptor(entity_type)
        if descriptor.cache_scoped and scope_id is None:
            raise ServiceError(
                f"{descriptor.name} reads require a scope id",
                code=ServiceErrorCode.VALIDATION_ERROR,
            )
        cache_scope = scope_id if descriptor.cache_scoped else None
        entity_cache = self._entity_cache(descriptor)

        try:
            records = await entity_cache.get(cache_scope)
        except CacheError as e:
            logger.warning(f"Cache read failed for {entity_cache.key(cache_scope)}, using database: {e}")
            metrics.cache_requests_total.labels(entity_type=descriptor.name, result="error").inc()
            records = None

        if records is None:
            records = await self._load(descriptor, cache_scope)
            if records:
                try:
                    await entity_cache.set_all(records, cache_scope)
                except CacheError as e:
                    logger.warning(f"Cache repopulation failed for {entity_cache.key(cache_scope)}: {e}")

        if scope_id is not None and not descriptor.cache_scoped:
            records = [r for r in records if descriptor.scope_of(r) == scope_id]
        return records

    async def find_by_id(self, entity_type: Any, key: Any) -> Optional[Any]:
        """
        Find one record by natural key; None when absent.

        Keys that do not carry the cache scope (a fixture id, a player value)
        are looked up in the database directly.
        """
        descriptor = self._descriptor(entity_type)
        try:
            key = descriptor.normalize_key(key)
        except ValueError as e:
            raise ServiceError(str(e), code=ServiceErrorCode.VALIDATION_ERROR, cause=e) from e

        cache_scope = descriptor.cache_scope_for_key(key)
        if descriptor.cache_scoped and cache_scope is None:
            # The key does not name the cached collection holding the record
            return await self._load_one(descriptor, key)

        records = await self.get_all(descriptor.entity_type, cache_scope)
        for record in records:
            if descriptor.natural_key(record) == key:
                return record
        return None

    async def get_by_id(self, entity_type: Any, key: Any) -> Any:
        """Like find_by_id, but absence is an error (ServiceError NOT_FOUND)."""
        record = await self.find_by_id(entity_type, key)
        if record is None:
            raise to_service_error(NotFoundError(EntityType.parse(entity_type).value, key))
        return record

    # ========================================================================
    # Events
    # ========================================================================

    async def _flagged_event(self, flag: str) -> EventRecord:
        events = await self.get_all(EntityType.EVENT)
        for event in events:
            if getattr(event, flag):
                return event
        raise to_service_error(NotFoundError("event", flag))

    async def get_current_event(self) -> EventRecord:
        return await self._flagged_event("is_current")

    async def get_next_event(self) -> EventRecord:
        return await self._flagged_event("is_next")

    async def get_last_event(self) -> EventRecord:
        """The event before the current one (flagged previous upstream)."""
        return await self._flagged_event("is_previous")
