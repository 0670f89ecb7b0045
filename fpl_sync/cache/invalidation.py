"""
Cache dependency graph and invalidation.

A write to a source entity type makes the cached collections of its
dependent types stale for the same scoping id. Writing event 5 invalidates
the fixtures, live stats, player stats and entry picks cached for event 5.

Invalidation only deletes keys. Dependents are repopulated by the next read
(read-through). By default only direct dependents are invalidated; callers
can pass a larger depth to walk the graph transitively.

Key selection for a dependent type:
- season-wide dependent: its single season key
- scoped dependent of the same scope kind, with a scoping id: that scope's key
- otherwise (no id, or a different scope kind): every key of the dependent
  in the season, found with a pattern scan
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from fpl_sync.cache.keys import build_key, scoped_pattern
from fpl_sync.cache.store import CacheStore
from fpl_sync.core import metrics
from fpl_sync.core.errors import CacheError
from fpl_sync.models.enums import EntityType

logger = logging.getLogger(__name__)


CACHE_DEPENDENCIES: Dict[EntityType, Tuple[EntityType, ...]] = {
    EntityType.EVENT: (
        EntityType.FIXTURE, EntityType.EVENT_LIVE, EntityType.PLAYER_STAT, EntityType.ENTRY_EVENT_PICK,
    ),
    EntityType.EVENT_LIVE: (EntityType.PLAYER_STAT,),
    EntityType.TEAM: (EntityType.PLAYER, EntityType.FIXTURE),
    EntityType.PLAYER: (EntityType.PLAYER_STAT, EntityType.PLAYER_VALUE),
    EntityType.ENTRY_INFO: (
        EntityType.ENTRY_HISTORY, EntityType.ENTRY_EVENT_RESULT, EntityType.ENTRY_EVENT_TRANSFER,
    ),
}


def dependents_of(
    entity_type: EntityType,
    depth: int = 1,
    graph: Optional[Mapping[EntityType, Iterable[EntityType]]] = None,
) -> List[EntityType]:
    """
    Dependent types reachable within depth edges, breadth first.

    The source type itself is never included, and each type appears once
    even when the graph has diamonds or cycles.
    """
    graph = graph if graph is not None else CACHE_DEPENDENCIES
    seen = {entity_type}
    ordered: List[EntityType] = []
    frontier = [entity_type]
    for _ in range(max(depth, 0)):
        next_frontier = []
        for source in frontier:
            for dependent in graph.get(source, ()):
                if dependent not in seen:
                    seen.add(dependent)
                    ordered.append(dependent)
                    next_frontier.append(dependent)
        frontier = next_frontier
        if not frontier:
            break
    return ordered


@dataclass
class InvalidationReport:
    """Per-scope outcome of a multi-id invalidation."""
    invalidated: Dict[Optional[int], List[str]] = field(default_factory=dict)
    errors: Dict[Optional[int], CacheError] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


class CacheInvalidator:
    """
    Computes and deletes the cache keys made stale by a write.

    Attributes:
        store: Cache store to invalidate in
        registry: Entity descriptors (cache prefix, scope kind per type)
        season: Season part of every key
        graph: Dependency edges, CACHE_DEPENDENCIES by default
    """

    def __init__(
        self,
        store: CacheStore,
        registry: Mapping[EntityType, Any],
        season: str,
        graph: Optional[Mapping[EntityType, Iterable[EntityType]]] = None,
    ):
        self.store = store
        self.registry = registry
        self.season = season
        self.graph = graph if graph is not None else CACHE_DEPENDENCIES

    async def keys_for(self, source: EntityType, dependent: EntityType, scope_id: Optional[int]) -> List[str]:
        descriptor = self.registry[dependent]
        base_key = build_key(descriptor.cache_prefix, self.season)
        if not descriptor.cache_scoped:
            return [base_key]

        source_kind = self.registry[source].scope_kind
        if scope_id is not None and source_kind == descriptor.scope_kind:
            return [build_key(descriptor.cache_prefix, self.season, scope_id)]

        return await self.store.keys_matching(scoped_pattern(descriptor.cache_prefix, self.season))

    async def invalidate_dependents(
        self,
        entity_type: EntityType,
        scope_id: Optional[int] = None,
        depth: int = 1,
    ) -> List[str]:
        """
        Invalidate every cached collection that depends on entity_type.

        Raises:
            CacheError: if the backend fails; keys already deleted stay deleted
        """
        keys: List[str] = []
        for dependent in dependents_of(entity_type, depth, self.graph):
            dependent_keys = await self.keys_for(entity_type, dependent, scope_id)
            if dependent_keys:
                await self.store.invalidate(dependent_keys)
                metrics.cache_keys_invalidated_total.labels(entity_type=dependent.value).inc(len(dependent_keys))
            keys.extend(dependent_keys)

        if keys:
            logger.info(
                f"Invalidated {len(keys)} dependent cache keys of {entity_type.value}"
                f"{'' if scope_id is None else f' (scope {scope_id})'}"
            )
        return keys

    async def invalidate_many(
        self,
        entity_type: EntityType,
        scope_ids: Iterable[Optional[int]],
        depth: int = 1,
    ) -> InvalidationReport:
        """
        Invalidate dependents for several scoping ids.

        Each id is handled on its own: a cache error for one id is recorded
        in the report and the remaining ids are still processed.
        """
        report = InvalidationReport()
        for scope_id in scope_ids:
            try:
                report.invalidated[scope_id] = await self.invalidate_dependents(entity_type, scope_id, depth)
            except CacheError as e:
                logger.warning(f"Invalidation of {entity_type.value} dependents failed for scope {scope_id}: {e}")
                report.errors[scope_id] = e
        return report
