"""Entity descriptors for the generic sync pipeline.

Every entity type is synchronized by the same code path. What differs per type
is declared here once: the wire schema, the mapper, the table, the natural key,
the cache prefix, the conflict policy and how to fetch the upstream records.

Entity catalogue:

    type                  scope   key                        policy            strategy
    TEAM                  season  id                         insert or update  merge
    PLAYER                season  id                         insert or update  merge
    PHASE                 season  id                         insert or update  rebuild
    EVENT                 season  id                         insert or update  merge
    FIXTURE               event   id                         insert or ignore  merge
    EVENT_LIVE            event   (event_id, element_id)     insert or update  merge
    PLAYER_STAT           event   (event_id, element_id)     insert or update  merge
    PLAYER_VALUE          event   (element_id, change_date)  insert or ignore  merge
    ENTRY_INFO            entry   id                         insert or update  merge
    ENTRY_HISTORY         entry   (entry_id, season)         insert or ignore  merge
    ENTRY_EVENT_RESULT    entry   (entry_id, event_id)       insert or update  merge
    ENTRY_EVENT_PICK      event   (entry_id, event_id)       insert or ignore  merge
    ENTRY_EVENT_TRANSFER  entry   (entry_id, event_id)       insert or update  merge

EVENT may also be synced for a single event id; its cache collection stays
season-wide.

ENTRY_EVENT_PICK fetches one document per tracked entry (every stored
ENTRY_INFO). PLAYER_VALUE and ENTRY_EVENT_TRANSFER reconcile the mapped batch
before it is written: only price changes, and only the latest transfer of
each event, are kept.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from fpl_sync.cache.keys import CachePrefix
from fpl_sync.core.errors import FetchError, NotFoundError
from fpl_sync.models import domain, tables
from fpl_sync.models.enums import CacheTier, ConflictPolicy, EntityType, ScopeKind, SyncStrategy
from fpl_sync.schemas import fpl as schemas
from fpl_sync.services import mappers
from fpl_sync.services.sync import reconcile
from fpl_sync.services.sync.adapters.fpl_api_adapter import FplApiAdapter, extract_section

logger = logging.getLogger(__name__)

# (adapter, scope id) or, for fan-out types, (adapter, scope id, tracked ids)
FetchFn = Callable[..., Awaitable[List[Any]]]
ReconcileFn = Callable[[Any, List[Any]], Awaitable[List[Any]]]


@dataclass(frozen=True)
class EntityDescriptor:
    """
    Everything the pipeline needs to know about one entity type.

    Attributes:
        entity_type: The type being described
        schema: Pydantic model validating one upstream record
        mapper: Function (validated payload, MappingContext) -> domain record
        record_type: Domain record dataclass
        model: SQLAlchemy table class (columns match record fields)
        cache_prefix: Cache key prefix
        key_fields: Natural key fields; conflict target for batch writes
        scope_kind: What the scoping id identifies
        scope_field: Record field holding the scoping id (None when season-wide)
        requires_scope: Whether a sync needs a scoping id
        cache_scoped: Whether cache keys include the scoping id
        conflict_policy: Insert-or-update or insert-or-ignore
        sync_strategy: Merge, or purge the scope before writing
        cache_tier: Hot (no TTL) or cold (TTL safety net)
        fetch: Coroutine returning the raw upstream records for a scope
        fan_out_over: Id-keyed type whose stored ids the fetch iterates
        reconcile: Step (repository, records) -> records run before the write
    """
    entity_type: EntityType
    schema: Type[BaseModel]
    mapper: Callable[[Any, mappers.MappingContext], Any]
    record_type: type
    model: type
    cache_prefix: CachePrefix
    key_fields: Tuple[str, ...]
    scope_kind: ScopeKind
    scope_field: Optional[str]
    requires_scope: bool
    cache_scoped: bool
    conflict_policy: ConflictPolicy
    sync_strategy: SyncStrategy
    cache_tier: CacheTier
    fetch: FetchFn
    fan_out_over: Optional[EntityType] = None
    reconcile: Optional[ReconcileFn] = None

    @property
    def name(self) -> str:
        return self.entity_type.value

    def natural_key(self, record: Any) -> Tuple[Any, ...]:
        return tuple(getattr(record, f) for f in self.key_fields)

    def scope_of(self, record: Any) -> Optional[int]:
        if self.scope_field is None:
            return None
        return getattr(record, self.scope_field)

    def normalize_key(self, key: Any) -> Tuple[Any, ...]:
        """Accept a scalar for single-field keys, a tuple otherwise."""
        key_tuple = key if isinstance(key, tuple) else (key,)
        if len(key_tuple) != len(self.key_fields):
            raise ValueError(
                f"{self.name} key needs {len(self.key_fields)} values "
                f"{self.key_fields}, got {key!r}"
            )
        return key_tuple

    def cache_scope_for_key(self, key: Tuple[Any, ...]) -> Optional[int]:
        """Scoping id of the cache collection holding the record with this key."""
        if not self.cache_scoped or self.scope_field not in self.key_fields:
            return None
        return key[self.key_fields.index(self.scope_field)]


# =============================================================================
# Fetch functions
# =============================================================================

BOOTSTRAP = "bootstrap-static/"


async def _fetch_bootstrap_section(adapter: FplApiAdapter, section: str) -> List[Any]:
    document = await adapter.get_bootstrap_static()
    return extract_section(document, section, BOOTSTRAP)


async def fetch_teams(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    return await _fetch_bootstrap_section(adapter, "teams")


async def fetch_players(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    return await _fetch_bootstrap_section(adapter, "elements")


async def fetch_phases(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    return await _fetch_bootstrap_section(adapter, "phases")


async def fetch_events(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    events = await _fetch_bootstrap_section(adapter, "events")
    if scope_id is None:
        return events
    matching = [e for e in events if isinstance(e, dict) and e.get("id") == scope_id]
    if not matching:
        raise NotFoundError("event", scope_id)
    return matching


async def fetch_player_stats(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    # Season-to-date totals from bootstrap, stamped with the event by the mapper
    return await _fetch_bootstrap_section(adapter, "elements")


async def fetch_fixtures(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    return await adapter.get_fixtures(scope_id)


async def fetch_event_live(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    document = await adapter.get_event_live(scope_id)
    return extract_section(document, "elements", f"event/{scope_id}/live/")


async def fetch_entry_info(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    return [await adapter.get_entry(scope_id)]


async def fetch_entry_history(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    document = await adapter.get_entry_history(scope_id)
    return extract_section(document, "past", f"entry/{scope_id}/history/")


async def fetch_entry_event_results(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    document = await adapter.get_entry_history(scope_id)
    return extract_section(document, "current", f"entry/{scope_id}/history/")


async def fetch_player_values(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    return await _fetch_bootstrap_section(adapter, "elements")


async def fetch_entry_event_picks(adapter: FplApiAdapter, scope_id: Optional[int], entry_ids: List[int]) -> List[Any]:
    """Picks of every tracked entry for one event, each stamped with its entry id."""
    documents = []
    for entry_id in entry_ids:
        try:
            document = await adapter.get_entry_event_picks(entry_id, scope_id)
        except FetchError as e:
            # Entries created after the event have no picks for it
            if e.details.get("status") != 404:
                raise
            logger.info(f"Entry {entry_id} has no picks for event {scope_id}")
            continue
        documents.append({**document, "entry": entry_id})
    return documents


async def fetch_entry_transfers(adapter: FplApiAdapter, scope_id: Optional[int]) -> List[Any]:
    return await adapter.get_entry_transfers(scope_id)


# =============================================================================
# Registry
# =============================================================================

def _season_wide(entity_type, schema, mapper, record_type, model, prefix, fetch,
                 strategy=SyncStrategy.MERGE) -> EntityDescriptor:
    return EntityDescriptor(
        entity_type=entity_type,
        schema=schema,
        mapper=mapper,
        record_type=record_type,
        model=model,
        cache_prefix=prefix,
        key_fields=("id",),
        scope_kind=ScopeKind.SEASON,
        scope_field=None,
        requires_scope=False,
        cache_scoped=False,
        conflict_policy=ConflictPolicy.INSERT_OR_UPDATE,
        sync_strategy=strategy,
        cache_tier=CacheTier.HOT,
        fetch=fetch,
    )


ENTITY_REGISTRY: Dict[EntityType, EntityDescriptor] = {
    EntityType.TEAM: _season_wide(
        EntityType.TEAM, schemas.TeamPayload, mappers.map_team, domain.TeamRecord,
        tables.Team, CachePrefix.TEAM, fetch_teams,
    ),
    EntityType.PLAYER: _season_wide(
        EntityType.PLAYER, schemas.ElementPayload, mappers.map_player, domain.PlayerRecord,
        tables.Player, CachePrefix.PLAYER, fetch_players,
    ),
    EntityType.PHASE: _season_wide(
        EntityType.PHASE, schemas.PhasePayload, mappers.map_phase, domain.PhaseRecord,
        tables.Phase, CachePrefix.PHASE, fetch_phases, strategy=SyncStrategy.REBUILD,
    ),
    EntityType.EVENT: EntityDescriptor(
        entity_type=EntityType.EVENT,
        schema=schemas.EventPayload,
        mapper=mappers.map_event,
        record_type=domain.EventRecord,
        model=tables.Event,
        cache_prefix=CachePrefix.EVENT,
        key_fields=("id",),
        scope_kind=ScopeKind.EVENT,
        scope_field="id",
        requires_scope=False,
        cache_scoped=False,
        conflict_policy=ConflictPolicy.INSERT_OR_UPDATE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.HOT,
        fetch=fetch_events,
    ),
    EntityType.FIXTURE: EntityDescriptor(
        entity_type=EntityType.FIXTURE,
        schema=schemas.FixturePayload,
        mapper=mappers.map_fixture,
        record_type=domain.FixtureRecord,
        model=tables.Fixture,
        cache_prefix=CachePrefix.FIXTURE,
        key_fields=("id",),
        scope_kind=ScopeKind.EVENT,
        scope_field="event_id",
        requires_scope=True,
        cache_scoped=True,
        conflict_policy=ConflictPolicy.INSERT_OR_IGNORE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.HOT,
        fetch=fetch_fixtures,
    ),
    EntityType.EVENT_LIVE: EntityDescriptor(
        entity_type=EntityType.EVENT_LIVE,
        schema=schemas.LiveElementPayload,
        mapper=mappers.map_event_live,
        record_type=domain.EventLiveRecord,
        model=tables.EventLive,
        cache_prefix=CachePrefix.EVENT_LIVE,
        key_fields=("event_id", "element_id"),
        scope_kind=ScopeKind.EVENT,
        scope_field="event_id",
        requires_scope=True,
        cache_scoped=True,
        conflict_policy=ConflictPolicy.INSERT_OR_UPDATE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.HOT,
        fetch=fetch_event_live,
    ),
    EntityType.PLAYER_STAT: EntityDescriptor(
        entity_type=EntityType.PLAYER_STAT,
        schema=schemas.ElementPayload,
        mapper=mappers.map_player_stat,
        record_type=domain.PlayerStatRecord,
        model=tables.PlayerStat,
        cache_prefix=CachePrefix.PLAYER_STAT,
        key_fields=("event_id", "element_id"),
        scope_kind=ScopeKind.EVENT,
        scope_field="event_id",
        requires_scope=True,
        cache_scoped=True,
        conflict_policy=ConflictPolicy.INSERT_OR_UPDATE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.COLD,
        fetch=fetch_player_stats,
    ),
    EntityType.ENTRY_INFO: EntityDescriptor(
        entity_type=EntityType.ENTRY_INFO,
        schema=schemas.EntryPayload,
        mapper=mappers.map_entry_info,
        record_type=domain.EntryInfoRecord,
        model=tables.EntryInfo,
        cache_prefix=CachePrefix.ENTRY_INFO,
        key_fields=("id",),
        scope_kind=ScopeKind.ENTRY,
        scope_field="id",
        requires_scope=True,
        cache_scoped=True,
        conflict_policy=ConflictPolicy.INSERT_OR_UPDATE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.COLD,
        fetch=fetch_entry_info,
    ),
    EntityType.ENTRY_HISTORY: EntityDescriptor(
        entity_type=EntityType.ENTRY_HISTORY,
        schema=schemas.EntryPastSeasonPayload,
        mapper=mappers.map_entry_history,
        record_type=domain.EntryHistoryRecord,
        model=tables.EntryHistory,
        cache_prefix=CachePrefix.ENTRY_HISTORY,
        key_fields=("entry_id", "season"),
        scope_kind=ScopeKind.ENTRY,
        scope_field="entry_id",
        requires_scope=True,
        cache_scoped=True,
        conflict_policy=ConflictPolicy.INSERT_OR_IGNORE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.COLD,
        fetch=fetch_entry_history,
    ),
    EntityType.ENTRY_EVENT_RESULT: EntityDescriptor(
        entity_type=EntityType.ENTRY_EVENT_RESULT,
        schema=schemas.EntryEventHistoryPayload,
        mapper=mappers.map_entry_event_result,
        record_type=domain.EntryEventResultRecord,
        model=tables.EntryEventResult,
        cache_prefix=CachePrefix.ENTRY_EVENT_RESULT,
        key_fields=("entry_id", "event_id"),
        scope_kind=ScopeKind.ENTRY,
        scope_field="entry_id",
        requires_scope=True,
        cache_scoped=True,
        conflict_policy=ConflictPolicy.INSERT_OR_UPDATE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.COLD,
        fetch=fetch_entry_event_results,
    ),
    EntityType.ENTRY_EVENT_PICK: EntityDescriptor(
        entity_type=EntityType.ENTRY_EVENT_PICK,
        schema=schemas.EntryEventPicksPayload,
        mapper=mappers.map_entry_event_pick,
        record_type=domain.EntryEventPickRecord,
        model=tables.EntryEventPick,
        cache_prefix=CachePrefix.ENTRY_EVENT_PICK,
        key_fields=("entry_id", "event_id"),
        scope_kind=ScopeKind.EVENT,
        scope_field="event_id",
        requires_scope=True,
        cache_scoped=True,
        conflict_policy=ConflictPolicy.INSERT_OR_IGNORE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.COLD,
        fetch=fetch_entry_event_picks,
        fan_out_over=EntityType.ENTRY_INFO,
    ),
    EntityType.ENTRY_EVENT_TRANSFER: EntityDescriptor(
        entity_type=EntityType.ENTRY_EVENT_TRANSFER,
        schema=schemas.TransferPayload,
        mapper=mappers.map_entry_event_transfer,
        record_type=domain.EntryEventTransferRecord,
        model=tables.EntryEventTransfer,
        cache_prefix=CachePrefix.ENTRY_EVENT_TRANSFER,
        key_fields=("entry_id", "event_id"),
        scope_kind=ScopeKind.ENTRY,
        scope_field="entry_id",
        requires_scope=True,
        cache_scoped=True,
        conflict_policy=ConflictPolicy.INSERT_OR_UPDATE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.COLD,
        fetch=fetch_entry_transfers,
        reconcile=reconcile.latest_transfer_per_event,
    ),
    EntityType.PLAYER_VALUE: EntityDescriptor(
        entity_type=EntityType.PLAYER_VALUE,
        schema=schemas.ElementPayload,
        mapper=mappers.map_player_value,
        record_type=domain.PlayerValueRecord,
        model=tables.PlayerValue,
        cache_prefix=CachePrefix.PLAYER_VALUE,
        key_fields=("element_id", "change_date"),
        scope_kind=ScopeKind.EVENT,
        scope_field="event_id",
        requires_scope=True,
        cache_scoped=True,
        conflict_policy=ConflictPolicy.INSERT_OR_IGNORE,
        sync_strategy=SyncStrategy.MERGE,
        cache_tier=CacheTier.COLD,
        fetch=fetch_player_values,
        reconcile=reconcile.detect_value_changes,
    ),
}


def get_descriptor(entity_type: Any, registry: Optional[Dict[EntityType, EntityDescriptor]] = None) -> EntityDescriptor:
    """Look up a descriptor by enum member or name; raises KeyError when unregistered."""
    registry = registry if registry is not None else ENTITY_REGISTRY
    return registry[EntityType.parse(entity_type)]
