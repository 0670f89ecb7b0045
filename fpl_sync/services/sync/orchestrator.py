"""Sync orchestrator for FPL entity types.

One workflow per entity type (optionally per scoping id):

    Fetch -> Validate/Map -> Persist -> Invalidate/Repopulate Cache -> Report

Steps run strictly in sequence, so the cache is only touched after the store
write has committed. Any step's failure ends the workflow. The orchestrator
never raises: every outcome, success or failure, comes back as a
WorkflowResult whose error (if any) is a ServiceError with the original
failure preserved as its cause.

Typical schedule (triggered by an external job runner):
- bootstrap (team, player, phase, event): "0 */6 * * *"
- fixture, event_live for the current event: "*/5 * * * *" on match days
- player_stat for the current event: "0 * * * *"
- player_value for the current event: "45 1 * * *" (after the daily price update)
- entry_* per tracked entry: "30 2 * * *"
- entry_event_pick for the current event, after its deadline
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from fpl_sync.cache.invalidation import CacheInvalidator
from fpl_sync.cache.store import CacheStore, EntityCache
from fpl_sync.core import metrics
from fpl_sync.core.errors import (
    CacheError,
    DomainError,
    FetchError,
    MappingError,
    PipelineError,
    ServiceError,
    ValidationError,
    cache_to_domain,
    to_service_error,
)
from fpl_sync.core.logging import workflow_context
from fpl_sync.models.enums import CacheTier, EntityType, ScopeKind, SyncStrategy
from fpl_sync.models.ids import is_valid_event_id
from fpl_sync.repositories.entity_repository import EntityRepository
from fpl_sync.services.mappers import MappingContext
from fpl_sync.services.sync.entities import ENTITY_REGISTRY, EntityDescriptor, get_descriptor
from fpl_sync.services.validation import RecordFailure, validate_and_map

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowContext:
    """Per-invocation identity, used for logs and results only."""
    workflow_id: str
    entity_type: str
    scope_id: Optional[int]
    started_at: datetime

    @classmethod
    def create(cls, entity_type: str, scope_id: Optional[int] = None) -> "WorkflowContext":
        return cls(
            workflow_id=f"{entity_type}-{uuid.uuid4().hex[:12]}",
            entity_type=entity_type,
            scope_id=scope_id,
            started_at=datetime.now(timezone.utc),
        )


@dataclass
class WorkflowResult:
    """
    Outcome of one sync workflow.

    Attributes:
        context: Workflow id, entity type, scope and start time
        success: True when every step completed
        duration_ms: Wall time of the whole workflow
        fetched: Upstream records received
        persisted: Rows in the affected scope after the write
        rejected: Upstream records dropped by validation or mapping
        failures: Details of the rejected records
        invalidated_keys: Cache keys removed (own collection and dependents)
        error: ServiceError when success is False
    """
    context: WorkflowContext
    success: bool
    duration_ms: int = 0
    fetched: int = 0
    persisted: int = 0
    rejected: int = 0
    failures: List[RecordFailure] = field(default_factory=list)
    invalidated_keys: List[str] = field(default_factory=list)
    error: Optional[ServiceError] = None

    @property
    def workflow_id(self) -> str:
        return self.context.workflow_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.context.workflow_id,
            "entity_type": self.context.entity_type,
            "scope_id": self.context.scope_id,
            "started_at": self.context.started_at.isoformat(),
            "success": self.success,
            "duration_ms": self.duration_ms,
            "fetched": self.fetched,
            "persisted": self.persisted,
            "rejected": self.rejected,
            "failures": [f.to_dict() for f in self.failures],
            "invalidated_keys": list(self.invalidated_keys),
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class BatchWorkflowResult:
    """Outcomes of one entity type synced for several scoping ids."""
    entity_type: str
    results: Dict[int, WorkflowResult] = field(default_factory=dict)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results.values())

    @property
    def succeeded(self) -> List[int]:
        return [scope_id for scope_id, r in self.results.items() if r.success]

    @property
    def failed(self) -> List[int]:
        return [scope_id for scope_id, r in self.results.items() if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": {str(k): v.to_dict() for k, v in self.results.items()},
        }


class SyncOrchestrator:
    """
    Coordinates sync workflows between the FPL API, the database and the cache.

    All collaborators are passed in, so tests can use in-memory SQLite, the
    in-memory cache backend and a mocked adapter.
    """

    def __init__(
        self,
        adapter: Any,
        session_factory: Any,
        cache: CacheStore,
        season: str,
        registry: Optional[Dict[EntityType, EntityDescriptor]] = None,
        fetch_timeout: float = 60.0,
        cascade_depth: int = 1,
        max_concurrency: int = 4,
        cold_ttl: Optional[int] = 86400,
    ):
        """
        Initialize the sync orchestrator.

        Args:
            adapter: FPL API adapter (anything with the FplApiAdapter methods)
            session_factory: Callable returning an AsyncSession context manager
            cache: Cache store for entity collections
            season: Four-character season label used in cache keys
            registry: Entity descriptors, ENTITY_REGISTRY by default
            fetch_timeout: Upper bound in seconds for the fetch step
            cascade_depth: Dependency levels invalidated after a write
            max_concurrency: Scoping ids synced concurrently in a batch
            cold_ttl: TTL in seconds for cold cache collections
        """
        self.adapter = adapter
        self.session_factory = session_factory
        self.cache = cache
        self.season = season
        self.registry = registry if registry is not None else ENTITY_REGISTRY
        self.fetch_timeout = fetch_timeout
        self.cascade_depth = cascade_depth
        self.max_concurrency = max(1, max_concurrency)
        self.cold_ttl = cold_ttl
        self.invalidator = CacheInvalidator(cache, self.registry, season)

    def entity_cache(self, descriptor: EntityDescriptor) -> EntityCache:
        ttl = self.cold_ttl if descriptor.cache_tier == CacheTier.COLD else None
        return EntityCache.for_descriptor(self.cache, descriptor, self.season, ttl)

    # ========================================================================
    # Entry points
    # ========================================================================

    async def sync_entity_type(
        self,
        entity_type: Any,
        scope_id: Optional[int] = None,
        cascade_depth: Optional[int] = None,
    ) -> WorkflowResult:
        """
        Run one sync workflow.

        Args:
            entity_type: EntityType member or name ("team", "Event", ...)
            scope_id: Event or entry id for scoped entity types
            cascade_depth: Override for the dependency invalidation depth

        Returns:
            WorkflowResult (never raises)
        """
        type_name = entity_type.value if isinstance(entity_type, EntityType) else str(entity_type)
        context = WorkflowContext.create(type_name.lower(), scope_id)
        result = WorkflowResult(context=context, success=False)
        scope_label = "" if scope_id is None else f" (scope {scope_id})"

        with workflow_context(context.workflow_id):
            logger.info(f"Starting {context.entity_type} sync{scope_label}")
            start = time.perf_counter()
            try:
                descriptor = self._resolve(entity_type, scope_id)
                depth = self.cascade_depth if cascade_depth is None else cascade_depth
                await self._run(descriptor, scope_id, depth, result)
                result.success = True
            except PipelineError as e:
                result.error = to_service_error(e)
                logger.error(f"{context.entity_type} sync failed: [{result.error.code.value}] {result.error.message}")
            except Exception as e:
                result.error = to_service_error(e)
                logger.exception(f"{context.entity_type} sync failed unexpectedly: {e}")
            finally:
                result.duration_ms = int((time.perf_counter() - start) * 1000)
                status = "success" if result.success else "failure"
                metrics.sync_workflows_total.labels(entity_type=context.entity_type, status=status).inc()
                metrics.sync_workflow_duration_seconds.labels(entity_type=context.entity_type).observe(
                    result.duration_ms / 1000
                )

            if result.success:
                logger.info(
                    f"{context.entity_type} sync complete{scope_label}: "
                    f"{result.persisted} persisted, {result.rejected} rejected, "
                    f"{len(result.invalidated_keys)} keys invalidated ({result.duration_ms}ms)"
                )
        return result

    async def sync_entity_type_batch(
        self,
        entity_type: Any,
        scope_ids: Iterable[int],
        cascade_depth: Optional[int] = None,
    ) -> BatchWorkflowResult:
        """
        Sync one entity type for several scoping ids.

        Each id runs as its own workflow; one id failing does not affect the
        others. Concurrency is bounded by max_concurrency.
        """
        type_name = entity_type.value if isinstance(entity_type, EntityType) else str(entity_type).lower()
        unique_ids = list(dict.fromkeys(scope_ids))
        batch = BatchWorkflowResult(entity_type=type_name)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        start = time.perf_counter()

        logger.info(f"Starting {type_name} batch sync for {len(unique_ids)} scopes")

        async def run_one(scope_id: int) -> WorkflowResult:
            async with semaphore:
                return await self.sync_entity_type(entity_type, scope_id, cascade_depth)

        outcomes = await asyncio.gather(*(run_one(scope_id) for scope_id in unique_ids))
        batch.results = dict(zip(unique_ids, outcomes))
        batch.duration_ms = int((time.perf_counter() - start) * 1000)

        logger.info(
            f"{type_name} batch sync complete: {len(batch.succeeded)}/{len(unique_ids)} succeeded "
            f"({batch.duration_ms}ms)"
        )
        return batch

    # ========================================================================
    # Workflow steps
    # ========================================================================

    def _resolve(self, entity_type: Any, scope_id: Optional[int]) -> EntityDescriptor:
        try:
            descriptor = get_descriptor(entity_type, self.registry)
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Unknown entity type: {entity_type!r}", cause=e) from e

        if scope_id is None:
            if descriptor.requires_scope:
                raise ValidationError(f"{descriptor.name} sync requires a scope id")
            return descriptor

        if descriptor.scope_kind == ScopeKind.SEASON:
            raise ValidationError(f"{descriptor.name} sync does not take a scope id")
        if descriptor.scope_kind == ScopeKind.EVENT and not is_valid_event_id(scope_id):
            raise ValidationError(f"Invalid event id: {scope_id!r}")
        if descriptor.scope_kind == ScopeKind.ENTRY and (
            isinstance(scope_id, bool) or not isinstance(scope_id, int) or scope_id <= 0
        ):
            raise ValidationError(f"Invalid entry id: {scope_id!r}")
        return descriptor

    async def _stored_ids(self, entity_type: EntityType) -> List[int]:
        """Ids of every stored record of an id-keyed type, e.g. the tracked entries."""
        async with self.session_factory() as session:
            records = await EntityRepository(self.registry[entity_type], session).find_all()
        return [record.id for record in records]

    async def _fetch(self, descriptor: EntityDescriptor, scope_id: Optional[int]) -> List[Any]:
        args: List[Any] = [self.adapter, scope_id]
        if descriptor.fan_out_over is not None:
            args.append(await self._stored_ids(descriptor.fan_out_over))
        try:
            return await asyncio.wait_for(descriptor.fetch(*args), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(
                f"Fetching {descriptor.name} timed out after {self.fetch_timeout}s",
                cause=e,
                details={"timeout": self.fetch_timeout},
            ) from e

    def _check_batch(self, descriptor: EntityDescriptor, scope_id: Optional[int], fetched: int,
                     records: List[Any], failures: List[RecordFailure]) -> None:
        if fetched and not records:
            raise MappingError(
                f"All {fetched} upstream {descriptor.name} records were rejected",
                details={"fetched": fetched, "failures": [f.to_dict() for f in failures]},
            )
        if descriptor.sync_strategy == SyncStrategy.REBUILD and not records:
            raise DomainError(f"Refusing to rebuild {descriptor.name} from an empty upstream batch")
        if scope_id is not None:
            foreign = [r for r in records if descriptor.scope_of(r) != scope_id]
            if foreign:
                raise DomainError(
                    f"{len(foreign)} {descriptor.name} records do not belong to scope {scope_id}",
                    details={"scope_id": scope_id, "foreign": len(foreign)},
                )

    async def _persist(self, repo: EntityRepository, descriptor: EntityDescriptor,
                       scope_id: Optional[int], records: List[Any]) -> List[Any]:
        if descriptor.sync_strategy == SyncStrategy.REBUILD:
            # Purge and insert commit together in save_batch
            if scope_id is None:
                await repo.delete_all(commit=False)
            else:
                await repo.delete_by_scope(scope_id, commit=False)
        return await repo.save_batch(records, scope_id=scope_id)

    async def _refresh_cache(self, descriptor: EntityDescriptor, scope_id: Optional[int],
                             persisted: List[Any], depth: int) -> List[str]:
        entity_cache = self.entity_cache(descriptor)
        cache_scope = scope_id if descriptor.cache_scoped else None
        # A scoped write into a season-wide collection only invalidates it;
        # the next read repopulates from committed rows
        repopulate = scope_id is None or descriptor.cache_scoped

        try:
            own_key = await entity_cache.invalidate(cache_scope)
            if repopulate:
                await entity_cache.set_all(persisted, cache_scope)
            dependent_keys = await self.invalidator.invalidate_dependents(descriptor.entity_type, scope_id, depth)
        except CacheError as e:
            raise cache_to_domain(e) from e
        return [own_key] + dependent_keys

    async def _run(self, descriptor: EntityDescriptor, scope_id: Optional[int], depth: int,
                   result: WorkflowResult) -> None:
        payloads = await self._fetch(descriptor, scope_id)
        result.fetched = len(payloads)

        context = MappingContext(self.season, scope_id, sync_date=datetime.now(timezone.utc).date())
        batch = validate_and_map(descriptor, payloads, context)
        result.rejected = len(batch.failures)
        result.failures = batch.failures
        if batch.failures:
            metrics.sync_records_rejected_total.labels(entity_type=descriptor.name).inc(len(batch.failures))
        self._check_batch(descriptor, scope_id, len(payloads), batch.records, batch.failures)

        async with self.session_factory() as session:
            repo = EntityRepository(descriptor, session)
            records = batch.records
            if descriptor.reconcile is not None:
                records = await descriptor.reconcile(repo, records)
                logger.debug(f"{descriptor.name}: {len(records)} of {len(batch.records)} records left after reconcile")
            persisted = await self._persist(repo, descriptor, scope_id, records)
            result.persisted = len(persisted)
            metrics.sync_records_persisted_total.labels(entity_type=descriptor.name).inc(len(records))

            result.invalidated_keys = await self._refresh_cache(descriptor, scope_id, persisted, depth)
