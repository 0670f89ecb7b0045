"""
Process wiring for the sync pipeline.

Builds the engine, cache backend, API adapter, orchestrator and reader from
settings and tears them down again. Entry points (CLI, job runner, HTTP app)
use this instead of constructing collaborators themselves.

Usage:
    async with create_pipeline() as pipeline:
        result = await pipeline.orchestrator.sync_entity_type("team")
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fpl_sync.cache.backends import create_backend
from fpl_sync.cache.store import CacheStore
from fpl_sync.core.config import Settings, settings as default_settings
from fpl_sync.core.database import create_engine_for_url, create_session_factory, init_db
from fpl_sync.services.entity_reader import EntityReader
from fpl_sync.services.sync.adapters.fpl_api_adapter import FplApiAdapter
from fpl_sync.services.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    orchestrator: SyncOrchestrator
    reader: EntityReader
    cache: CacheStore
    adapter: FplApiAdapter


@asynccontextmanager
async def create_pipeline(
    config: Optional[Settings] = None,
    create_tables: bool = False,
) -> AsyncIterator[Pipeline]:
    """
    Build every collaborator from settings and release them on exit.

    Args:
        config: Settings to use, the process settings by default
        create_tables: Create missing tables before yielding
    """
    config = config or default_settings
    missing = config.validate_required_secrets()
    if missing:
        raise RuntimeError(f"Missing required settings for {config.ENVIRONMENT}: {', '.join(missing)}")

    engine = create_engine_for_url(config.DATABASE_URL, echo=config.SQL_ECHO)
    session_factory = create_session_factory(engine)
    cache = CacheStore(create_backend(config.REDIS_URL))
    adapter = FplApiAdapter(
        base_url=config.FPL_API_BASE_URL,
        timeout=config.FPL_API_TIMEOUT,
        max_attempts=config.FPL_API_MAX_RETRIES,
    )

    try:
        if create_tables:
            await init_db(engine)

        orchestrator = SyncOrchestrator(
            adapter=adapter,
            session_factory=session_factory,
            cache=cache,
            season=config.CURRENT_SEASON,
            fetch_timeout=config.SYNC_FETCH_TIMEOUT,
            cascade_depth=config.SYNC_CASCADE_DEPTH,
            max_concurrency=config.SYNC_MAX_CONCURRENCY,
            cold_ttl=config.CACHE_COLD_TTL,
        )
        reader = EntityReader(
            session_factory=session_factory,
            cache=cache,
            season=config.CURRENT_SEASON,
            cold_ttl=config.CACHE_COLD_TTL,
        )
        logger.info(
            f"{config.APP_NAME} {config.APP_VERSION} ready "
            f"(season {config.CURRENT_SEASON}, environment {config.ENVIRONMENT})"
        )
        yield Pipeline(orchestrator=orchestrator, reader=reader, cache=cache, adapter=adapter)
    finally:
        await adapter.aclose()
        await cache.close()
        await engine.dispose()
