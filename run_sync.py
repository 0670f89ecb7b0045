#!/usr/bin/env python3
"""
Manual trigger for FPL sync workflows.

Runs one workflow (or a batch of scoped workflows) and prints the result as
JSON. Scheduled runs use the same entry points through a job runner.

Usage:
    python run_sync.py team                       # Season-wide sync
    python run_sync.py event --scope 5            # One event
    python run_sync.py fixture --scope 1 2 3      # Batch of events
    python run_sync.py event --init-db --cascade-depth 2
    python run_sync.py --list                     # Show entity types
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from fpl_sync.core.config import settings
from fpl_sync.core.logging import configure_logging
from fpl_sync.models.enums import EntityType
from fpl_sync.pipeline import create_pipeline
from fpl_sync.services.sync.entities import ENTITY_REGISTRY

logger = logging.getLogger(__name__)


def list_entity_types() -> None:
    """Print every registered entity type with its scope and policy."""
    for entity_type, descriptor in ENTITY_REGISTRY.items():
        scope = "required" if descriptor.requires_scope else "optional" if descriptor.scope_field else "none"
        print(
            f"  {entity_type.value:<20} scope={descriptor.scope_kind.value:<7} ({scope:<8}) "
            f"{descriptor.conflict_policy.value:<17} {descriptor.sync_strategy.value}"
        )


async def run_sync(entity_type: str, scope_ids: list[int], cascade_depth: int | None, init_db: bool) -> bool:
    async with create_pipeline(create_tables=init_db) as pipeline:
        if len(scope_ids) > 1:
            batch = await pipeline.orchestrator.sync_entity_type_batch(entity_type, scope_ids, cascade_depth)
            print(json.dumps(batch.to_dict(), indent=2, default=str))
            return batch.success

        scope_id = scope_ids[0] if scope_ids else None
        result = await pipeline.orchestrator.sync_entity_type(entity_type, scope_id, cascade_depth=cascade_depth)
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return result.success


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Run an FPL sync workflow'
    )

    parser.add_argument(
        'entity_type',
        nargs='?',
        choices=[e.value for e in EntityType],
        help='Entity type to sync'
    )

    parser.add_argument(
        '--scope',
        type=int,
        nargs='+',
        default=[],
        metavar='ID',
        help='Event or entry id(s); several ids run as a batch'
    )

    parser.add_argument(
        '--cascade-depth',
        type=int,
        default=None,
        help=f'Dependency levels to invalidate (default {settings.SYNC_CASCADE_DEPTH})'
    )

    parser.add_argument(
        '--init-db',
        action='store_true',
        help='Create missing tables before syncing'
    )

    parser.add_argument(
        '--list',
        action='store_true',
        help='List entity types and exit'
    )

    args = parser.parse_args()

    configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    if args.list:
        list_entity_types()
        return 0

    if not args.entity_type:
        parser.error("entity_type is required")

    try:
        ok = asyncio.run(run_sync(args.entity_type, args.scope, args.cascade_depth, args.init_db))
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down...")
        return 130
    except RuntimeError as e:
        logger.error(f"Sync could not start: {e}")
        return 1

    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(main())
