"""
Repository layer for data access.

Usage:
    from fpl_sync.repositories import EntityRepository
    from fpl_sync.services.sync.entities import get_descriptor

    async with session_factory() as session:
        repo = EntityRepository(get_descriptor("team"), session)
        teams = await repo.find_all()
"""

from fpl_sync.repositories.base import BaseRepository
from fpl_sync.repositories.entity_repository import EntityRepository

__all__ = [
    "BaseRepository",
    "EntityRepository",
]
