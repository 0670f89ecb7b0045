"""Shared pytest fixtures for fpl-sync tests."""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fpl_sync.cache.backends import InMemoryCacheBackend
from fpl_sync.cache.store import CacheStore
from fpl_sync.core.database import create_engine_for_url, create_session_factory, init_db
from fpl_sync.services.entity_reader import EntityReader
from fpl_sync.services.sync.orchestrator import SyncOrchestrator

SEASON = "2425"
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
SEASON_START = datetime(2024, 8, 16, 17, 30, tzinfo=timezone.utc)


# =============================================================================
# Payload factories (shaped like the FPL API responses)
# =============================================================================

def make_team_payload(team_id: int, **overrides) -> Dict[str, Any]:
    payload = {
        "id": team_id,
        "code": 100 + team_id,
        "name": f"Team {team_id}",
        "short_name": f"T{team_id:02d}",
        "strength": 3,
        "position": team_id,
        "played": 10,
        "win": 5,
        "draw": 3,
        "loss": 2,
        "points": 18,
        "form": None,
        "unavailable": False,
        "strength_overall_home": 1200,
        "strength_overall_away": 1180,
        "strength_attack_home": 1210,
        "strength_attack_away": 1190,
        "strength_defence_home": 1220,
        "strength_defence_away": 1170,
        "pulse_id": 1000 + team_id,
    }
    payload.update(overrides)
    return payload


def make_element_payload(element_id: int, team_id: int = 1, **overrides) -> Dict[str, Any]:
    payload = {
        "id": element_id,
        "code": 50000 + element_id,
        "element_type": 3,
        "team": team_id,
        "now_cost": 75,
        "cost_change_start": 5,
        "first_name": "Player",
        "second_name": f"Number{element_id}",
        "web_name": f"P{element_id}",
        "total_points": 40,
        "form": "5.5",
        "points_per_game": "4.4",
        "selected_by_percent": "12.3",
        "minutes": 810,
        "goals_scored": 3,
        "assists": 2,
        "clean_sheets": 1,
        "goals_conceded": 9,
        "bonus": 4,
        "bps": 160,
        "influence": "210.4",
        "creativity": "180.2",
        "threat": "150.0",
        "ict_index": "54.1",
    }
    payload.update(overrides)
    return payload


def make_event_payload(event_id: int, **overrides) -> Dict[str, Any]:
    payload = {
        "id": event_id,
        "name": f"Gameweek {event_id}",
        "deadline_time": (SEASON_START + timedelta(days=7 * (event_id - 1))).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "average_entry_score": 50,
        "finished": False,
        "data_checked": False,
        "highest_score": None,
        "highest_scoring_entry": None,
        "is_previous": False,
        "is_current": False,
        "is_next": False,
        "most_selected": 328,
        "most_transferred_in": None,
        "most_captained": 351,
        "most_vice_captained": 328,
        "top_element": None,
        "transfers_made": 0,
        "chip_plays": [{"chip_name": "wildcard", "num_played": 1200}],
    }
    payload.update(overrides)
    return payload


def make_fixture_payload(fixture_id: int, event_id: Optional[int], team_h: int, team_a: int, **overrides) -> Dict[str, Any]:
    payload = {
        "id": fixture_id,
        "code": 2444000 + fixture_id,
        "event": event_id,
        "kickoff_time": "2024-09-14T14:00:00Z",
        "team_h": team_h,
        "team_a": team_a,
        "team_h_score": None,
        "team_a_score": None,
        "team_h_difficulty": 3,
        "team_a_difficulty": 2,
        "started": False,
        "finished": False,
        "minutes": 0,
    }
    payload.update(overrides)
    return payload


def make_live_element_payload(element_id: int, total_points: int = 2, **stat_overrides) -> Dict[str, Any]:
    stats = {
        "minutes": 90,
        "goals_scored": 0,
        "assists": 0,
        "clean_sheets": 0,
        "goals_conceded": 1,
        "own_goals": 0,
        "penalties_saved": 0,
        "penalties_missed": 0,
        "yellow_cards": 0,
        "red_cards": 0,
        "saves": 0,
        "bonus": 0,
        "bps": 12,
        "total_points": total_points,
        "in_dreamteam": False,
        "influence": "10.2",
        "creativity": "",
        "threat": None,
        "ict_index": "1.9",
    }
    stats.update(stat_overrides)
    return {
        "id": element_id,
        "stats": stats,
        "explain": [{"fixture": 41, "stats": [{"identifier": "minutes", "points": 2, "value": 90}]}],
    }


def make_entry_payload(entry_id: int, **overrides) -> Dict[str, Any]:
    payload = {
        "id": entry_id,
        "name": "Expected Toulouse",
        "player_first_name": "Sam",
        "player_last_name": "Rivera",
        "player_region_name": "England",
        "started_event": 1,
        "summary_overall_points": 412,
        "summary_overall_rank": 120345,
        "summary_event_points": 61,
        "last_deadline_bank": 5,
        "last_deadline_value": 1012,
    }
    payload.update(overrides)
    return payload


def make_entry_history_payload(past: List[Dict[str, Any]], current: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"past": past, "current": current, "chips": []}


def make_entry_event_payload(event_id: int, points: int = 55, **overrides) -> Dict[str, Any]:
    payload = {
        "event": event_id,
        "points": points,
        "total_points": points * event_id,
        "rank": None,
        "overall_rank": 250000,
        "bank": 5,
        "value": 1000,
        "event_transfers": 1,
        "event_transfers_cost": 0,
        "points_on_bench": 4,
    }
    payload.update(overrides)
    return payload


def make_picks_payload(event_id: int, active_chip: Optional[str] = None, captain: int = 3) -> Dict[str, Any]:
    """entry/{id}/event/{event}/picks/ without the entry id (upstream does not echo it)."""
    return {
        "active_chip": active_chip,
        "automatic_subs": [],
        "entry_history": {"event": event_id, "event_transfers": 1, "event_transfers_cost": 0, "points": 61},
        "picks": [
            {
                "element": element_id,
                "position": position,
                "multiplier": (2 if element_id == captain else 1) if position <= 11 else 0,
                "is_captain": element_id == captain,
                "is_vice_captain": False,
                "element_type": 3,
            }
            for position, element_id in enumerate(range(1, 16), start=1)
        ],
    }


def make_transfer_payload(entry_id: int, event_id: int, element_in: int, element_out: int, time: str) -> Dict[str, Any]:
    return {
        "element_in": element_in,
        "element_in_cost": 55,
        "element_out": element_out,
        "element_out_cost": 60,
        "entry": entry_id,
        "event": event_id,
        "time": time,
    }


def make_bootstrap(
    teams: Optional[List[Dict[str, Any]]] = None,
    elements: Optional[List[Dict[str, Any]]] = None,
    events: Optional[List[Dict[str, Any]]] = None,
    phases: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    return {
        "teams": teams if teams is not None else [make_team_payload(i) for i in range(1, 21)],
        "elements": elements if elements is not None else [],
        "events": events if events is not None else [make_event_payload(i) for i in range(1, 39)],
        "phases": phases if phases is not None else [
            {"id": 1, "name": "Overall", "start_event": 1, "stop_event": 38, "highest_score": None},
            {"id": 2, "name": "August", "start_event": 1, "stop_event": 3, "highest_score": 212},
        ],
    }


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def engine():
    """Fresh in-memory SQLite database with every table created."""
    test_engine = create_engine_for_url(TEST_DATABASE_URL)
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator:
    async with session_factory() as session:
        yield session


class SeededCacheBackend(InMemoryCacheBackend):
    """In-memory backend that can be seeded with arbitrary entries."""

    def raw_set(self, key: str, fields: Dict[str, str]) -> None:
        """Write fields verbatim, bypassing serialization and TTL."""
        self._store[key] = (dict(fields), None)


@pytest.fixture
def cache_backend() -> SeededCacheBackend:
    return SeededCacheBackend()


@pytest.fixture
def cache_store(cache_backend) -> CacheStore:
    return CacheStore(cache_backend)


@pytest.fixture
def mock_adapter() -> AsyncMock:
    """Adapter returning a full bootstrap document and no scoped data."""
    adapter = AsyncMock()
    adapter.get_bootstrap_static.return_value = make_bootstrap()
    adapter.get_fixtures.return_value = []
    adapter.get_event_live.return_value = {"elements": []}
    adapter.get_entry.return_value = make_entry_payload(1)
    adapter.get_entry_history.return_value = make_entry_history_payload([], [])
    adapter.get_entry_event_picks.return_value = make_picks_payload(1)
    adapter.get_entry_transfers.return_value = []
    return adapter


@pytest.fixture
def orchestrator(mock_adapter, session_factory, cache_store) -> SyncOrchestrator:
    # One connection backs the in-memory database, so workflows run one at a time
    return SyncOrchestrator(
        adapter=mock_adapter,
        session_factory=session_factory,
        cache=cache_store,
        season=SEASON,
        fetch_timeout=5.0,
        max_concurrency=1,
    )


@pytest.fixture
def reader(session_factory, cache_store) -> EntityReader:
    return EntityReader(session_factory=session_factory, cache=cache_store, season=SEASON)
