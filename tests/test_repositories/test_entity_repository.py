"""Tests for EntityRepository.

Test Strategy:
1. Test save_batch() inserts and returns rows ordered by natural key
2. Test insert-or-update and insert-or-ignore conflict resolution
3. Test duplicate keys within one batch
4. Test scoped reads, deletes and the find helpers (including latest per group)
5. Test nested items survive the JSON columns as tuples
6. Test SQLAlchemy failures surface as PersistenceError

Each test follows the pattern:
- Given: Empty in-memory database (plus parent rows where needed)
- When: Repository method is called
- Then: Returned records and stored rows are as expected
"""
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from fpl_sync.core.errors import PersistenceError, PersistenceErrorCode
from fpl_sync.models.domain import (
    ChipPlay,
    EventLiveRecord,
    EventRecord,
    ExplainStat,
    FixtureExplain,
    FixtureRecord,
    PlayerValueRecord,
    TeamRecord,
)
from fpl_sync.models.enums import EntityType
from fpl_sync.repositories.entity_repository import EntityRepository
from fpl_sync.services.sync.entities import get_descriptor


def team(team_id: int, points: int = 10) -> TeamRecord:
    return TeamRecord(
        id=team_id, code=100 + team_id, name=f"Team {team_id}", short_name=f"T{team_id:02d}",
        strength=3, position=team_id, played=5, win=3, draw=1, loss=1, points=points,
        form=None, unavailable=False,
        strength_overall_home=1200, strength_overall_away=1200,
        strength_attack_home=1200, strength_attack_away=1200,
        strength_defence_home=1200, strength_defence_away=1200,
        pulse_id=team_id,
    )


def event(event_id: int) -> EventRecord:
    return EventRecord(
        id=event_id, name=f"Gameweek {event_id}",
        deadline_time=datetime(2024, 8, 16, 17, 30, tzinfo=timezone.utc),
        average_entry_score=0, finished=False, data_checked=False, highest_score=0,
        highest_scoring_entry=0, is_previous=False, is_current=False, is_next=False,
        most_selected=0, most_transferred_in=0, most_captained=0, most_vice_captained=0,
        top_element=0, transfers_made=0, chip_plays=(),
    )


def fixture(fixture_id: int, event_id: int, minutes: int = 0) -> FixtureRecord:
    return FixtureRecord(
        id=fixture_id, code=9000 + fixture_id, event_id=event_id,
        kickoff_time=datetime(2024, 9, 14, 14, 0, tzinfo=timezone.utc),
        team_h=1, team_a=2, team_h_score=None, team_a_score=None,
        team_h_difficulty=3, team_a_difficulty=3, started=False, finished=False, minutes=minutes,
    )


def live(event_id: int, element_id: int, total_points: int) -> EventLiveRecord:
    return EventLiveRecord(
        event_id=event_id, element_id=element_id, minutes=90, goals_scored=0, assists=0,
        clean_sheets=0, goals_conceded=0, own_goals=0, penalties_saved=0, penalties_missed=0,
        yellow_cards=0, red_cards=0, saves=0, bonus=0, bps=0, total_points=total_points,
        in_dreamteam=False, influence=0.0, creativity=0.0, threat=0.0, ict_index=0.0, explain=(),
    )


def player_value(element_id: int, change_date: str, value: int) -> PlayerValueRecord:
    return PlayerValueRecord(
        element_id=element_id, element_type=3, event_id=1, value=value,
        change_date=change_date, change_type="start", last_value=value,
    )


@pytest.fixture
def team_repo(db_session):
    return EntityRepository(get_descriptor(EntityType.TEAM), db_session)


@pytest.fixture
async def events_saved(db_session):
    repo = EntityRepository(get_descriptor(EntityType.EVENT), db_session)
    await repo.save_batch([event(i) for i in range(1, 6)])
    return repo


class TestSaveBatch:
    """Batch writes and conflict policies."""

    # Insert Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_save_batch_returns_rows_in_key_order(self, team_repo):
        """Should insert every record and return them ordered by id."""
        saved = await team_repo.save_batch([team(3), team(1), team(2)])

        assert [t.id for t in saved] == [1, 2, 3]
        assert saved[0] == team(1)

    @pytest.mark.asyncio
    async def test_save_empty_batch_is_a_no_op(self, team_repo):
        """Should accept an empty batch."""
        assert await team_repo.save_batch([]) == []

    @pytest.mark.asyncio
    async def test_timestamps_come_back_in_utc(self, events_saved):
        """Should return timezone-aware UTC datetimes."""
        stored = await events_saved.find_by_id(1)

        assert stored.deadline_time == datetime(2024, 8, 16, 17, 30, tzinfo=timezone.utc)
        assert stored.deadline_time.tzinfo is not None

    @pytest.mark.asyncio
    async def test_large_batch_is_written_in_chunks(self, db_session, events_saved):
        """Should write batches larger than CHUNK_SIZE."""
        repo = EntityRepository(get_descriptor(EntityType.EVENT_LIVE), db_session)
        repo.CHUNK_SIZE = 7

        saved = await repo.save_batch([live(5, i, 1) for i in range(1, 31)])

        assert len(saved) == 30

    # Conflict policy Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_insert_or_update_overwrites_non_key_columns(self, team_repo):
        """Should replace existing rows with the new values."""
        await team_repo.save_batch([team(1, points=10), team(2, points=10)])

        saved = await team_repo.save_batch([team(1, points=25)])

        assert [(t.id, t.points) for t in saved] == [(1, 25), (2, 10)]

    @pytest.mark.asyncio
    async def test_insert_or_update_on_composite_key(self, db_session, events_saved):
        """Should resolve conflicts on (event_id, element_id)."""
        repo = EntityRepository(get_descriptor(EntityType.EVENT_LIVE), db_session)
        await repo.save_batch([live(5, 1, 2), live(5, 2, 6)])

        saved = await repo.save_batch([live(5, 1, 8)])

        assert [(r.element_id, r.total_points) for r in saved] == [(1, 8), (2, 6)]

    @pytest.mark.asyncio
    async def test_insert_or_ignore_keeps_existing_rows(self, db_session, events_saved):
        """Should leave an existing fixture untouched and add new ones."""
        repo = EntityRepository(get_descriptor(EntityType.FIXTURE), db_session)
        await repo.save_batch([fixture(1, 5, minutes=0)])

        saved = await repo.save_batch([fixture(1, 5, minutes=90), fixture(2, 5)])

        assert [(f.id, f.minutes) for f in saved] == [(1, 0), (2, 0)]

    @pytest.mark.asyncio
    async def test_duplicate_keys_in_batch_keep_last_for_update(self, team_repo):
        """Should apply the last occurrence of a duplicated key under insert-or-update."""
        saved = await team_repo.save_batch([team(1, points=1), team(1, points=2)])

        assert [(t.id, t.points) for t in saved] == [(1, 2)]

    @pytest.mark.asyncio
    async def test_duplicate_keys_in_batch_keep_first_for_ignore(self, db_session, events_saved):
        """Should apply the first occurrence of a duplicated key under insert-or-ignore."""
        repo = EntityRepository(get_descriptor(EntityType.FIXTURE), db_session)

        saved = await repo.save_batch([fixture(1, 5, minutes=10), fixture(1, 5, minutes=20)])

        assert [(f.id, f.minutes) for f in saved] == [(1, 10)]

    # Failure Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_foreign_key_violation_is_persistence_error(self, db_session):
        """Should raise CONSTRAINT_VIOLATION when the parent event is missing."""
        repo = EntityRepository(get_descriptor(EntityType.FIXTURE), db_session)

        with pytest.raises(PersistenceError) as exc_info:
            await repo.save_batch([fixture(1, 5)])

        assert exc_info.value.code == PersistenceErrorCode.CONSTRAINT_VIOLATION
        assert exc_info.value.operation == "fixtures.save_batch"
        assert exc_info.value.cause is not None

    @pytest.mark.asyncio
    async def test_session_usable_after_failure(self, db_session, team_repo):
        """Should roll back so the same session can keep working."""
        fixtures = EntityRepository(get_descriptor(EntityType.FIXTURE), db_session)
        with pytest.raises(PersistenceError):
            await fixtures.save_batch([fixture(1, 5)])

        saved = await team_repo.save_batch([team(1)])

        assert len(saved) == 1


class TestReadsAndDeletes:
    """Find helpers and scoped deletes."""

    # Read Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_find_by_id(self, team_repo):
        """Should find by scalar id and return None when absent."""
        await team_repo.save_batch([team(4)])

        assert (await team_repo.find_by_id(4)).id == 4
        assert await team_repo.find_by_id(5) is None

    @pytest.mark.asyncio
    async def test_find_by_id_composite(self, db_session, events_saved):
        """Should find by (event_id, element_id) tuple."""
        repo = EntityRepository(get_descriptor(EntityType.EVENT_LIVE), db_session)
        await repo.save_batch([live(5, 1, 2), live(4, 1, 3)])

        assert (await repo.find_by_id((4, 1))).total_points == 3

    @pytest.mark.asyncio
    async def test_find_by_scope_and_by_field(self, db_session, events_saved):
        """Should filter fixtures by event and by arbitrary column."""
        repo = EntityRepository(get_descriptor(EntityType.FIXTURE), db_session)
        await repo.save_batch([fixture(1, 4), fixture(2, 5), fixture(3, 5)])

        assert [f.id for f in await repo.find_by_scope(5)] == [2, 3]
        assert [f.id for f in await repo.find_by("event_id", 4)] == [1]

    @pytest.mark.asyncio
    async def test_find_by_unknown_column_raises(self, team_repo):
        """Should refuse a column the table does not have."""
        with pytest.raises(ValueError):
            await team_repo.find_by("nickname", "Spurs")

    @pytest.mark.asyncio
    async def test_save_batch_returns_requested_scope(self, db_session, events_saved):
        """Should return only the rows of the given scope."""
        repo = EntityRepository(get_descriptor(EntityType.FIXTURE), db_session)
        await repo.save_batch([fixture(1, 4)])

        saved = await repo.save_batch([], scope_id=5)

        assert saved == []

    @pytest.mark.asyncio
    async def test_find_latest_per_group(self, db_session, events_saved):
        """Should return the newest value of each player keyed by player id."""
        repo = EntityRepository(get_descriptor(EntityType.PLAYER_VALUE), db_session)
        await repo.save_batch([
            player_value(1, "20240801", 50),
            player_value(1, "20240815", 55),
            player_value(2, "20240801", 80),
        ])

        latest = await repo.find_latest("element_id", "change_date")

        assert {element_id: v.value for element_id, v in latest.items()} == {1: 55, 2: 80}
        assert latest[1].change_date == "20240815"

    # Nested JSON Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_nested_items_come_back_as_tuples(self, db_session, events_saved):
        """Should store chip plays and explain blocks as JSON and read back frozen tuples."""
        events = EntityRepository(get_descriptor(EntityType.EVENT), db_session)
        await events.save_batch([replace(event(6), chip_plays=[{"chip_name": "wildcard", "num_played": 3}])])
        lives = EntityRepository(get_descriptor(EntityType.EVENT_LIVE), db_session)
        explained = replace(
            live(5, 1, 2),
            explain=(FixtureExplain(fixture=41, stats=(ExplainStat("minutes", 2, 90),)),),
        )
        await lives.save_batch([explained])

        stored_event = await events.find_by_id(6)
        stored_live = await lives.find_by_id((5, 1))

        assert stored_event.chip_plays == (ChipPlay("wildcard", 3),)
        assert stored_live.explain == explained.explain
        assert isinstance(stored_live.explain[0].stats, tuple)

    # Delete Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_delete_by_scope(self, db_session, events_saved):
        """Should delete only the rows of one event."""
        repo = EntityRepository(get_descriptor(EntityType.FIXTURE), db_session)
        await repo.save_batch([fixture(1, 4), fixture(2, 5), fixture(3, 5)])

        deleted = await repo.delete_by_scope(5)

        assert deleted == 2
        assert [f.id for f in await repo.find_all()] == [1]

    @pytest.mark.asyncio
    async def test_delete_all_without_commit_can_roll_back(self, team_repo):
        """Should leave rows in place when an uncommitted delete is rolled back."""
        await team_repo.save_batch([team(1), team(2)])

        await team_repo.delete_all(commit=False)
        await team_repo.rollback()

        assert len(await team_repo.find_all()) == 2
