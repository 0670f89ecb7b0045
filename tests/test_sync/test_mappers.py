"""Unit tests for payload-to-record mappers and identifier parsing.

Test Strategy:
1. Test each mapper on a representative upstream payload
2. Test defaulting of nullable aggregates and decimal strings
3. Test invariant violations raise MappingError
4. Test branded identifier ranges and season normalization

Each test follows the pattern:
- Given: A validated payload and a MappingContext
- When: Mapper is called
- Then: Record fields hold the expected values, or MappingError is raised
"""
import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import (
    make_element_payload,
    make_entry_event_payload,
    make_entry_payload,
    make_event_payload,
    make_fixture_payload,
    make_live_element_payload,
    make_picks_payload,
    make_team_payload,
    make_transfer_payload,
)

from fpl_sync.core.errors import MappingError
from fpl_sync.models.domain import ChipPlay, ExplainStat
from fpl_sync.models.enums import EntityType
from fpl_sync.models.ids import is_valid_event_id, parse_element_type, parse_event_id, parse_team_id
from fpl_sync.schemas import fpl as schemas
from fpl_sync.services import mappers
from fpl_sync.services.mappers import MappingContext, normalize_season

SEASON_CONTEXT = MappingContext(season="2425")


class TestIdentifiers:
    """Branded identifier parsing."""

    # parse_*() Tests
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.parametrize("value", [1, 20, 38])
    def test_event_id_in_range(self, value):
        """Should accept event ids 1..38."""
        assert parse_event_id(value) == value

    @pytest.mark.parametrize("value", [0, 39, -1, "5", 5.0, True, None])
    def test_event_id_rejected(self, value):
        """Should reject out-of-range and non-integer event ids."""
        with pytest.raises(MappingError):
            parse_event_id(value)

    def test_team_id_upper_bound(self):
        """Should reject team id 21."""
        assert parse_team_id(20) == 20
        with pytest.raises(MappingError) as exc_info:
            parse_team_id(21)
        assert exc_info.value.details["kind"] == "team id"

    def test_element_type_range(self):
        """Should accept element types 1..5 only."""
        assert parse_element_type(5) == 5
        with pytest.raises(MappingError):
            parse_element_type(6)

    def test_is_valid_event_id(self):
        """Should mirror parse_event_id without raising."""
        assert is_valid_event_id(5) is True
        assert is_valid_event_id(0) is False
        assert is_valid_event_id(False) is False


class TestBootstrapMappers:
    """Mappers for bootstrap-static records."""

    # Team / player Tests
    # ─────────────────────────────────────────────────────────────

    def test_map_team(self):
        """Should copy team fields one to one."""
        payload = schemas.TeamPayload.model_validate(make_team_payload(14, name="Man Utd", short_name="MUN"))

        record = mappers.map_team(payload, SEASON_CONTEXT)

        assert record.id == 14
        assert record.name == "Man Utd"
        assert record.strength_defence_away == 1170

    def test_map_player_start_price(self):
        """Should derive start price from now_cost minus cost_change_start."""
        payload = schemas.ElementPayload.model_validate(make_element_payload(328, now_cost=130, cost_change_start=-2))

        record = mappers.map_player(payload, SEASON_CONTEXT)

        assert record.price == 130
        assert record.start_price == 132

    def test_map_player_missing_cost_change(self):
        """Should treat a null cost change as zero."""
        payload = schemas.ElementPayload.model_validate(make_element_payload(1, cost_change_start=None))

        assert mappers.map_player(payload, SEASON_CONTEXT).start_price == 75

    def test_map_player_invalid_position(self):
        """Should reject an unknown element type."""
        payload = schemas.ElementPayload.model_validate(make_element_payload(1, element_type=9))

        with pytest.raises(MappingError):
            mappers.map_player(payload, SEASON_CONTEXT)

    # Event / phase Tests
    # ─────────────────────────────────────────────────────────────

    def test_map_event_defaults_nullable_aggregates(self):
        """Should turn null aggregates into 0 and parse the deadline as UTC."""
        payload = schemas.EventPayload.model_validate(make_event_payload(1, chip_plays=None))

        record = mappers.map_event(payload, SEASON_CONTEXT)

        assert record.deadline_time == datetime(2024, 8, 16, 17, 30, tzinfo=timezone.utc)
        assert record.highest_score == 0
        assert record.top_element == 0
        assert record.chip_plays == ()

    def test_map_event_chip_plays_are_frozen(self):
        """Should map chip plays to a tuple of ChipPlay items."""
        payload = schemas.EventPayload.model_validate(make_event_payload(1))

        record = mappers.map_event(payload, SEASON_CONTEXT)

        assert record.chip_plays == (ChipPlay(chip_name="wildcard", num_played=1200),)

    def test_map_event_converts_offset_to_utc(self):
        """Should normalize a non-UTC offset to UTC."""
        payload = schemas.EventPayload.model_validate(make_event_payload(2, deadline_time="2024-08-24T11:00:00+01:00"))

        assert mappers.map_event(payload, SEASON_CONTEXT).deadline_time == datetime(2024, 8, 24, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("deadline", [None, "", "next saturday"])
    def test_map_event_requires_deadline(self, deadline):
        """Should reject a missing or unparsable deadline."""
        payload = schemas.EventPayload.model_validate(make_event_payload(3, deadline_time=deadline))

        with pytest.raises(MappingError):
            mappers.map_event(payload, SEASON_CONTEXT)

    def test_map_phase_rejects_inverted_range(self):
        """Should reject a phase that starts after it stops."""
        payload = schemas.PhasePayload.model_validate(
            {"id": 3, "name": "September", "start_event": 8, "stop_event": 4}
        )

        with pytest.raises(MappingError):
            mappers.map_phase(payload, SEASON_CONTEXT)

    def test_map_player_stat_uses_scope_and_decimals(self):
        """Should stamp the scoping event and parse decimal strings."""
        payload = schemas.ElementPayload.model_validate(
            make_element_payload(10, form="", influence=None, selected_by_percent="45.1")
        )

        record = mappers.map_player_stat(payload, MappingContext("2425", scope_id=12))

        assert (record.event_id, record.element_id) == (12, 10)
        assert record.form == 0.0
        assert record.influence == 0.0
        assert record.selected_by_percent == 45.1

    def test_map_player_stat_requires_scope(self):
        """Should refuse to snapshot without an event."""
        payload = schemas.ElementPayload.model_validate(make_element_payload(10))

        with pytest.raises(MappingError):
            mappers.map_player_stat(payload, SEASON_CONTEXT)


class TestScopedMappers:
    """Mappers for event- and entry-scoped endpoints."""

    # Fixture / live Tests
    # ─────────────────────────────────────────────────────────────

    def test_map_fixture_keeps_unknown_scores(self):
        """Should keep scores as None before kickoff."""
        payload = schemas.FixturePayload.model_validate(make_fixture_payload(41, 5, 1, 2, started=None))

        record = mappers.map_fixture(payload, MappingContext("2425", 5))

        assert record.team_h_score is None
        assert record.started is False
        assert record.kickoff_time == datetime(2024, 9, 14, 14, 0, tzinfo=timezone.utc)

    def test_map_fixture_unscheduled_is_rejected(self):
        """Should reject a fixture without an event."""
        payload = schemas.FixturePayload.model_validate(make_fixture_payload(41, None, 1, 2))

        with pytest.raises(MappingError):
            mappers.map_fixture(payload, MappingContext("2425", 5))

    def test_map_fixture_same_teams_is_rejected(self):
        """Should reject a fixture where a team plays itself."""
        payload = schemas.FixturePayload.model_validate(make_fixture_payload(41, 5, 3, 3))

        with pytest.raises(MappingError):
            mappers.map_fixture(payload, MappingContext("2425", 5))

    def test_map_event_live(self):
        """Should flatten live stats and default blank decimals."""
        payload = schemas.LiveElementPayload.model_validate(make_live_element_payload(7, total_points=13, bonus=3))

        record = mappers.map_event_live(payload, MappingContext("2425", 5))

        assert (record.event_id, record.element_id) == (5, 7)
        assert record.total_points == 13
        assert record.bonus == 3
        assert record.influence == 10.2
        assert record.creativity == 0.0
        assert len(record.explain) == 1
        assert record.explain[0].fixture == 41
        assert record.explain[0].stats == (ExplainStat(identifier="minutes", points=2, value=90),)

    # Entry Tests
    # ─────────────────────────────────────────────────────────────

    def test_map_entry_info(self):
        """Should join the manager name and default missing summary values."""
        payload = schemas.EntryPayload.model_validate(make_entry_payload(99, summary_overall_rank=None))

        record = mappers.map_entry_info(payload, MappingContext("2425", 99))

        assert record.player_name == "Sam Rivera"
        assert record.overall_rank == 0
        assert record.team_value == 1012

    def test_map_entry_history_normalizes_season(self):
        """Should store seasons as four characters."""
        payload = schemas.EntryPastSeasonPayload.model_validate(
            {"season_name": "2019/20", "total_points": 2100, "rank": 45000}
        )

        record = mappers.map_entry_history(payload, MappingContext("2425", 99))

        assert (record.entry_id, record.season) == (99, "1920")

    def test_map_entry_event_result(self):
        """Should default a missing rank to 0."""
        payload = schemas.EntryEventHistoryPayload.model_validate(make_entry_event_payload(3, points=80))

        record = mappers.map_entry_event_result(payload, MappingContext("2425", 99))

        assert (record.entry_id, record.event_id, record.points, record.rank) == (99, 3, 80, 0)

    def test_map_entry_event_pick(self):
        """Should map picks in position order and default the chip to n/a."""
        payload = schemas.EntryEventPicksPayload.model_validate({**make_picks_payload(5), "entry": 99})

        record = mappers.map_entry_event_pick(payload, MappingContext("2425", 5))

        assert (record.entry_id, record.event_id, record.chip) == (99, 5, "n/a")
        assert (record.transfers, record.transfers_cost) == (1, 0)
        assert [p.position for p in record.picks] == list(range(1, 16))
        captain = next(p for p in record.picks if p.is_captain)
        assert (captain.element_id, captain.multiplier) == (3, 2)

    def test_map_entry_event_pick_keeps_active_chip(self):
        """Should carry the active chip name."""
        payload = schemas.EntryEventPicksPayload.model_validate(
            {**make_picks_payload(5, active_chip="bboost"), "entry": 99}
        )

        assert mappers.map_entry_event_pick(payload, MappingContext("2425", 5)).chip == "bboost"

    def test_map_entry_event_pick_rejects_bad_position(self):
        """Should reject a pick outside the fifteen squad positions."""
        document = make_picks_payload(5)
        document["picks"][0]["position"] = 16
        payload = schemas.EntryEventPicksPayload.model_validate({**document, "entry": 99})

        with pytest.raises(MappingError):
            mappers.map_entry_event_pick(payload, MappingContext("2425", 5))

    def test_map_entry_event_transfer(self):
        """Should map both sides of a transfer and parse its time as UTC."""
        payload = schemas.TransferPayload.model_validate(
            make_transfer_payload(99, 4, element_in=10, element_out=20, time="2024-09-13T18:02:11.511Z")
        )

        record = mappers.map_entry_event_transfer(payload, MappingContext("2425", 99))

        assert (record.entry_id, record.event_id) == (99, 4)
        assert (record.element_in_id, record.element_out_id) == (10, 20)
        assert record.transfer_time.tzinfo == timezone.utc

    # Player value Tests
    # ─────────────────────────────────────────────────────────────

    def test_map_player_value_starts_at_current_price(self):
        """Should stamp the event and sync day and start from the current price."""
        payload = schemas.ElementPayload.model_validate(make_element_payload(1))
        context = MappingContext("2425", 4, sync_date=date(2024, 9, 13))

        record = mappers.map_player_value(payload, context)

        assert (record.element_id, record.event_id, record.change_date) == (1, 4, "20240913")
        assert (record.value, record.last_value, record.change_type) == (75, 75, "start")

    def test_map_player_value_requires_sync_date(self):
        """Should refuse to map a price without the sync day."""
        payload = schemas.ElementPayload.model_validate(make_element_payload(1))

        with pytest.raises(MappingError):
            mappers.map_player_value(payload, MappingContext("2425", 4))

    @pytest.mark.parametrize("label,expected", [("2023/24", "2324"), ("2324", "2324"), ("23/24", "2324"), ("2023-24", "2324")])
    def test_normalize_season(self, label, expected):
        """Should accept the common season label spellings."""
        assert normalize_season(label) == expected

    def test_normalize_season_rejects_garbage(self):
        """Should raise for labels that are not seasons."""
        with pytest.raises(MappingError):
            normalize_season("last year")

    def test_entity_type_parse(self):
        """Should accept enum members, values and loose spellings."""
        assert EntityType.parse(EntityType.FIXTURE) is EntityType.FIXTURE
        assert EntityType.parse("Event-Live") is EntityType.EVENT_LIVE
        with pytest.raises(ValueError):
            EntityType.parse("gameweek")
