"""
Mappers from validated FPL payloads to domain records.

Every mapper has the signature ``mapper(payload, context) -> record`` and is
pure: no I/O, no clock, no shared state. Invariant violations raise
``MappingError`` with a readable reason.

Defaulting rules:
- Nullable numeric aggregates (scores, counts, ranks) become ``0``
- Nullable decimal strings ("form", "influence") become ``0.0``, including ""
- Nullable lists become ``()``
- Optional timestamps become ``None``; required timestamps raise
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from fpl_sync.core.errors import MappingError
from fpl_sync.models.domain import (
    ChipPlay,
    EntryEventPickRecord,
    EntryEventResultRecord,
    EntryEventTransferRecord,
    EntryHistoryRecord,
    EntryInfoRecord,
    EventLiveRecord,
    EventRecord,
    ExplainStat,
    FixtureExplain,
    FixtureRecord,
    PhaseRecord,
    PickItem,
    PlayerRecord,
    PlayerStatRecord,
    PlayerValueRecord,
    TeamRecord,
)
from fpl_sync.models.enums import ValueChangeType
from fpl_sync.models.ids import (
    parse_element_type,
    parse_entry_id,
    parse_event_id,
    parse_fixture_id,
    parse_phase_id,
    parse_player_id,
    parse_team_id,
)
from fpl_sync.schemas.fpl import (
    ElementPayload,
    EntryEventHistoryPayload,
    EntryEventPicksPayload,
    EntryPastSeasonPayload,
    EntryPayload,
    EventPayload,
    FixturePayload,
    LiveElementPayload,
    PhasePayload,
    PickPayload,
    TeamPayload,
    TransferPayload,
)

_SEASON_LABEL = re.compile(r"^(\d{2})?(\d{2})[/-](\d{2})$")

SQUAD_SIZE = 15
NO_CHIP = "n/a"


@dataclass(frozen=True)
class MappingContext:
    """
    Values a mapper needs that the payload itself does not carry.

    Attributes:
        season: Four-character season label (e.g. "2425")
        scope_id: Event or entry id the batch was fetched for, if any
        sync_date: UTC day of the sync run, for records stamped by day
    """
    season: str
    scope_id: Optional[int] = None
    sync_date: Optional[date] = None

    def require_scope(self, what: str) -> int:
        if self.scope_id is None:
            raise MappingError(f"{what} requires a scope id")
        return self.scope_id

    def require_sync_date(self, what: str) -> date:
        if self.sync_date is None:
            raise MappingError(f"{what} requires a sync date")
        return self.sync_date


# =============================================================================
# Value helpers
# =============================================================================

def _count(value: Optional[int]) -> int:
    return value if value is not None else 0


def _decimal(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _parse_timestamp(value: Optional[str], field_name: str, required: bool) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp (FPL uses a trailing 'Z') into UTC."""
    if not value:
        if required:
            raise MappingError(f"Missing required timestamp: {field_name}")
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        if required:
            raise MappingError(
                f"Unparsable timestamp for {field_name}: {value!r}", cause=e
            ) from e
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_season(label: str) -> str:
    """
    Normalize a season label to four characters.

    >>> normalize_season("2023/24")
    '2324'
    >>> normalize_season("2425")
    '2425'
    """
    label = label.strip()
    if len(label) == 4 and label.isdigit():
        return label
    match = _SEASON_LABEL.match(label)
    if not match:
        raise MappingError(f"Unrecognized season label: {label!r}")
    return f"{match.group(2)}{match.group(3)}"


# =============================================================================
# bootstrap-static
# =============================================================================

def map_team(payload: TeamPayload, context: MappingContext) -> TeamRecord:
    return TeamRecord(
        id=parse_team_id(payload.id),
        code=payload.code,
        name=payload.name,
        short_name=payload.short_name,
        strength=payload.strength,
        position=payload.position,
        played=payload.played,
        win=payload.win,
        draw=payload.draw,
        loss=payload.loss,
        points=payload.points,
        form=payload.form,
        unavailable=payload.unavailable,
        strength_overall_home=payload.strength_overall_home,
        strength_overall_away=payload.strength_overall_away,
        strength_attack_home=payload.strength_attack_home,
        strength_attack_away=payload.strength_attack_away,
        strength_defence_home=payload.strength_defence_home,
        strength_defence_away=payload.strength_defence_away,
        pulse_id=payload.pulse_id,
    )


def map_player(payload: ElementPayload, context: MappingContext) -> PlayerRecord:
    # now_cost is in tenths of a million; cost_change_start is relative to it
    return PlayerRecord(
        id=parse_player_id(payload.id),
        code=payload.code,
        element_type=parse_element_type(payload.element_type),
        team_id=parse_team_id(payload.team),
        price=payload.now_cost,
        start_price=payload.now_cost - _count(payload.cost_change_start),
        first_name=payload.first_name,
        second_name=payload.second_name,
        web_name=payload.web_name,
    )


def map_phase(payload: PhasePayload, context: MappingContext) -> PhaseRecord:
    start_event = parse_event_id(payload.start_event)
    stop_event = parse_event_id(payload.stop_event)
    if start_event > stop_event:
        raise MappingError(
            f"Phase {payload.id} starts after it stops ({start_event} > {stop_event})"
        )
    return PhaseRecord(
        id=parse_phase_id(payload.id),
        name=payload.name,
        start_event=start_event,
        stop_event=stop_event,
        highest_score=_count(payload.highest_score),
    )


def map_event(payload: EventPayload, context: MappingContext) -> EventRecord:
    return EventRecord(
        id=parse_event_id(payload.id),
        name=payload.name,
        deadline_time=_parse_timestamp(payload.deadline_time, "deadline_time", required=True),
        average_entry_score=_count(payload.average_entry_score),
        finished=payload.finished,
        data_checked=payload.data_checked,
        highest_score=_count(payload.highest_score),
        highest_scoring_entry=_count(payload.highest_scoring_entry),
        is_previous=payload.is_previous,
        is_current=payload.is_current,
        is_next=payload.is_next,
        most_selected=_count(payload.most_selected),
        most_transferred_in=_count(payload.most_transferred_in),
        most_captained=_count(payload.most_captained),
        most_vice_captained=_count(payload.most_vice_captained),
        top_element=_count(payload.top_element),
        transfers_made=_count(payload.transfers_made),
        chip_plays=tuple(
            ChipPlay(chip_name=chip.chip_name, num_played=chip.num_played)
            for chip in payload.chip_plays or ()
        ),
    )


def map_player_stat(payload: ElementPayload, context: MappingContext) -> PlayerStatRecord:
    """Snapshot an element's season totals against the event in context."""
    return PlayerStatRecord(
        event_id=parse_event_id(context.require_scope("player stats")),
        element_id=parse_player_id(payload.id),
        team_id=parse_team_id(payload.team),
        element_type=parse_element_type(payload.element_type),
        total_points=_count(payload.total_points),
        form=_decimal(payload.form),
        points_per_game=_decimal(payload.points_per_game),
        selected_by_percent=_decimal(payload.selected_by_percent),
        minutes=_count(payload.minutes),
        goals_scored=_count(payload.goals_scored),
        assists=_count(payload.assists),
        clean_sheets=_count(payload.clean_sheets),
        goals_conceded=_count(payload.goals_conceded),
        bonus=_count(payload.bonus),
        bps=_count(payload.bps),
        influence=_decimal(payload.influence),
        creativity=_decimal(payload.creativity),
        threat=_decimal(payload.threat),
        ict_index=_decimal(payload.ict_index),
    )


def map_player_value(payload: ElementPayload, context: MappingContext) -> PlayerValueRecord:
    """
    Record an element's current price for the event and day in context.

    The record is a first value (``start``) until it is compared with the
    latest stored value before persisting.
    """
    return PlayerValueRecord(
        element_id=parse_player_id(payload.id),
        element_type=parse_element_type(payload.element_type),
        event_id=parse_event_id(context.require_scope("player values")),
        value=payload.now_cost,
        change_date=context.require_sync_date("player values").strftime("%Y%m%d"),
        change_type=ValueChangeType.START.value,
        last_value=payload.now_cost,
    )


# =============================================================================
# Event-scoped endpoints
# =============================================================================

def map_fixture(payload: FixturePayload, context: MappingContext) -> FixtureRecord:
    if payload.event is None:
        raise MappingError(f"Fixture {payload.id} is not scheduled to an event")
    team_h = parse_team_id(payload.team_h)
    team_a = parse_team_id(payload.team_a)
    if team_h == team_a:
        raise MappingError(f"Fixture {payload.id} has the same home and away team")
    return FixtureRecord(
        id=parse_fixture_id(payload.id),
        code=payload.code,
        event_id=parse_event_id(payload.event),
        kickoff_time=_parse_timestamp(payload.kickoff_time, "kickoff_time", required=False),
        team_h=team_h,
        team_a=team_a,
        team_h_score=payload.team_h_score,
        team_a_score=payload.team_a_score,
        team_h_difficulty=payload.team_h_difficulty,
        team_a_difficulty=payload.team_a_difficulty,
        started=bool(payload.started),
        finished=payload.finished,
        minutes=payload.minutes,
    )


def map_event_live(payload: LiveElementPayload, context: MappingContext) -> EventLiveRecord:
    stats = payload.stats
    return EventLiveRecord(
        event_id=parse_event_id(context.require_scope("live stats")),
        element_id=parse_player_id(payload.id),
        minutes=stats.minutes,
        goals_scored=stats.goals_scored,
        assists=stats.assists,
        clean_sheets=stats.clean_sheets,
        goals_conceded=stats.goals_conceded,
        own_goals=stats.own_goals,
        penalties_saved=stats.penalties_saved,
        penalties_missed=stats.penalties_missed,
        yellow_cards=stats.yellow_cards,
        red_cards=stats.red_cards,
        saves=stats.saves,
        bonus=stats.bonus,
        bps=stats.bps,
        total_points=stats.total_points,
        in_dreamteam=stats.in_dreamteam,
        influence=_decimal(stats.influence),
        creativity=_decimal(stats.creativity),
        threat=_decimal(stats.threat),
        ict_index=_decimal(stats.ict_index),
        explain=tuple(
            FixtureExplain(
                fixture=parse_fixture_id(block.fixture),
                stats=tuple(
                    ExplainStat(identifier=stat.identifier, points=stat.points, value=stat.value)
                    for stat in block.stats
                ),
            )
            for block in payload.explain or ()
        ),
    )


# =============================================================================
# Entry-scoped endpoints
# =============================================================================

def map_entry_info(payload: EntryPayload, context: MappingContext) -> EntryInfoRecord:
    return EntryInfoRecord(
        id=parse_entry_id(payload.id),
        name=payload.name,
        player_name=f"{payload.player_first_name} {payload.player_last_name}".strip(),
        region=payload.player_region_name,
        started_event=parse_event_id(payload.started_event),
        overall_points=_count(payload.summary_overall_points),
        overall_rank=_count(payload.summary_overall_rank),
        last_event_points=_count(payload.summary_event_points),
        bank=_count(payload.last_deadline_bank),
        team_value=_count(payload.last_deadline_value),
    )


def map_entry_history(payload: EntryPastSeasonPayload, context: MappingContext) -> EntryHistoryRecord:
    return EntryHistoryRecord(
        entry_id=parse_entry_id(context.require_scope("entry history")),
        season=normalize_season(payload.season_name),
        total_points=payload.total_points,
        overall_rank=_count(payload.rank),
    )


def map_entry_event_result(
    payload: EntryEventHistoryPayload, context: MappingContext
) -> EntryEventResultRecord:
    return EntryEventResultRecord(
        entry_id=parse_entry_id(context.require_scope("entry event results")),
        event_id=parse_event_id(payload.event),
        points=payload.points,
        total_points=payload.total_points,
        rank=_count(payload.rank),
        overall_rank=_count(payload.overall_rank),
        bank=payload.bank,
        value=payload.value,
        event_transfers=payload.event_transfers,
        event_transfers_cost=payload.event_transfers_cost,
        points_on_bench=payload.points_on_bench,
    )


def _map_pick(payload: PickPayload) -> PickItem:
    if not 1 <= payload.position <= SQUAD_SIZE:
        raise MappingError(f"Pick position {payload.position} is outside 1..{SQUAD_SIZE}")
    return PickItem(
        element_id=parse_player_id(payload.element),
        position=payload.position,
        multiplier=payload.multiplier,
        is_captain=payload.is_captain,
        is_vice_captain=payload.is_vice_captain,
    )


def map_entry_event_pick(payload: EntryEventPicksPayload, context: MappingContext) -> EntryEventPickRecord:
    summary = payload.entry_history
    return EntryEventPickRecord(
        entry_id=parse_entry_id(payload.entry),
        event_id=parse_event_id(summary.event),
        chip=payload.active_chip or NO_CHIP,
        transfers=summary.event_transfers,
        transfers_cost=summary.event_transfers_cost,
        picks=tuple(sorted((_map_pick(pick) for pick in payload.picks), key=lambda pick: pick.position)),
    )


def map_entry_event_transfer(payload: TransferPayload, context: MappingContext) -> EntryEventTransferRecord:
    return EntryEventTransferRecord(
        entry_id=parse_entry_id(payload.entry),
        event_id=parse_event_id(payload.event),
        element_in_id=parse_player_id(payload.element_in),
        element_in_cost=payload.element_in_cost,
        element_out_id=parse_player_id(payload.element_out),
        element_out_cost=payload.element_out_cost,
        transfer_time=_parse_timestamp(payload.time, "time", required=True),
    )
