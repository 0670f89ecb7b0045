"""
Domain records produced by the mappers.

Records are immutable. Identifier fields carry branded types from
``fpl_sync.models.ids`` and have passed their range checks. Nullable upstream
aggregates are already replaced by explicit defaults, so ``0`` always means
zero. Optional fields (``None``) are reserved for values that are genuinely
not known yet, such as the score of a fixture that has not kicked off.

Field names match the table column names one to one. Nested collections
(chip plays, explain blocks, picks) are tuples of frozen items and are
stored as JSON columns.
"""
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Optional, Tuple

from fpl_sync.models.ids import EntryId, EventId, FixtureId, PhaseId, PlayerId, TeamId


def _freeze(record: Any, name: str, item_type: type) -> None:
    """Store a nested collection as a tuple of item_type, accepting plain dicts."""
    names = {f.name for f in fields(item_type)}
    items = tuple(
        item if isinstance(item, item_type) else item_type(**{k: v for k, v in item.items() if k in names})
        for item in getattr(record, name) or ()
    )
    object.__setattr__(record, name, items)


@dataclass(frozen=True)
class ChipPlay:
    chip_name: str
    num_played: int


@dataclass(frozen=True)
class ExplainStat:
    identifier: str
    points: int
    value: int


@dataclass(frozen=True)
class FixtureExplain:
    """Points breakdown of one live element for one fixture."""

    fixture: FixtureId
    stats: Tuple[ExplainStat, ...] = ()

    def __post_init__(self):
        _freeze(self, "stats", ExplainStat)


@dataclass(frozen=True)
class PickItem:
    element_id: PlayerId
    position: int
    multiplier: int
    is_captain: bool
    is_vice_captain: bool


@dataclass(frozen=True)
class TeamRecord:
    id: TeamId
    code: int
    name: str
    short_name: str
    strength: int
    position: int
    played: int
    win: int
    draw: int
    loss: int
    points: int
    form: Optional[str]
    unavailable: bool
    strength_overall_home: int
    strength_overall_away: int
    strength_attack_home: int
    strength_attack_away: int
    strength_defence_home: int
    strength_defence_away: int
    pulse_id: int


@dataclass(frozen=True)
class PlayerRecord:
    id: PlayerId
    code: int
    element_type: int
    team_id: TeamId
    price: int
    start_price: int
    first_name: str
    second_name: str
    web_name: str


@dataclass(frozen=True)
class PhaseRecord:
    id: PhaseId
    name: str
    start_event: EventId
    stop_event: EventId
    highest_score: int


@dataclass(frozen=True)
class EventRecord:
    """A gameweek. Exactly one event per season is flagged current."""

    id: EventId
    name: str
    deadline_time: datetime
    average_entry_score: int
    finished: bool
    data_checked: bool
    highest_score: int
    highest_scoring_entry: int
    is_previous: bool
    is_current: bool
    is_next: bool
    most_selected: int
    most_transferred_in: int
    most_captained: int
    most_vice_captained: int
    top_element: int
    transfers_made: int
    chip_plays: Tuple[ChipPlay, ...] = ()

    def __post_init__(self):
        _freeze(self, "chip_plays", ChipPlay)


@dataclass(frozen=True)
class FixtureRecord:
    id: FixtureId
    code: int
    event_id: EventId
    kickoff_time: Optional[datetime]
    team_h: TeamId
    team_a: TeamId
    team_h_score: Optional[int]
    team_a_score: Optional[int]
    team_h_difficulty: int
    team_a_difficulty: int
    started: bool
    finished: bool
    minutes: int


@dataclass(frozen=True)
class EventLiveRecord:
    """Live points for one player in one event."""

    event_id: EventId
    element_id: PlayerId
    minutes: int
    goals_scored: int
    assists: int
    clean_sheets: int
    goals_conceded: int
    own_goals: int
    penalties_saved: int
    penalties_missed: int
    yellow_cards: int
    red_cards: int
    saves: int
    bonus: int
    bps: int
    total_points: int
    in_dreamteam: bool
    influence: float
    creativity: float
    threat: float
    ict_index: float
    explain: Tuple[FixtureExplain, ...] = ()

    def __post_init__(self):
        _freeze(self, "explain", FixtureExplain)


@dataclass(frozen=True)
class PlayerStatRecord:
    """Season-to-date statistics for one player, snapshotted at an event."""

    event_id: EventId
    element_id: PlayerId
    team_id: TeamId
    element_type: int
    total_points: int
    form: float
    points_per_game: float
    selected_by_percent: float
    minutes: int
    goals_scored: int
    assists: int
    clean_sheets: int
    goals_conceded: int
    bonus: int
    bps: int
    influence: float
    creativity: float
    threat: float
    ict_index: float


@dataclass(frozen=True)
class EntryInfoRecord:
    id: EntryId
    name: str
    player_name: str
    region: Optional[str]
    started_event: EventId
    overall_points: int
    overall_rank: int
    last_event_points: int
    bank: int
    team_value: int


@dataclass(frozen=True)
class EntryHistoryRecord:
    """Final standing of an entry in a past season."""

    entry_id: EntryId
    season: str
    total_points: int
    overall_rank: int


@dataclass(frozen=True)
class EntryEventResultRecord:
    entry_id: EntryId
    event_id: EventId
    points: int
    total_points: int
    rank: int
    overall_rank: int
    bank: int
    value: int
    event_transfers: int
    event_transfers_cost: int
    points_on_bench: int


@dataclass(frozen=True)
class EntryEventPickRecord:
    """The fifteen players an entry picked for one event."""

    entry_id: EntryId
    event_id: EventId
    chip: str  # "n/a" when no chip was active
    transfers: int
    transfers_cost: int
    picks: Tuple[PickItem, ...] = ()

    def __post_init__(self):
        _freeze(self, "picks", PickItem)


@dataclass(frozen=True)
class EntryEventTransferRecord:
    """The latest transfer an entry made in one event."""

    entry_id: EntryId
    event_id: EventId
    element_in_id: PlayerId
    element_in_cost: int
    element_out_id: PlayerId
    element_out_cost: int
    transfer_time: datetime


@dataclass(frozen=True)
class PlayerValueRecord:
    """
    A price change of one player.

    change_date is the UTC sync day as YYYYMMDD. last_value is the price
    before the change, or the current price for the first value recorded.
    """

    element_id: PlayerId
    element_type: int
    event_id: EventId
    value: int
    change_date: str
    change_type: str  # ValueChangeType value
    last_value: int
