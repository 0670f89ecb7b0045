"""
Pydantic models for FPL API payloads.

These describe the structural shape of upstream records only. Unknown fields
are accepted and carried along (``extra="allow"``) so upstream additions do
not break validation. Range checks and defaulting of nullable aggregates
happen in the mappers, not here.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class FplPayload(BaseModel):
    """Base model for every upstream record."""

    model_config = ConfigDict(extra="allow")


# =============================================================================
# bootstrap-static/
# =============================================================================

class TeamPayload(FplPayload):
    id: int
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
    form: Optional[str] = None
    unavailable: bool = False
    strength_overall_home: int
    strength_overall_away: int
    strength_attack_home: int
    strength_attack_away: int
    strength_defence_home: int
    strength_defence_away: int
    pulse_id: int


class ElementPayload(FplPayload):
    """A player ("element") as listed in bootstrap-static."""

    id: int
    code: int
    element_type: int
    team: int
    now_cost: int
    cost_change_start: Optional[int] = None
    first_name: str
    second_name: str
    web_name: str
    total_points: Optional[int] = None
    form: Optional[str] = None
    points_per_game: Optional[str] = None
    selected_by_percent: Optional[str] = None
    minutes: Optional[int] = None
    goals_scored: Optional[int] = None
    assists: Optional[int] = None
    clean_sheets: Optional[int] = None
    goals_conceded: Optional[int] = None
    bonus: Optional[int] = None
    bps: Optional[int] = None
    influence: Optional[str] = None
    creativity: Optional[str] = None
    threat: Optional[str] = None
    ict_index: Optional[str] = None


class PhasePayload(FplPayload):
    id: int
    name: str
    start_event: int
    stop_event: int
    highest_score: Optional[int] = None


class ChipPlayPayload(FplPayload):
    chip_name: str
    num_played: int


class EventPayload(FplPayload):
    id: int
    name: str
    # Required by the domain, but validated by the mapper so that a missing
    # deadline is reported as a mapping failure rather than a shape failure
    deadline_time: Optional[str] = None
    average_entry_score: Optional[int] = None
    finished: bool
    data_checked: bool
    highest_score: Optional[int] = None
    highest_scoring_entry: Optional[int] = None
    is_previous: bool
    is_current: bool
    is_next: bool
    most_selected: Optional[int] = None
    most_transferred_in: Optional[int] = None
    most_captained: Optional[int] = None
    most_vice_captained: Optional[int] = None
    top_element: Optional[int] = None
    transfers_made: Optional[int] = None
    chip_plays: Optional[List[ChipPlayPayload]] = None


# =============================================================================
# fixtures/?event={id}
# =============================================================================

class FixturePayload(FplPayload):
    id: int
    code: int
    event: Optional[int] = None  # null for fixtures not yet scheduled
    kickoff_time: Optional[str] = None
    team_h: int
    team_a: int
    team_h_score: Optional[int] = None
    team_a_score: Optional[int] = None
    team_h_difficulty: int
    team_a_difficulty: int
    started: Optional[bool] = None
    finished: bool
    minutes: int


# =============================================================================
# event/{id}/live/
# =============================================================================

class LiveStatsPayload(FplPayload):
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
    in_dreamteam: bool = False
    influence: Optional[str] = None
    creativity: Optional[str] = None
    threat: Optional[str] = None
    ict_index: Optional[str] = None


class ExplainStatPayload(FplPayload):
    identifier: str
    points: int
    value: int


class FixtureExplainPayload(FplPayload):
    fixture: int
    stats: List[ExplainStatPayload]


class LiveElementPayload(FplPayload):
    id: int
    stats: LiveStatsPayload
    explain: Optional[List[FixtureExplainPayload]] = None


# =============================================================================
# entry/{id}/ and entry/{id}/history/
# =============================================================================

class EntryPayload(FplPayload):
    id: int
    name: str
    player_first_name: str
    player_last_name: str
    player_region_name: Optional[str] = None
    started_event: int
    summary_overall_points: Optional[int] = None
    summary_overall_rank: Optional[int] = None
    summary_event_points: Optional[int] = None
    last_deadline_bank: Optional[int] = None
    last_deadline_value: Optional[int] = None


class EntryPastSeasonPayload(FplPayload):
    season_name: str
    total_points: int
    rank: Optional[int] = None


class EntryEventHistoryPayload(FplPayload):
    event: int
    points: int
    total_points: int
    rank: Optional[int] = None
    overall_rank: Optional[int] = None
    bank: int
    value: int
    event_transfers: int
    event_transfers_cost: int
    points_on_bench: int


# =============================================================================
# entry/{id}/event/{event}/picks/ and entry/{id}/transfers/
# =============================================================================

class PickPayload(FplPayload):
    element: int
    position: int
    multiplier: int
    is_captain: bool
    is_vice_captain: bool


class PickEventSummaryPayload(FplPayload):
    event: int
    event_transfers: int
    event_transfers_cost: int


class EntryEventPicksPayload(FplPayload):
    """
    An entry's picks for one event.

    Upstream does not echo the entry id; the fetch step adds it as ``entry``.
    """

    entry: int
    active_chip: Optional[str] = None
    entry_history: PickEventSummaryPayload
    picks: List[PickPayload]


class TransferPayload(FplPayload):
    element_in: int
    element_in_cost: int
    element_out: int
    element_out_cost: int
    entry: int
    event: int
    time: str
