"""
Relational tables for synchronized FPL data.

One table per entity type. Column names match the domain record fields.

Conventions:
- Entities keyed by their upstream id use it as the primary key
- Entities keyed by a composite natural key (event + element, entry + event)
  carry a surrogate integer primary key plus a named unique constraint on the
  natural key, which is the conflict target for upserts
- Every table has ``created_at``; tables re-synced with insert-or-update also
  have ``updated_at``, refreshed on every upsert
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _created_at() -> Column:
    return Column(DateTime(timezone=True), nullable=False, server_default=func.now())


def _updated_at() -> Column:
    return Column(DateTime(timezone=True), nullable=False, server_default=func.now())


# =============================================================================
# SEASON-WIDE ENTITIES (bootstrap-static)
# =============================================================================

class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=False)
    code = Column(Integer, nullable=False, unique=True)
    name = Column(String(50), nullable=False)
    short_name = Column(String(5), nullable=False)
    strength = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    played = Column(Integer, nullable=False, default=0)
    win = Column(Integer, nullable=False, default=0)
    draw = Column(Integer, nullable=False, default=0)
    loss = Column(Integer, nullable=False, default=0)
    points = Column(Integer, nullable=False, default=0)
    form = Column(String(20), nullable=True)
    unavailable = Column(Boolean, nullable=False, default=False)
    strength_overall_home = Column(Integer, nullable=False)
    strength_overall_away = Column(Integer, nullable=False)
    strength_attack_home = Column(Integer, nullable=False)
    strength_attack_away = Column(Integer, nullable=False)
    strength_defence_home = Column(Integer, nullable=False)
    strength_defence_away = Column(Integer, nullable=False)
    pulse_id = Column(Integer, nullable=False)
    created_at = _created_at()
    updated_at = _updated_at()


class Player(Base):
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=False)
    code = Column(Integer, nullable=False, unique=True)
    element_type = Column(Integer, nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    price = Column(Integer, nullable=False)
    start_price = Column(Integer, nullable=False)
    first_name = Column(String(100), nullable=False)
    second_name = Column(String(100), nullable=False)
    web_name = Column(String(100), nullable=False)
    created_at = _created_at()
    updated_at = _updated_at()


class Phase(Base):
    __tablename__ = "phases"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False)
    start_event = Column(Integer, nullable=False)
    stop_event = Column(Integer, nullable=False)
    highest_score = Column(Integer, nullable=False, default=0)
    created_at = _created_at()
    updated_at = _updated_at()


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(50), nullable=False)
    deadline_time = Column(DateTime(timezone=True), nullable=False)
    average_entry_score = Column(Integer, nullable=False, default=0)
    finished = Column(Boolean, nullable=False, default=False)
    data_checked = Column(Boolean, nullable=False, default=False)
    highest_score = Column(Integer, nullable=False, default=0)
    highest_scoring_entry = Column(Integer, nullable=False, default=0)
    is_previous = Column(Boolean, nullable=False, default=False)
    is_current = Column(Boolean, nullable=False, default=False, index=True)
    is_next = Column(Boolean, nullable=False, default=False)
    most_selected = Column(Integer, nullable=False, default=0)
    most_transferred_in = Column(Integer, nullable=False, default=0)
    most_captained = Column(Integer, nullable=False, default=0)
    most_vice_captained = Column(Integer, nullable=False, default=0)
    top_element = Column(Integer, nullable=False, default=0)
    transfers_made = Column(Integer, nullable=False, default=0)
    chip_plays = Column(JSON, nullable=False, default=list)
    created_at = _created_at()
    updated_at = _updated_at()


# =============================================================================
# EVENT-SCOPED ENTITIES
# =============================================================================

class Fixture(Base):
    """Fixtures are immutable once written; re-syncs insert or ignore."""
    __tablename__ = "fixtures"

    id = Column(Integer, primary_key=True, autoincrement=False)
    code = Column(Integer, nullable=False, unique=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    kickoff_time = Column(DateTime(timezone=True), nullable=True)
    team_h = Column(Integer, nullable=False)
    team_a = Column(Integer, nullable=False)
    team_h_score = Column(Integer, nullable=True)
    team_a_score = Column(Integer, nullable=True)
    team_h_difficulty = Column(Integer, nullable=False)
    team_a_difficulty = Column(Integer, nullable=False)
    started = Column(Boolean, nullable=False, default=False)
    finished = Column(Boolean, nullable=False, default=False)
    minutes = Column(Integer, nullable=False, default=0)
    created_at = _created_at()


class EventLive(Base):
    __tablename__ = "event_lives"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    element_id = Column(Integer, nullable=False)
    minutes = Column(Integer, nullable=False, default=0)
    goals_scored = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    clean_sheets = Column(Integer, nullable=False, default=0)
    goals_conceded = Column(Integer, nullable=False, default=0)
    own_goals = Column(Integer, nullable=False, default=0)
    penalties_saved = Column(Integer, nullable=False, default=0)
    penalties_missed = Column(Integer, nullable=False, default=0)
    yellow_cards = Column(Integer, nullable=False, default=0)
    red_cards = Column(Integer, nullable=False, default=0)
    saves = Column(Integer, nullable=False, default=0)
    bonus = Column(Integer, nullable=False, default=0)
    bps = Column(Integer, nullable=False, default=0)
    total_points = Column(Integer, nullable=False, default=0)
    in_dreamteam = Column(Boolean, nullable=False, default=False)
    influence = Column(Float, nullable=False, default=0.0)
    creativity = Column(Float, nullable=False, default=0.0)
    threat = Column(Float, nullable=False, default=0.0)
    ict_index = Column(Float, nullable=False, default=0.0)
    explain = Column(JSON, nullable=False, default=list)
    created_at = _created_at()
    updated_at = _updated_at()

    __table_args__ = (
        UniqueConstraint("event_id", "element_id", name="unique_event_element_live"),
    )


class PlayerStat(Base):
    __tablename__ = "player_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    element_id = Column(Integer, nullable=False)
    team_id = Column(Integer, nullable=False)
    element_type = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False, default=0)
    form = Column(Float, nullable=False, default=0.0)
    points_per_game = Column(Float, nullable=False, default=0.0)
    selected_by_percent = Column(Float, nullable=False, default=0.0)
    minutes = Column(Integer, nullable=False, default=0)
    goals_scored = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    clean_sheets = Column(Integer, nullable=False, default=0)
    goals_conceded = Column(Integer, nullable=False, default=0)
    bonus = Column(Integer, nullable=False, default=0)
    bps = Column(Integer, nullable=False, default=0)
    influence = Column(Float, nullable=False, default=0.0)
    creativity = Column(Float, nullable=False, default=0.0)
    threat = Column(Float, nullable=False, default=0.0)
    ict_index = Column(Float, nullable=False, default=0.0)
    created_at = _created_at()
    updated_at = _updated_at()

    __table_args__ = (
        UniqueConstraint("event_id", "element_id", name="unique_player_stats_event_element"),
    )



class PlayerValue(Base):
    """Price changes, one row per player per change day. Rows are never updated."""

    __tablename__ = "player_values"

    id = Column(Integer, primary_key=True, autoincrement=True)
    element_id = Column(Integer, nullable=False, index=True)
    element_type = Column(Integer, nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    value = Column(Integer, nullable=False)
    change_date = Column(String(8), nullable=False)
    change_type = Column(String(10), nullable=False)
    last_value = Column(Integer, nullable=False)
    created_at = _created_at()

    __table_args__ = (
        UniqueConstraint("element_id", "change_date", name="unique_player_value_element_date"),
    )

# =============================================================================
# ENTRY-SCOPED ENTITIES (manager teams)
# =============================================================================

class EntryInfo(Base):
    __tablename__ = "entry_infos"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False)
    player_name = Column(String(200), nullable=False)
    region = Column(String(100), nullable=True)
    started_event = Column(Integer, nullable=False)
    overall_points = Column(Integer, nullable=False, default=0)
    overall_rank = Column(Integer, nullable=False, default=0)
    last_event_points = Column(Integer, nullable=False, default=0)
    bank = Column(Integer, nullable=False, default=0)
    team_value = Column(Integer, nullable=False, default=0)
    created_at = _created_at()
    updated_at = _updated_at()


class EntryHistory(Base):
    """Past-season results never change; re-syncs insert or ignore."""
    __tablename__ = "entry_history_infos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(Integer, ForeignKey("entry_infos.id"), nullable=False, index=True)
    season = Column(String(4), nullable=False)
    total_points = Column(Integer, nullable=False, default=0)
    overall_rank = Column(Integer, nullable=False, default=0)
    created_at = _created_at()

    __table_args__ = (
        UniqueConstraint("entry_id", "season", name="unique_entry_season_history"),
    )


class EntryEventResult(Base):
    __tablename__ = "entry_event_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(Integer, ForeignKey("entry_infos.id"), nullable=False, index=True)
    event_id = Column(Integer, nullable=False)
    points = Column(Integer, nullable=False, default=0)
    total_points = Column(Integer, nullable=False, default=0)
    rank = Column(Integer, nullable=False, default=0)
    overall_rank = Column(Integer, nullable=False, default=0)
    bank = Column(Integer, nullable=False, default=0)
    value = Column(Integer, nullable=False, default=0)
    event_transfers = Column(Integer, nullable=False, default=0)
    event_transfers_cost = Column(Integer, nullable=False, default=0)
    points_on_bench = Column(Integer, nullable=False, default=0)
    created_at = _created_at()
    updated_at = _updated_at()

    __table_args__ = (
        UniqueConstraint("entry_id", "event_id", name="unique_entry_event_result"),
    )


class EntryEventPick(Base):
    __tablename__ = "entry_event_picks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(Integer, ForeignKey("entry_infos.id"), nullable=False, index=True)
    event_id = Column(Integer, nullable=False, index=True)
    chip = Column(String(20), nullable=False, default="n/a")
    transfers = Column(Integer, nullable=False, default=0)
    transfers_cost = Column(Integer, nullable=False, default=0)
    picks = Column(JSON, nullable=False, default=list)
    created_at = _created_at()

    __table_args__ = (
        UniqueConstraint("entry_id", "event_id", name="unique_entry_event_pick"),
    )


class EntryEventTransfer(Base):
    __tablename__ = "entry_event_transfers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(Integer, ForeignKey("entry_infos.id"), nullable=False, index=True)
    event_id = Column(Integer, nullable=False)
    element_in_id = Column(Integer, nullable=False)
    element_in_cost = Column(Integer, nullable=False)
    element_out_id = Column(Integer, nullable=False)
    element_out_cost = Column(Integer, nullable=False)
    transfer_time = Column(DateTime(timezone=True), nullable=False)
    created_at = _created_at()
    updated_at = _updated_at()

    __table_args__ = (
        UniqueConstraint("entry_id", "event_id", name="unique_entry_event_transfer"),
    )
