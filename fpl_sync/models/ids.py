"""
Branded identifiers for FPL entities.

Each identifier kind is a distinct ``NewType`` so that an event id cannot be
passed where a player id is expected. Values are only produced by the
``parse_*`` functions below, which enforce the valid range for the kind and
raise ``MappingError`` otherwise.
"""
from typing import Any, NewType

from fpl_sync.core.errors import MappingError

EventId = NewType("EventId", int)
PhaseId = NewType("PhaseId", int)
TeamId = NewType("TeamId", int)
PlayerId = NewType("PlayerId", int)
EntryId = NewType("EntryId", int)
FixtureId = NewType("FixtureId", int)

MAX_EVENTS = 38
MAX_TEAMS = 20
ELEMENT_TYPES = range(1, 6)  # GKP, DEF, MID, FWD, MNG


def _parse_int(value: Any, kind: str, minimum: int, maximum: int | None = None) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise MappingError(f"Invalid {kind}: expected integer, got {value!r}")
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f"{minimum}..{maximum}" if maximum is not None else f">= {minimum}"
        raise MappingError(
            f"Invalid {kind}: {value} outside valid range {bounds}",
            details={"kind": kind, "value": value},
        )
    return value


def parse_event_id(value: Any) -> EventId:
    return EventId(_parse_int(value, "event id", 1, MAX_EVENTS))


def parse_phase_id(value: Any) -> PhaseId:
    return PhaseId(_parse_int(value, "phase id", 1, MAX_EVENTS))


def parse_team_id(value: Any) -> TeamId:
    return TeamId(_parse_int(value, "team id", 1, MAX_TEAMS))


def parse_player_id(value: Any) -> PlayerId:
    return PlayerId(_parse_int(value, "player id", 1))


def parse_entry_id(value: Any) -> EntryId:
    return EntryId(_parse_int(value, "entry id", 1))


def parse_fixture_id(value: Any) -> FixtureId:
    return FixtureId(_parse_int(value, "fixture id", 1))


def parse_element_type(value: Any) -> int:
    return _parse_int(value, "element type", ELEMENT_TYPES.start, ELEMENT_TYPES.stop - 1)


def is_valid_event_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= MAX_EVENTS
