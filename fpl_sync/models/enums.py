"""
Enumerations shared across the pipeline layers.
"""
from enum import Enum
from typing import Union


class EntityType(str, Enum):
    """Categories of synchronized data."""

    TEAM = "team"
    PLAYER = "player"
    PHASE = "phase"
    EVENT = "event"
    FIXTURE = "fixture"
    EVENT_LIVE = "event_live"
    PLAYER_STAT = "player_stat"
    ENTRY_INFO = "entry_info"
    ENTRY_HISTORY = "entry_history"
    ENTRY_EVENT_RESULT = "entry_event_result"
    ENTRY_EVENT_PICK = "entry_event_pick"
    ENTRY_EVENT_TRANSFER = "entry_event_transfer"
    PLAYER_VALUE = "player_value"

    @classmethod
    def parse(cls, value: Union["EntityType", str]) -> "EntityType":
        """
        Accept an enum member, its value or its name in any case.

        >>> EntityType.parse("Team")
        <EntityType.TEAM: 'team'>
        >>> EntityType.parse("event-live")
        <EntityType.EVENT_LIVE: 'event_live'>
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown entity type: {value!r}") from None


class ScopeKind(str, Enum):
    """What a scoping id identifies."""

    SEASON = "season"  # no scoping id
    EVENT = "event"
    ENTRY = "entry"


class ConflictPolicy(str, Enum):
    """How a batch write treats rows whose natural key already exists."""

    INSERT_OR_UPDATE = "insert_or_update"
    INSERT_OR_IGNORE = "insert_or_ignore"


class SyncStrategy(str, Enum):
    MERGE = "merge"  # upsert on top of existing rows
    REBUILD = "rebuild"  # purge the scope, then insert


class CacheTier(str, Enum):
    HOT = "hot"  # no TTL, kept consistent by invalidation
    COLD = "cold"  # additionally expires after CACHE_COLD_TTL


class ValueChangeType(str, Enum):
    """Direction of a player price change."""

    START = "start"  # first value recorded for the player
    RISE = "rise"
    FALL = "fall"
