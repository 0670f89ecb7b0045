"""
Cache key namespace.

Keys have the shape ``{prefix}::{season}`` for season-wide collections and
``{prefix}::{season}::{scope_id}`` for collections scoped to one event or
entry. Each collection is stored as a hash with one field per record.
"""
from enum import Enum
from typing import Optional, Union

KEY_SEPARATOR = "::"


class CachePrefix(str, Enum):
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


def _prefix_value(prefix: Union[CachePrefix, str]) -> str:
    return prefix.value if isinstance(prefix, CachePrefix) else prefix


def build_key(prefix: Union[CachePrefix, str], season: str, scope_id: Optional[int] = None) -> str:
    """
    Build a cache key.

    >>> build_key(CachePrefix.FIXTURE, "2425", 5)
    'fixture::2425::5'
    """
    parts = [_prefix_value(prefix), season]
    if scope_id is not None:
        parts.append(str(scope_id))
    return KEY_SEPARATOR.join(parts)


def scoped_pattern(prefix: Union[CachePrefix, str], season: str) -> str:
    """Glob pattern matching every scoped key of a prefix within a season."""
    return KEY_SEPARATOR.join([_prefix_value(prefix), season, "*"])


def scope_of(key: str) -> Optional[str]:
    """Return the scope part of a key, or None for season-wide keys."""
    parts = key.split(KEY_SEPARATOR)
    return parts[2] if len(parts) > 2 else None
