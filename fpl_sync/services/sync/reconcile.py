"""
Reconcile steps run between mapping and persisting.

A reconcile step sees the mapped batch together with the repository of its
entity type and returns the records that should actually be written. Steps
are declared per entity type on the descriptor (``reconcile``).
"""
import logging
from dataclasses import replace
from typing import Any, Dict, List, Tuple

from fpl_sync.models.domain import EntryEventTransferRecord, PlayerValueRecord
from fpl_sync.models.enums import ValueChangeType

logger = logging.getLogger(__name__)


async def latest_transfer_per_event(repo: Any, records: List[EntryEventTransferRecord]) -> List[EntryEventTransferRecord]:
    """Keep the most recent transfer of each entry in each event."""
    latest: Dict[Tuple[int, int], EntryEventTransferRecord] = {}
    for record in records:
        key = (record.entry_id, record.event_id)
        if key not in latest or record.transfer_time > latest[key].transfer_time:
            latest[key] = record
    return sorted(latest.values(), key=lambda r: (r.entry_id, r.event_id))


async def detect_value_changes(repo: Any, records: List[PlayerValueRecord]) -> List[PlayerValueRecord]:
    """
    Keep only prices that differ from the latest stored value per player.

    A player with no stored value starts its history (``start``, last value
    equal to the current one). A changed price is a ``rise`` or ``fall`` with
    the stored price as last value. Unchanged prices are dropped.
    """
    stored = await repo.find_latest("element_id", "change_date")
    changes = []
    for record in records:
        previous = stored.get(record.element_id)
        if previous is None:
            changes.append(record)
        elif previous.value != record.value:
            change_type = ValueChangeType.RISE if record.value > previous.value else ValueChangeType.FALL
            changes.append(replace(record, change_type=change_type.value, last_value=previous.value))

    logger.info(f"Detected {len(changes)} player value changes among {len(records)} players")
    return changes
