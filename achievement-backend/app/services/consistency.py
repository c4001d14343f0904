# app/services/consistency.py
"""
Signalling for cross-store sequences that stopped halfway.

The lifecycle never rolls back a committed write. When the second write of a
sequence fails, the coordinator hands a ConsistencyWarning to the monitor,
which logs it on the "app.consistency" logger, keeps the most recent ones in
memory and notifies listeners. It never raises into the caller, whose own
error is what propagates.
"""
from collections import deque
from typing import Callable, List
import logging

from app.core.exceptions import ConsistencyWarning
from app.models.achievement import AchievementDetail
from app.repositories.detail_store import DetailStore
from app.repositories.reference_store import ReferenceStore

logger = logging.getLogger("app.consistency")

Listener = Callable[[ConsistencyWarning], None]

class ConsistencyMonitor:

    def __init__(self, capacity: int = 500):
        self._recent = deque(maxlen=capacity)
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def flag(self, warning: ConsistencyWarning) -> ConsistencyWarning:
        logger.error(f"Reconciliation needed: {warning}", extra={"consistency": warning.to_dict()})
        self._recent.append(warning)

        for listener in self._listeners:
            try:
                listener(warning)
            except Exception:
                logger.exception(f"Consistency listener {listener!r} failed")

        return warning

    def recent(self) -> List[ConsistencyWarning]:
        return list(self._recent)


async def find_orphans(detail_store: DetailStore, reference_store: ReferenceStore) -> List[AchievementDetail]:
    """
    Detail documents that no reference row points at.

    These are left behind when create() wrote the detail but not the
    reference. Nothing is deleted here; the list is for an operator.
    """
    referenced = reference_store.list_detail_ids()
    orphans = await detail_store.find_unreferenced(referenced)
    if orphans:
        logger.warning(f"Found {len(orphans)} unreferenced achievement documents")
    return orphans
