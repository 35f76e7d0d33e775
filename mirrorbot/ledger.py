"""
Dedup Ledger
Bounded, insertion-ordered set of trade ids seen by any feed
"""

import logging
import threading
from typing import Dict

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10_000


class DedupLedger:
    """
    Remembers which trades were already handled

    One instance is shared by the event stream and the poller so that a fill
    seen by both feeds is mirrored once. Membership is purely recency based:
    when the size goes past capacity the oldest half is dropped in a single
    batch, after which a dropped id counts as new again.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        # dicts keep insertion order
        self._ids: Dict[str, None] = {}
        self._lock = threading.Lock()
        self.evicted_total = 0

    def admit(self, trade_id: str) -> bool:
        """
        Record a trade id

        Returns:
            True if the id was new, False if it was already present
        """
        with self._lock:
            if trade_id in self._ids:
                return False
            self._ids[trade_id] = None
            if len(self._ids) > self.capacity:
                self._compact_locked()
            return True

    def compact(self) -> int:
        """Evict the oldest half of the ids, returns how many were dropped"""
        with self._lock:
            return self._compact_locked()

    def _compact_locked(self) -> int:
        drop = len(self._ids) // 2
        if drop == 0:
            return 0
        oldest = list(self._ids)[:drop]
        for trade_id in oldest:
            del self._ids[trade_id]
        self.evicted_total += drop
        logger.debug(f"Ledger compacted: dropped {drop}, kept {len(self._ids)}")
        return drop

    def __contains__(self, trade_id: object) -> bool:
        return trade_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
