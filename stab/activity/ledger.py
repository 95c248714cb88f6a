"""
stab.activity.ledger — Last-active timestamp per resource.

The ledger is the only input the idle and duplicate policies need
besides the live snapshot, so it is persisted on every mutation and
reloaded before every decision.  A process restarted between two
events loses at most the event in flight.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from stab.core.storage import KeyValueStore
from stab.core.types import Clock, now_ms

log = logging.getLogger(__name__)

LEDGER_KEY = "tabActivityData"


class ActivityLedger:
    """Persisted ``resource id -> last-active epoch ms`` map.

    Parameters
    ----------
    store : KeyValueStore
        The local namespace.
    clock : callable
        Returns epoch milliseconds; defaults to wall time.
    """

    def __init__(self, store: KeyValueStore, clock: Optional[Clock] = None) -> None:
        self.store = store
        self.clock = clock or now_ms
        self._activity: Dict[str, int] = {}
        self.reload()

    # -- public API ---------------------------------------------------------

    def reload(self) -> Dict[str, int]:
        """Replace the in-memory map with the persisted copy."""
        raw = self.store.get_one(LEDGER_KEY, {}) or {}
        self._activity = {str(k): int(v) for k, v in raw.items()}
        return self.snapshot()

    def touch(self, resource_id: str, at: Optional[int] = None) -> int:
        """Record *at* (default now) as the last-active time of *resource_id*.

        Writes are last-write-wins by timestamp: an older timestamp
        never replaces a newer one, so replaying an event is harmless.
        """
        at = self.clock() if at is None else int(at)
        rid = str(resource_id)
        self.reload()
        current = self._activity.get(rid)
        if current is None or at >= current:
            self._activity[rid] = at
            self._save()
        return self._activity[rid]

    def forget(self, resource_id: str) -> bool:
        """Drop *resource_id*.  Returns whether an entry existed."""
        rid = str(resource_id)
        self.reload()
        if rid not in self._activity:
            return False
        del self._activity[rid]
        self._save()
        return True

    def last_active(self, resource_id: str, fallback: Optional[int] = None) -> Optional[int]:
        return self._activity.get(str(resource_id), fallback)

    def reconcile(self, live_ids: Iterable[str]) -> List[str]:
        """Seed every live id without a record with now.  Returns the seeded ids."""
        self.reload()
        now = self.clock()
        seeded = []
        for rid in live_ids:
            rid = str(rid)
            if rid not in self._activity:
                self._activity[rid] = now
                seeded.append(rid)
        if seeded:
            log.debug("Seeded %d resource(s) into the ledger", len(seeded))
            self._save()
        return seeded

    def snapshot(self) -> Dict[str, int]:
        return dict(self._activity)

    def __contains__(self, resource_id: object) -> bool:
        return str(resource_id) in self._activity

    def __len__(self) -> int:
        return len(self._activity)

    # -- internal -----------------------------------------------------------

    def _save(self) -> None:
        self.store.set({LEDGER_KEY: dict(self._activity)})
