"""
stab.activity.log — Bounded, newest-first activity log and closed history.

Both lists live in the local namespace and are rewritten whole on every
append: read, prepend, truncate, write.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from stab.core.storage import KeyValueStore
from stab.core.types import (
    ClosedEntry,
    Clock,
    EvictionReason,
    LogEntry,
    Resource,
    now_ms,
)

log = logging.getLogger("stab")

LOGS_KEY = "logs"
CLOSED_KEY = "closedTabs"


class ActivityLog:
    """The last *limit* engine actions, newest first."""

    def __init__(
        self, store: KeyValueStore, clock: Optional[Clock] = None, limit: int = 20
    ) -> None:
        self.store = store
        self.clock = clock or now_ms
        self.limit = limit

    def append(self, message: str) -> LogEntry:
        log.info("[Stab] %s", message)
        entry = LogEntry(time=self.clock(), message=message)
        existing = self.store.get_one(LOGS_KEY, []) or []
        self.store.set({LOGS_KEY: ([entry.to_dict()] + existing)[: self.limit]})
        return entry

    def entries(self) -> List[LogEntry]:
        return [LogEntry.from_dict(d) for d in self.store.get_one(LOGS_KEY, []) or []]

    def clear(self) -> None:
        self.store.delete(LOGS_KEY)


class ClosedHistory:
    """Resources closed by policy, newest first, capped at *limit*."""

    def __init__(
        self, store: KeyValueStore, clock: Optional[Clock] = None, limit: int = 100
    ) -> None:
        self.store = store
        self.clock = clock or now_ms
        self.limit = limit

    def record(self, resources: Iterable[Resource], reason: EvictionReason) -> List[ClosedEntry]:
        closed_at = self.clock()
        new_entries = [
            ClosedEntry(
                url=r.url,
                title=r.title or r.url,
                closed_at=closed_at,
                reason=reason,
            )
            for r in resources
        ]
        existing = self.store.get_one(CLOSED_KEY, []) or []
        merged = [e.to_dict() for e in new_entries] + existing
        self.store.set({CLOSED_KEY: merged[: self.limit]})
        return new_entries

    def entries(self) -> List[ClosedEntry]:
        return [ClosedEntry.from_dict(d) for d in self.store.get_one(CLOSED_KEY, []) or []]

    def clear(self) -> None:
        self.store.delete(CLOSED_KEY)
