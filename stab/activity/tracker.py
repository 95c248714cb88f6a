"""
stab.activity.tracker — Dwell accounting and the co-usage graph.

Every focus change charges the elapsed dwell to the resource that lost
focus (engagement) and, when the dwell was long enough to be deliberate,
strengthens the edge between the departing and arriving resources
(relationship).  Brief alt-tabs still count as time on a resource but
never pollute the graph.

The graph is a flat mapping keyed by the canonical pair string
``"<a>|<b>"`` with ``a <= b``; records never point at each other.
The focus pointer is persisted with the statistics so the dwell of the
first event after a restart is still measured from the right moment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from stab.core.storage import KeyValueStore
from stab.core.types import (
    Clock,
    EngagementRecord,
    RelationshipRecord,
    now_ms,
    pair_key,
)

log = logging.getLogger(__name__)

ENGAGEMENT_KEY = "tabEngagement"
RELATIONSHIPS_KEY = "tabRelationships"
FOCUS_KEY = "focusState"

DEFAULT_MIN_DWELL_MS = 3000


@dataclass
class FocusChange:
    """What a single focus event did to the persisted statistics."""

    previous: Optional[str]
    current: str
    dwell_ms: int = 0
    engagement_updated: bool = False
    relationship_updated: bool = False
    replay: bool = False


class EngagementTracker:
    """Persisted engagement records, relationship graph and focus pointer."""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Optional[Clock] = None,
        min_dwell_ms: int = DEFAULT_MIN_DWELL_MS,
    ) -> None:
        self.store = store
        self.clock = clock or now_ms
        self.min_dwell_ms = min_dwell_ms

    # -- event --------------------------------------------------------------

    def focus_changed(self, current: str, at: Optional[int] = None) -> FocusChange:
        """Apply one "focus moved to *current*" event at time *at*."""
        at = self.clock() if at is None else int(at)
        current = str(current)
        state = self._load()
        focus = state[FOCUS_KEY] or {}
        previous = focus.get("id")
        since = focus.get("since")

        change = FocusChange(previous=previous, current=current)

        if previous is not None and since is not None:
            dwell = at - int(since)
            if previous == current and dwell == 0:
                change.replay = True
                return change
            if dwell < 0:
                log.debug("Focus event for %s precedes focus start; dwell clamped", current)
                dwell = 0
            change.dwell_ms = dwell

            engagement = state[ENGAGEMENT_KEY]
            record = EngagementRecord.from_dict(engagement.get(previous, {}))
            record.seconds += dwell / 1000
            record.visits += 1
            engagement[previous] = record.to_dict()
            change.engagement_updated = True

            if dwell >= self.min_dwell_ms and current != previous:
                relationships = state[RELATIONSHIPS_KEY]
                key = pair_key(previous, current)
                edge = RelationshipRecord.from_item(key, relationships.get(key, {}))
                edge.count += 1
                edge.total_dwell_seconds += dwell / 1000
                relationships[key] = edge.to_dict()
                change.relationship_updated = True

        state[FOCUS_KEY] = {"id": current, "since": at}
        self.store.set(state)
        return change

    # -- readers ------------------------------------------------------------

    def focus(self) -> Optional[Dict[str, Any]]:
        return self._load()[FOCUS_KEY]

    def engagement(self, resource_id: str) -> EngagementRecord:
        raw = self._load()[ENGAGEMENT_KEY].get(str(resource_id))
        return EngagementRecord.from_dict(raw or {})

    def engagements(self) -> Dict[str, EngagementRecord]:
        return {
            rid: EngagementRecord.from_dict(raw)
            for rid, raw in self._load()[ENGAGEMENT_KEY].items()
        }

    def relationships(self) -> List[RelationshipRecord]:
        return [
            RelationshipRecord.from_item(key, raw)
            for key, raw in self._load()[RELATIONSHIPS_KEY].items()
        ]

    def top_relationships(
        self,
        live_ids: Iterable[str],
        limit: int = 50,
        min_count: int = 2,
    ) -> List[RelationshipRecord]:
        """Strongest edges whose two ends are both still live.

        Ranked by ``count × average dwell``, so an edge that is both
        frequent and sticky outranks one that is frequent but fleeting.
        """
        live = {str(i) for i in live_ids}
        edges = [
            r
            for r in self.relationships()
            if r.a in live and r.b in live and r.count >= min_count
        ]
        edges.sort(key=lambda r: r.strength, reverse=True)
        return edges[:limit]

    # -- internal -----------------------------------------------------------

    def _load(self) -> Dict[str, Any]:
        data = self.store.get(
            {ENGAGEMENT_KEY: {}, RELATIONSHIPS_KEY: {}, FOCUS_KEY: None}
        )
        data[ENGAGEMENT_KEY] = dict(data[ENGAGEMENT_KEY] or {})
        data[RELATIONSHIPS_KEY] = dict(data[RELATIONSHIPS_KEY] or {})
        return data
