"""
stab.inference.context — Compact summary of what is open and how it
has been used, sent to the categorization service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence
from urllib.parse import urlparse

from stab.activity.tracker import EngagementTracker
from stab.core.types import RelationshipRecord, Resource
from stab.eviction.policies import is_privileged

#: Inference is meaningless below this many resources.
MIN_RESOURCES = 2


@dataclass
class ResourceSummary:
    id: str
    title: str
    host: str
    minutes: int = 0
    visits: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "domain": self.host,
            "minutes": self.minutes,
            "visits": self.visits,
        }


@dataclass
class InferenceContext:
    resources: List[ResourceSummary] = field(default_factory=list)
    relationships: List[RelationshipRecord] = field(default_factory=list)

    @property
    def ids(self) -> List[str]:
        return [r.id for r in self.resources]

    @property
    def sufficient(self) -> bool:
        return len(self.resources) >= MIN_RESOURCES


def host_name(url: str) -> str:
    """Host part of *url*, or ``""`` when it has none."""
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def build_context(
    resources: Iterable[Resource],
    tracker: EngagementTracker,
    privileged_prefixes: Sequence[str] = (),
    max_relationships: int = 50,
    min_relationship_count: int = 2,
) -> InferenceContext:
    """Summarise the non-privileged live *resources* and their strongest edges."""
    eligible = [r for r in resources if not is_privileged(r.url, privileged_prefixes)]
    engagements = tracker.engagements()

    summaries = []
    for r in eligible:
        record = engagements.get(r.id)
        summaries.append(
            ResourceSummary(
                id=r.id,
                title=r.title or r.url,
                host=host_name(r.url),
                minutes=record.minutes if record else 0,
                visits=record.visits if record else 0,
            )
        )

    context = InferenceContext(resources=summaries)
    if context.sufficient:
        context.relationships = tracker.top_relationships(
            context.ids, limit=max_relationships, min_count=min_relationship_count
        )
    return context
