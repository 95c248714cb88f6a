"""
stab.core.types — Data types for the stab tab steward.

Every structure here is a plain dataclass: no ORM, no magic,
serialisable to dict/JSON in one call.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

#: Canonical type for categorization callables throughout stab.
#: Signature: ``(prompt: str, system: str) -> str``
LLMFunc = Callable[[str, str], str]

#: Wall clock returning epoch milliseconds.
Clock = Callable[[], int]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def pair_key(a: str, b: str) -> str:
    """Canonical key for the unordered pair ``{a, b}``."""
    lo, hi = sorted((str(a), str(b)))
    return f"{lo}|{hi}"


# ---------------------------------------------------------------------------
# Resource: externally owned handle (a browser tab)
# ---------------------------------------------------------------------------


@dataclass
class Resource:
    """A live resource as reported by the host.

    The core never creates these; it only reads snapshots.
    """

    id: str
    url: str = ""
    title: str = ""
    pinned: bool = False
    active: bool = False
    window_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.id = str(self.id)
        if self.window_id is not None:
            self.window_id = str(self.window_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "pinned": self.pinned,
            "active": self.active,
            "window_id": self.window_id,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Resource":
        return cls(
            id=d["id"],
            url=d.get("url") or "",
            title=d.get("title") or "",
            pinned=bool(d.get("pinned", False)),
            active=bool(d.get("active", False)),
            window_id=d.get("window_id"),
        )


# ---------------------------------------------------------------------------
# Engagement & relationships
# ---------------------------------------------------------------------------


@dataclass
class EngagementRecord:
    """Cumulative dwell time and visit count for one resource."""

    seconds: float = 0.0
    visits: int = 0

    @property
    def minutes(self) -> int:
        return int(round(self.seconds / 60))

    def to_dict(self) -> Dict[str, Any]:
        return {"seconds": self.seconds, "visits": self.visits}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EngagementRecord":
        return cls(
            seconds=float(d.get("seconds", 0.0)),
            visits=int(d.get("visits", 0)),
        )


@dataclass
class RelationshipRecord:
    """Co-usage statistics for an unordered pair of resources.

    ``a`` and ``b`` are always stored in canonical (sorted) order so
    the pair has exactly one key.
    """

    a: str
    b: str
    count: int = 0
    total_dwell_seconds: float = 0.0

    def __post_init__(self) -> None:
        self.a, self.b = sorted((str(self.a), str(self.b)))

    @property
    def key(self) -> str:
        return pair_key(self.a, self.b)

    @property
    def average_dwell_seconds(self) -> float:
        return self.total_dwell_seconds / self.count if self.count else 0.0

    @property
    def strength(self) -> float:
        """Frequency weighted by stickiness: ``count × average dwell``."""
        return self.count * self.average_dwell_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "total_dwell_seconds": self.total_dwell_seconds}

    @classmethod
    def from_item(cls, key: str, d: Dict[str, Any]) -> "RelationshipRecord":
        a, _, b = key.partition("|")
        return cls(
            a=a,
            b=b,
            count=int(d.get("count", 0)),
            total_dwell_seconds=float(d.get("total_dwell_seconds", 0.0)),
        )


# ---------------------------------------------------------------------------
# History & log
# ---------------------------------------------------------------------------


class EvictionReason(str, Enum):
    """Why a resource was closed by policy."""

    IDLE = "idle"
    DUPLICATE = "duplicate"
    MEMORY = "memory"


@dataclass
class ClosedEntry:
    """One evicted resource in the closed history."""

    url: str
    title: str
    closed_at: int
    reason: EvictionReason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "closedAt": self.closed_at,
            "reason": self.reason.value,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ClosedEntry":
        return cls(
            url=d.get("url", ""),
            title=d.get("title", ""),
            closed_at=int(d.get("closedAt", 0)),
            reason=EvictionReason(d.get("reason", "idle")),
        )


@dataclass
class LogEntry:
    time: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"time": self.time, "message": self.message}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LogEntry":
        return cls(time=int(d.get("time", 0)), message=str(d.get("message", "")))


# ---------------------------------------------------------------------------
# Eviction results
# ---------------------------------------------------------------------------


@dataclass
class PolicyOutcome:
    """What one policy did during a cycle."""

    reason: EvictionReason
    marked: List[str] = field(default_factory=list)
    removed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason.value,
            "marked": list(self.marked),
            "removed": self.removed,
            "error": self.error,
        }


@dataclass
class CycleResult:
    """Outcome of one eviction cycle."""

    started_at: int
    outcomes: List[PolicyOutcome] = field(default_factory=list)

    @property
    def closed_count(self) -> int:
        return sum(len(o.marked) for o in self.outcomes if o.removed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "closed": self.closed_count,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# ---------------------------------------------------------------------------
# Workspace inference
# ---------------------------------------------------------------------------


@dataclass
class WorkspaceResult:
    """A validated cluster of resources used together for one task."""

    name: str
    tab_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "tabIds": list(self.tab_ids)}


@dataclass
class InferenceResult:
    """Terminal status of one inference run.

    ``error`` is ``None`` on success, otherwise one of
    ``"no-credential"``, ``"service-error"``, ``"unexpected"``.
    """

    ok: bool
    applied: int = 0
    workspaces: List[WorkspaceResult] = field(default_factory=list)
    error: Optional[str] = None
    message: str = ""
    state: str = "done"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "applied": self.applied,
            "workspaces": [w.to_dict() for w in self.workspaces],
            "error": self.error,
            "message": self.message,
            "state": self.state,
        }
