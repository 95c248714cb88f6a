"""
stab.eviction.policies — Which resources each policy wants closed.

Pure functions over a live snapshot: no storage, no host calls.  Each
returns the resources to evict in snapshot order.

Shared exclusions: pinned resources are never evicted, and neither is
the focused one.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from stab.core.types import Resource

#: ``(resource_id, fallback) -> last-active ms``
LastActive = Callable[[str, Optional[int]], Optional[int]]

MINUTE_MS = 60 * 1000
UNIT_MS = {
    "minutes": MINUTE_MS,
    "hours": 60 * MINUTE_MS,
    "days": 24 * 60 * MINUTE_MS,
}

BYTES_PER_MB = 1024 * 1024


def idle_threshold_ms(amount: float, unit: str) -> int:
    """*amount* of *unit* in milliseconds.  Unknown units count as minutes."""
    return int(amount * UNIT_MS.get(unit, MINUTE_MS))


def is_privileged(url: str, prefixes: Sequence[str]) -> bool:
    return any(url.startswith(p) for p in prefixes)


def find_idle(
    resources: Iterable[Resource],
    last_active: LastActive,
    now: int,
    threshold_ms: int,
) -> List[Resource]:
    """Resources unused for strictly longer than *threshold_ms*.

    A resource the ledger has never seen falls back to *now*, so it is
    never idle on the cycle it first appears.
    """
    idle = []
    for r in resources:
        if r.pinned or r.active:
            continue
        seen = last_active(r.id, now)
        if now - seen > threshold_ms:
            idle.append(r)
    return idle


def find_duplicates(
    resources: Iterable[Resource],
    last_active: LastActive,
    privileged_prefixes: Sequence[str] = (),
) -> List[Resource]:
    """Extra copies of resources sharing an identical locator.

    Within each group the most recently active copy is kept (unknown
    recency sorts last).  The focused copy is also kept even when it is
    not the most recent one.
    """
    groups: "OrderedDict[str, List[Resource]]" = OrderedDict()
    for r in resources:
        if not r.url or r.pinned or is_privileged(r.url, privileged_prefixes):
            continue
        groups.setdefault(r.url, []).append(r)

    duplicates = []
    for group in groups.values():
        if len(group) <= 1:
            continue
        # stable: ties keep host order
        ranked = sorted(group, key=lambda r: last_active(r.id, 0) or 0, reverse=True)
        duplicates.extend(r for r in ranked[1:] if not r.active)
    return duplicates


def find_memory_heavy(
    resources: Iterable[Resource],
    samples: Mapping[str, int],
    threshold_mb: float,
) -> List[Resource]:
    """Resources whose private memory exceeds *threshold_mb*.

    Resources absent from *samples* are not evaluated.
    """
    threshold_bytes = threshold_mb * BYTES_PER_MB
    heavy = []
    for r in resources:
        if r.pinned or r.active:
            continue
        used = samples.get(r.id)
        if used is not None and used > threshold_bytes:
            heavy.append(r)
    return heavy
