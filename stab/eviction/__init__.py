"""
stab.eviction — Policy-driven closing of idle, duplicate and
memory-heavy resources.
"""

from stab.eviction.engine import CycleState, EvictionEngine
from stab.eviction.policies import (
    find_duplicates,
    find_idle,
    find_memory_heavy,
    idle_threshold_ms,
)

__all__ = [
    "CycleState",
    "EvictionEngine",
    "find_duplicates",
    "find_idle",
    "find_memory_heavy",
    "idle_threshold_ms",
]
