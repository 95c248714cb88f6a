"""stab.core — Configuration, storage, type definitions, and errors."""

from stab.core.config import Config, Settings
from stab.core.errors import (
    CategorizationError,
    HostError,
    MissingCredentialError,
    StabError,
)
from stab.core.storage import KeyValueStore, Storage
from stab.core.types import (
    ClosedEntry,
    CycleResult,
    EngagementRecord,
    EvictionReason,
    InferenceResult,
    LLMFunc,
    LogEntry,
    PolicyOutcome,
    RelationshipRecord,
    Resource,
    WorkspaceResult,
    now_ms,
    pair_key,
)

__all__ = [
    "Config",
    "Settings",
    "StabError",
    "MissingCredentialError",
    "CategorizationError",
    "HostError",
    "KeyValueStore",
    "Storage",
    "ClosedEntry",
    "CycleResult",
    "EngagementRecord",
    "EvictionReason",
    "InferenceResult",
    "LLMFunc",
    "LogEntry",
    "PolicyOutcome",
    "RelationshipRecord",
    "Resource",
    "WorkspaceResult",
    "now_ms",
    "pair_key",
]
