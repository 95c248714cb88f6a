"""
stab -- Keep a pool of tabs small and find the workspaces hiding in it.

    from stab import TabSteward
    from stab.host import SnapshotHost

    steward = TabSteward(data_dir="./data", host=SnapshotHost("tabs.json"))
    steward.on_startup()
    cycle = steward.run_checks()
    result = steward.infer_workspaces(credential="sk-...")
"""

from stab.core.config import Config, Settings
from stab.core.types import (
    ClosedEntry,
    EvictionReason,
    InferenceResult,
    LogEntry,
    Resource,
    WorkspaceResult,
)
from stab.host import ResourceHost, SnapshotHost
from stab.system import TabSteward

__version__ = "0.1.0"

__all__ = [
    "TabSteward",
    "Config",
    "Settings",
    "ResourceHost",
    "SnapshotHost",
    "Resource",
    "ClosedEntry",
    "EvictionReason",
    "InferenceResult",
    "LogEntry",
    "WorkspaceResult",
]
