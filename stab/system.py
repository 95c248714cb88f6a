"""
stab.system -- Top-level TabSteward: the public API for stab.

    from stab import TabSteward
    from stab.host import SnapshotHost

    steward = TabSteward(data_dir="./data", host=SnapshotHost("tabs.json"))
    steward.on_startup()
    steward.on_activated("42")
    result = steward.run_checks()

Everything is wired up here: storage, settings, ledger, tracker, log,
history, eviction engine and inference pipeline.  Host lifecycle events
come in through the ``on_*`` methods, one at a time.  Every entry point
reloads what it depends on from storage first, so a process restarted
between two calls behaves the same as one that never stopped.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional

from stab.activity.ledger import ActivityLedger
from stab.activity.log import ActivityLog, ClosedHistory
from stab.activity.tracker import EngagementTracker, FocusChange
from stab.core.config import Config, Settings
from stab.core.storage import Storage
from stab.core.types import (
    ClosedEntry,
    Clock,
    CycleResult,
    InferenceResult,
    LLMFunc,
    LogEntry,
    now_ms,
)
from stab.eviction.engine import EvictionEngine
from stab.host import ResourceHost
from stab.inference.pipeline import WorkspaceInference

log = logging.getLogger("stab.system")


class TabSteward:
    """Top-level API: wire everything together and expose host events.

    Parameters
    ----------
    host:
        The resource host (browser adapter, ``SnapshotHost``, test double).
    config:
        Full ``Config`` object.  If not given, ``data_dir`` and
        ``**kwargs`` are forwarded to ``Config``.
    data_dir:
        Shortcut -- if you just want to point at a directory and go.
    categorizer_factory:
        ``(credential) -> LLMFunc``.  Defaults to
        ``config.get_categorizer``.
    clock:
        Epoch-millisecond clock; defaults to wall time.
    """

    def __init__(
        self,
        host: ResourceHost,
        config: Optional[Config] = None,
        data_dir: Optional[str | Path] = None,
        categorizer_factory: Optional[Callable[[str], LLMFunc]] = None,
        clock: Optional[Clock] = None,
        **kwargs: Any,
    ) -> None:
        # -- Resolve config ------------------------------------------------
        if config is not None:
            self.config = config
        elif data_dir is not None:
            self.config = Config.from_data_dir(data_dir, **kwargs)
        else:
            self.config = Config(**kwargs)

        self.config.ensure_directories()

        if self.config.structured_logging:
            from stab.core.logging import configure_logging

            configure_logging(structured=True)

        self.host = host
        self.clock = clock or now_ms
        self.storage = Storage(self.config)
        self._settings = self.load_settings()

        # -- Activity ------------------------------------------------------
        self.ledger = ActivityLedger(self.storage.local, clock=self.clock)
        self.tracker = EngagementTracker(
            self.storage.local, clock=self.clock, min_dwell_ms=self.config.min_dwell_ms
        )
        self.activity = ActivityLog(
            self.storage.local, clock=self.clock, limit=self.config.log_limit
        )
        self.history = ClosedHistory(
            self.storage.local, clock=self.clock, limit=self.config.history_limit
        )

        # -- Engines -------------------------------------------------------
        self.eviction = EvictionEngine(
            host=self.host,
            ledger=self.ledger,
            history=self.history,
            activity=self.activity,
            load_settings=self.load_settings,
            privileged_prefixes=self.config.privileged_prefixes,
            clock=self.clock,
        )
        self.inference = WorkspaceInference(
            host=self.host,
            tracker=self.tracker,
            activity=self.activity,
            load_settings=self.load_settings,
            categorizer_factory=categorizer_factory or self.config.get_categorizer,
            privileged_prefixes=self.config.privileged_prefixes,
            max_relationships=self.config.max_relationships,
            min_relationship_count=self.config.min_relationship_count,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        """The current settings snapshot (read-only)."""
        return self._settings

    def load_settings(self) -> Settings:
        """Reload settings from the synchronized namespace and swap them in."""
        stored = self.storage.sync.get(Settings.defaults())
        self._settings = Settings.from_mapping(stored)
        return self._settings

    def update_settings(self, changes: Mapping[str, Any]) -> Settings:
        """Persist *changes* and swap in the resulting snapshot."""
        new = self.load_settings().merged(changes)
        self.storage.sync.set(new.to_dict(include_secrets=True))
        self._settings = new
        return new

    def on_settings_changed(self, changes: Mapping[str, Any]) -> Settings:
        """Another writer changed settings; apply *changes* as one snapshot."""
        self._settings = self._settings.merged(changes)
        log.debug("Settings refreshed: %s", sorted(changes))
        return self._settings

    # ------------------------------------------------------------------
    # Host lifecycle
    # ------------------------------------------------------------------

    def on_installed(self) -> List[str]:
        seeded = self.on_startup()
        self.activity.append("Extension installed")
        return seeded

    def on_startup(self) -> List[str]:
        """Reload state and seed every live resource the ledger lost."""
        self.load_settings()
        live = [r.id for r in self.host.list_resources()]
        return self.ledger.reconcile(live)

    def on_created(self, resource_id: str, at: Optional[int] = None) -> None:
        self.ledger.touch(resource_id, at=at)

    def on_activated(self, resource_id: str, at: Optional[int] = None) -> FocusChange:
        at = self.clock() if at is None else at
        self.ledger.touch(resource_id, at=at)
        return self.tracker.focus_changed(resource_id, at=at)

    def on_removed(self, resource_id: str) -> None:
        self.ledger.forget(resource_id)

    # ------------------------------------------------------------------
    # Run-now entry points
    # ------------------------------------------------------------------

    def run_checks(self) -> CycleResult:
        """One eviction cycle (what the periodic timer triggers)."""
        return self.eviction.run_cycle()

    def infer_workspaces(self, credential: Optional[str] = None) -> InferenceResult:
        """One workspace inference run."""
        return self.inference.run(credential)

    # ------------------------------------------------------------------
    # Read-only views for the presentation layer
    # ------------------------------------------------------------------

    def logs(self) -> List[LogEntry]:
        return self.activity.entries()

    def history_entries(self) -> List[ClosedEntry]:
        return self.history.entries()
