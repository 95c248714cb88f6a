"""
stab.eviction.engine — The periodic eviction cycle.

One cycle:

    IDLE -> TRIGGER -> RUN_POLICIES -> IDLE

Settings are reloaded at the trigger and every live resource the ledger
has not seen yet is seeded with "now".  Then the enabled policies run in
a fixed order: duplicate, idle, memory.  Duplicates go first so the later
policies see one copy of each locator.  Each policy takes its own
snapshot from the host and removes what it marked in one batch call.
Only after the host confirms does it record history and drop the closed
ids from the ledger.  A policy that fails is logged and the next one
still runs; nothing is retried or rolled back.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence

from stab.activity.ledger import ActivityLedger
from stab.activity.log import ActivityLog, ClosedHistory
from stab.core.config import DEFAULT_PRIVILEGED_PREFIXES, Settings
from stab.core.types import (
    Clock,
    CycleResult,
    EvictionReason,
    PolicyOutcome,
    Resource,
    now_ms,
)
from stab.eviction.policies import (
    find_duplicates,
    find_idle,
    find_memory_heavy,
    idle_threshold_ms,
)
from stab.host import ResourceHost

log = logging.getLogger(__name__)

#: Wording used in log lines, per reason.
_REASON_LABELS = {
    EvictionReason.DUPLICATE: "duplicate",
    EvictionReason.IDLE: "idle",
    EvictionReason.MEMORY: "memory-heavy",
}


class CycleState(Enum):
    IDLE = "idle"
    TRIGGER = "trigger"
    RUN_POLICIES = "run_policies"


class EvictionEngine:
    """Evaluate the enabled policies and close what they mark.

    Parameters
    ----------
    host : ResourceHost
        Live snapshots and removals.
    ledger : ActivityLedger
        Last-active timestamps; reloaded at the start of every cycle.
    history : ClosedHistory
        Receives one entry per closed resource.
    activity : ActivityLog
        Receives the per-cycle and per-policy summary lines.
    load_settings : callable
        Returns a fresh ``Settings`` snapshot.
    """

    def __init__(
        self,
        host: ResourceHost,
        ledger: ActivityLedger,
        history: ClosedHistory,
        activity: ActivityLog,
        load_settings: Callable[[], Settings],
        privileged_prefixes: Sequence[str] = DEFAULT_PRIVILEGED_PREFIXES,
        clock: Optional[Clock] = None,
    ) -> None:
        self.host = host
        self.ledger = ledger
        self.history = history
        self.activity = activity
        self.load_settings = load_settings
        self.privileged_prefixes = tuple(privileged_prefixes)
        self.clock = clock or now_ms
        self.state = CycleState.IDLE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_cycle(self) -> CycleResult:
        """Run every enabled policy once."""
        self.state = CycleState.TRIGGER
        self._reconcile_ledger()
        settings = self.load_settings()
        result = CycleResult(started_at=self.clock())
        self.activity.append("Running check...")

        self.state = CycleState.RUN_POLICIES
        try:
            if settings.duplicates_enabled:
                result.outcomes.append(self._run_policy(EvictionReason.DUPLICATE, settings))
            if settings.idle_enabled:
                result.outcomes.append(self._run_policy(EvictionReason.IDLE, settings))
            if settings.memory_enabled:
                result.outcomes.append(self._run_policy(EvictionReason.MEMORY, settings))
        finally:
            self.state = CycleState.IDLE

        log.debug(
            "Cycle closed %d resource(s)", result.closed_count, extra={"closed": result.closed_count}
        )
        return result

    # ------------------------------------------------------------------
    # Policy evaluation
    # ------------------------------------------------------------------

    def select(self, reason: EvictionReason, settings: Settings) -> List[Resource]:
        """Resources *reason*'s policy would close right now (no side effects)."""
        if reason is EvictionReason.MEMORY:
            samples = self.host.memory_samples()
            if not samples:
                return []
            return find_memory_heavy(
                self.host.list_resources(), samples, settings.memory_threshold_mb
            )

        resources = self.host.list_resources()
        if reason is EvictionReason.DUPLICATE:
            return find_duplicates(
                resources, self.ledger.last_active, self.privileged_prefixes
            )
        return find_idle(
            resources,
            self.ledger.last_active,
            now=self.clock(),
            threshold_ms=idle_threshold_ms(settings.idle_time, settings.idle_unit),
        )

    def _reconcile_ledger(self) -> None:
        # resources that appeared since the last cycle get "now" as last-active
        try:
            live = [r.id for r in self.host.list_resources()]
        except Exception:
            log.warning("Listing resources for the ledger failed", exc_info=True)
            self.ledger.reload()
            return
        self.ledger.reconcile(live)

    def _run_policy(self, reason: EvictionReason, settings: Settings) -> PolicyOutcome:
        outcome = PolicyOutcome(reason=reason)
        label = _REASON_LABELS[reason]

        try:
            marked = self.select(reason, settings)
        except Exception as exc:
            outcome.error = str(exc)
            log.warning(
                "Evaluating %s policy failed", label, exc_info=True, extra={"reason": reason.value}
            )
            self.activity.append(f"Failed to check {label} tabs: {exc}")
            return outcome

        outcome.marked = [r.id for r in marked]
        if not marked:
            return outcome

        try:
            self.host.remove(outcome.marked)
        except Exception as exc:
            outcome.error = str(exc)
            log.warning(
                "Closing %s tabs failed: %s",
                label,
                exc,
                extra={"reason": reason.value, "resource_ids": outcome.marked},
            )
            self.activity.append(f"Failed to close {label} tabs: {exc}")
            return outcome

        outcome.removed = True
        for rid in outcome.marked:
            self.ledger.forget(rid)
        log.debug(
            "Closed %d %s resource(s)",
            len(marked),
            label,
            extra={"reason": reason.value, "closed": len(marked), "resource_ids": outcome.marked},
        )
        self.history.record(marked, reason)
        self.activity.append(f"Closed {len(marked)} {label} tab(s)")
        return outcome
