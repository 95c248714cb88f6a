"""
stab.inference.pipeline — Infer workspaces and consolidate them.

    IDLE -> BUILDING_CONTEXT -> AWAITING_SERVICE -> VALIDATING
         -> APPLYING -> DONE

``FAILED`` is reachable from any step that calls out (host or service).
The pipeline never retries and cannot be cancelled once started; a
caller that stops waiting still gets the log entries and groupings.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional, Sequence

from stab.activity.log import ActivityLog
from stab.activity.tracker import EngagementTracker
from stab.core.config import DEFAULT_PRIVILEGED_PREFIXES, Settings
from stab.core.errors import CategorizationError, MissingCredentialError, StabError
from stab.core.types import InferenceResult, LLMFunc
from stab.host import ResourceHost
from stab.inference.apply import apply_workspaces
from stab.inference.context import build_context
from stab.inference.parse import parse_workspaces, validate
from stab.inference.prompt import WORKSPACE_SYSTEM, build_prompt

log = logging.getLogger(__name__)

#: The only values ``InferenceResult.error`` takes on failure.
RESULT_ERROR_KINDS = ("no-credential", "service-error", "unexpected")


class PipelineState(Enum):
    IDLE = "idle"
    BUILDING_CONTEXT = "building_context"
    AWAITING_SERVICE = "awaiting_service"
    VALIDATING = "validating"
    APPLYING = "applying"
    DONE = "done"
    FAILED = "failed"


class WorkspaceInference:
    """One-shot workspace inference against the live resource set.

    Parameters
    ----------
    host : ResourceHost
        Snapshots (taken at context build and again at validation) and
        grouping calls.
    tracker : EngagementTracker
        Engagement and relationship data; read fresh on every run.
    activity : ActivityLog
        Receives progress and failure lines.
    load_settings : callable
        Returns a fresh ``Settings`` (grouping mode, stored API key).
    categorizer_factory : callable
        ``(credential) -> LLMFunc``; usually ``Config.get_categorizer``.
    """

    def __init__(
        self,
        host: ResourceHost,
        tracker: EngagementTracker,
        activity: ActivityLog,
        load_settings: Callable[[], Settings],
        categorizer_factory: Callable[[str], LLMFunc],
        privileged_prefixes: Sequence[str] = DEFAULT_PRIVILEGED_PREFIXES,
        max_relationships: int = 50,
        min_relationship_count: int = 2,
    ) -> None:
        self.host = host
        self.tracker = tracker
        self.activity = activity
        self.load_settings = load_settings
        self.categorizer_factory = categorizer_factory
        self.privileged_prefixes = tuple(privileged_prefixes)
        self.max_relationships = max_relationships
        self.min_relationship_count = min_relationship_count
        self.state = PipelineState.IDLE

    def run(self, credential: Optional[str] = None) -> InferenceResult:
        """Run the pipeline once.  Never raises; failures come back typed."""
        self.state = PipelineState.IDLE
        try:
            return self._run(credential)
        except StabError as exc:
            kind = exc.kind if exc.kind in RESULT_ERROR_KINDS else "unexpected"
            return self._fail(kind, str(exc))
        except Exception as exc:
            log.exception("Workspace inference failed unexpectedly")
            return self._fail("unexpected", str(exc) or type(exc).__name__)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _run(self, credential: Optional[str]) -> InferenceResult:
        settings = self.load_settings()
        credential = credential or settings.api_key
        if not credential:
            raise MissingCredentialError()

        self.state = PipelineState.BUILDING_CONTEXT
        context = build_context(
            self.host.list_resources(),
            self.tracker,
            privileged_prefixes=self.privileged_prefixes,
            max_relationships=self.max_relationships,
            min_relationship_count=self.min_relationship_count,
        )
        if not context.sufficient:
            self.state = PipelineState.DONE
            self.activity.append("Not enough tabs to infer workspaces")
            return InferenceResult(ok=True, state=self.state.value)

        categorize = self.categorizer_factory(credential)
        self.activity.append(
            f"Inferring workspaces for {len(context.resources)} tab(s), "
            f"{len(context.relationships)} relationship(s)"
        )

        self.state = PipelineState.AWAITING_SERVICE
        try:
            raw = categorize(build_prompt(context), WORKSPACE_SYSTEM)
        except Exception as exc:
            raise CategorizationError(f"Categorization service failed: {exc}", cause=exc) from exc

        self.state = PipelineState.VALIDATING
        proposals = parse_workspaces(raw)
        live_ids = [r.id for r in self.host.list_resources()]
        workspaces = validate(proposals, live_ids, report=self.activity.append)
        if len(workspaces) < len(proposals):
            self.activity.append(
                f"Discarded {len(proposals) - len(workspaces)} workspace(s) "
                f"with fewer than 2 open tabs"
            )

        self.state = PipelineState.APPLYING
        applied, failed = apply_workspaces(self.host, workspaces, mode=settings.grouping_mode)
        for ws, error in failed:
            self.activity.append(f"Failed to create workspace {ws.name!r}: {error}")

        self.state = PipelineState.DONE
        self.activity.append(f"Created {len(applied)} workspace(s)")
        return InferenceResult(
            ok=True,
            applied=len(applied),
            workspaces=applied,
            message=f"Created {len(applied)} workspace(s)",
            state=self.state.value,
        )

    def _fail(self, kind: str, message: str) -> InferenceResult:
        failed_at = self.state
        self.state = PipelineState.FAILED
        log.warning(
            "Workspace inference failed during %s: %s",
            failed_at.value,
            message,
            extra={"state": failed_at.value, "error_kind": kind},
        )
        self.activity.append(f"Workspace inference failed: {message}")
        return InferenceResult(ok=False, error=kind, message=message, state=self.state.value)
