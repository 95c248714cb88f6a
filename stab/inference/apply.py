"""
stab.inference.apply — Ask the host to consolidate validated workspaces.

Two modes:

``window``  open a new window seeded with the first member, then move
            the rest in.
``group``   create one labelled group per workspace, coloured
            round-robin from ``PALETTE``.  The rotation restarts on
            every run.

Each workspace is attempted independently.
"""

from __future__ import annotations

import logging
from itertools import cycle
from typing import Iterable, List, Tuple

from stab.core.types import WorkspaceResult
from stab.host import ResourceHost

log = logging.getLogger(__name__)

PALETTE: Tuple[str, ...] = (
    "grey",
    "blue",
    "red",
    "yellow",
    "green",
    "pink",
    "purple",
    "cyan",
    "orange",
)


def apply_workspaces(
    host: ResourceHost,
    workspaces: Iterable[WorkspaceResult],
    mode: str = "group",
) -> Tuple[List[WorkspaceResult], List[Tuple[WorkspaceResult, str]]]:
    """Apply each workspace.  Returns ``(applied, [(failed, error), ...])``."""
    colors = cycle(PALETTE)
    applied: List[WorkspaceResult] = []
    failed: List[Tuple[WorkspaceResult, str]] = []

    for ws in workspaces:
        color = next(colors)
        try:
            if mode == "window":
                seed, rest = ws.tab_ids[0], ws.tab_ids[1:]
                window_id = host.create_window(seed)
                if rest:
                    host.move_to_window(rest, window_id)
            else:
                host.group(ws.tab_ids, ws.name, color)
        except Exception as exc:
            log.warning(
                "Applying workspace %r failed: %s", ws.name, exc, extra={"workspace": ws.name}
            )
            failed.append((ws, str(exc)))
            continue
        applied.append(ws)

    return applied, failed
