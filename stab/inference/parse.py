"""
stab.inference.parse — Tolerant parsing and validation of the
categorization service's answer.

The service may wrap its JSON in prose or markdown fences.  Anything
that does not yield a JSON object counts as "no workspaces", not as an
error.  Proposals are then checked against the live resource set, which
may have changed while the service was thinking.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from stab.core.types import WorkspaceResult

log = logging.getLogger(__name__)

MIN_WORKSPACE_SIZE = 2

_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.S)
_BRACES = re.compile(r"\{.*\}", re.S)


@dataclass
class Proposal:
    name: str
    tab_ids: List[str]


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """First JSON object found in *text*, or ``None``.

    A fenced block is tried first; if it holds no object the whole
    response is searched.
    """
    if not text:
        return None
    text = text.strip()

    fence = _FENCE.search(text)
    if fence:
        data = _first_object(fence.group(1).strip())
        if data is not None:
            return data
    return _first_object(text)


def _first_object(text: str) -> Optional[Dict[str, Any]]:
    candidates = [text]
    braces = _BRACES.search(text)
    if braces:
        candidates.append(braces.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data

    # prose around the object may itself contain braces
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start >= 0:
        try:
            data, _ = decoder.raw_decode(text, start)
            return data
        except ValueError:
            start = text.find("{", start + 1)
    return None


def parse_workspaces(text: str) -> List[Proposal]:
    """Workspace proposals in *text*; malformed entries are skipped."""
    data = extract_json_object(text)
    if data is None:
        log.info("Categorization response contained no JSON object")
        return []

    raw = data.get("workspaces")
    if not isinstance(raw, list):
        return []

    proposals = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        ids = item.get("tabIds", item.get("tab_ids"))
        if not isinstance(ids, list):
            continue
        name = str(item.get("name") or "Workspace").strip() or "Workspace"
        proposals.append(Proposal(name=name, tab_ids=[_normalise_id(i) for i in ids]))
    return proposals


def validate(
    proposals: Iterable[Proposal],
    live_ids: Iterable[str],
    report: Optional[Callable[[str], None]] = None,
) -> List[WorkspaceResult]:
    """Keep each proposal's ids that are still live; drop proposals left with < 2.

    The valid-id count of every proposal is logged and, when given,
    passed to *report* as one line.
    """
    live = {str(i) for i in live_ids}
    claimed = set()
    valid = []
    for p in proposals:
        ids = []
        for rid in p.tab_ids:
            if rid in live and rid not in claimed and rid not in ids:
                ids.append(rid)
        line = f"Workspace {p.name!r}: {len(ids)} of {len(p.tab_ids)} proposed tab ids are valid"
        log.info("%s", line)
        if report is not None:
            report(line)
        if len(ids) < MIN_WORKSPACE_SIZE:
            continue
        claimed.update(ids)
        valid.append(WorkspaceResult(name=p.name, tab_ids=ids))
    return valid


def _normalise_id(value: Any) -> str:
    # JSON numbers like 12.0 should still match resource "12"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)
