"""
stab.host — The capability boundary between stab and whatever owns the
resources (a browser, a window manager, a test double).

stab never creates resources; it enumerates them, asks for removals, and
asks for groupings.  Memory sampling is optional: a host without it
returns ``None`` from ``memory_samples()`` and the memory policy quietly
does nothing.

``SnapshotHost`` is a file-backed host used by the CLI: it reads a JSON
snapshot of resources and writes removals and groupings back to it.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from stab.core.errors import HostError
from stab.core.filelock import FileLock
from stab.core.types import Resource

log = logging.getLogger(__name__)


class ResourceHost(ABC):
    """Abstract resource directory, removal, grouping and sampling."""

    @abstractmethod
    def list_resources(self) -> List[Resource]:
        """Every live resource, in host order."""

    @abstractmethod
    def remove(self, resource_ids: Iterable[str]) -> None:
        """Remove all of *resource_ids* in one call; raise ``HostError`` on failure."""

    @abstractmethod
    def create_window(self, seed_id: str) -> str:
        """Open a new window holding *seed_id*; return the window id."""

    @abstractmethod
    def move_to_window(self, resource_ids: Iterable[str], window_id: str) -> None:
        """Move *resource_ids* into *window_id*."""

    @abstractmethod
    def group(self, resource_ids: Iterable[str], title: str, color: str) -> str:
        """Create a labelled, coloured group of *resource_ids*; return its id."""

    def memory_samples(self) -> Optional[Dict[str, int]]:
        """Map resource id to private memory bytes, or ``None`` when unavailable."""
        return None


class NullHost(ResourceHost):
    """A host with no resources, for commands that only touch storage."""

    def list_resources(self) -> List[Resource]:
        return []

    def remove(self, resource_ids: Iterable[str]) -> None:
        raise HostError("No host attached")

    def create_window(self, seed_id: str) -> str:
        raise HostError("No host attached")

    def move_to_window(self, resource_ids: Iterable[str], window_id: str) -> None:
        raise HostError("No host attached")

    def group(self, resource_ids: Iterable[str], title: str, color: str) -> str:
        raise HostError("No host attached")


class SnapshotHost(ResourceHost):
    """Host backed by a JSON document.

    Document shape::

        {
          "resources": [{"id": "1", "url": "...", "title": "...",
                         "pinned": false, "active": true, "window_id": "w1"}],
          "memory": {"1": 734003200},          # optional
          "groups": [{"id": "g1", "title": "...", "color": "blue",
                      "tabIds": ["1", "2"]}]
        }

    A snapshot without a ``memory`` key has no memory sampling capability.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        if not self.path.exists():
            raise FileNotFoundError(f"Resource snapshot not found: {self.path}")

    # -- directory ----------------------------------------------------------

    def list_resources(self) -> List[Resource]:
        return [Resource.from_dict(r) for r in self._read().get("resources", [])]

    def memory_samples(self) -> Optional[Dict[str, int]]:
        memory = self._read().get("memory")
        if memory is None:
            return None
        return {str(k): int(v) for k, v in memory.items()}

    # -- mutations ----------------------------------------------------------

    def remove(self, resource_ids: Iterable[str]) -> None:
        ids = {str(i) for i in resource_ids}
        with FileLock(self.path):
            doc = self._read()
            resources = doc.get("resources", [])
            known = {str(r["id"]) for r in resources}
            missing = ids - known
            if missing:
                raise HostError(f"No resource with id(s): {', '.join(sorted(missing))}")
            doc["resources"] = [r for r in resources if str(r["id"]) not in ids]
            memory = doc.get("memory")
            if memory is not None:
                doc["memory"] = {k: v for k, v in memory.items() if str(k) not in ids}
            self._write(doc)
        log.debug("Removed %d resource(s) from %s", len(ids), self.path)

    def create_window(self, seed_id: str) -> str:
        with FileLock(self.path):
            doc = self._read()
            windows = {
                str(r.get("window_id")) for r in doc.get("resources", []) if r.get("window_id")
            }
            window_id = f"w{len(windows) + 1}"
            while window_id in windows:
                window_id += "'"
            self._set_window(doc, [str(seed_id)], window_id)
            self._write(doc)
        return window_id

    def move_to_window(self, resource_ids: Iterable[str], window_id: str) -> None:
        with FileLock(self.path):
            doc = self._read()
            self._set_window(doc, [str(i) for i in resource_ids], str(window_id))
            self._write(doc)

    def group(self, resource_ids: Iterable[str], title: str, color: str) -> str:
        ids = [str(i) for i in resource_ids]
        with FileLock(self.path):
            doc = self._read()
            known = {str(r["id"]) for r in doc.get("resources", [])}
            missing = [i for i in ids if i not in known]
            if missing:
                raise HostError(f"Cannot group missing resource(s): {', '.join(missing)}")
            groups = doc.setdefault("groups", [])
            group_id = f"g{len(groups) + 1}"
            groups.append({"id": group_id, "title": title, "color": color, "tabIds": ids})
            self._write(doc)
        return group_id

    # -- internal -----------------------------------------------------------

    def _set_window(self, doc: Dict[str, Any], ids: List[str], window_id: str) -> None:
        by_id = {str(r["id"]): r for r in doc.get("resources", [])}
        missing = [i for i in ids if i not in by_id]
        if missing:
            raise HostError(f"Cannot move missing resource(s): {', '.join(missing)}")
        for rid in ids:
            by_id[rid]["window_id"] = window_id

    def _read(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise HostError(f"Unreadable resource snapshot {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise HostError(f"Resource snapshot {self.path} is not a JSON object")
        return data

    def _write(self, doc: Dict[str, Any]) -> None:
        self.path.write_text(json.dumps(doc, indent=2), encoding="utf-8")
