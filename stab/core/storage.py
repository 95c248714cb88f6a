"""
stab.core.storage — Durable key-value namespaces.

Two namespaces, one document each:

* ``sync``  — user settings, YAML (``settings.yaml``), meant to be
  shared across machines by whatever syncs the data directory.
* ``local`` — ledger, engagement, relationships, history and log,
  JSON (``local.json``), machine-local.

Every ``set()`` is a read-merge-write of the whole document under a
``FileLock`` followed by an atomic replace, so a crash mid-write leaves
the previous document intact and a redo after restart is harmless.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from stab.core.config import Config
from stab.core.filelock import FileLock

log = logging.getLogger(__name__)

FORMATS = ("json", "yaml")


class KeyValueStore:
    """One namespace persisted as a single JSON or YAML document."""

    def __init__(self, path: Path, fmt: str = "json") -> None:
        if fmt not in FORMATS:
            raise ValueError(f"Unknown storage format {fmt!r}; expected one of {FORMATS}")
        self.path = Path(path)
        self.fmt = fmt

    # -- reads --------------------------------------------------------------

    def get(self, defaults: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Stored values overlaid on *defaults*.

        With no defaults the whole document is returned.  With defaults,
        only the keys named there are returned.
        """
        data = self._read()
        if defaults is None:
            return data
        return {k: data.get(k, v) for k, v in defaults.items()}

    def get_one(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    # -- writes -------------------------------------------------------------

    def set(self, values: Mapping[str, Any]) -> None:
        """Merge *values* into the stored document."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(self.path):
            data = self._read()
            data.update(values)
            self._write(data)

    def delete(self, *keys: str) -> None:
        """Remove *keys* from the stored document; missing keys are ignored."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(self.path):
            data = self._read()
            for key in keys:
                data.pop(key, None)
            self._write(data)

    # -- internal -----------------------------------------------------------

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            text = self.path.read_text(encoding="utf-8")
            if self.fmt == "yaml":
                data = yaml.safe_load(text)
            else:
                data = json.loads(text) if text.strip() else {}
        except (OSError, ValueError, yaml.YAMLError):
            log.warning("Could not read %s, treating as empty", self.path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            log.warning("Ignoring non-mapping document in %s", self.path)
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        if self.fmt == "yaml":
            text = yaml.safe_dump(data, sort_keys=True, default_flow_style=False)
        else:
            text = json.dumps(data, indent=2, sort_keys=True)

        fd, tmp = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise


class Storage:
    """The two namespaces for one data directory."""

    def __init__(self, config: Config) -> None:
        self.sync = KeyValueStore(config.sync_path, fmt="yaml")
        self.local = KeyValueStore(config.local_path, fmt="json")
