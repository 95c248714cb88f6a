"""
stab.core.filelock — Advisory lock around a storage document.

Serialises the read-merge-write cycle of ``KeyValueStore.set()`` so a
CLI invocation and a running ``watch`` loop cannot interleave writes to
the same namespace.  The lock is a ``<document>.lock`` sidecar created
with ``O_CREAT | O_EXCL``.

Usage::

    with FileLock(path):
        data = json.loads(path.read_text())
        data.update(changes)
        path.write_text(json.dumps(data))
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from types import TracebackType
from typing import Optional, Type

log = logging.getLogger(__name__)


class FileLock:
    """Sidecar-file lock.

    Parameters
    ----------
    path : Path
        The document to protect.  The lock file is ``path.lock``.
    timeout : float
        Seconds to wait before giving up (default 5).
    poll : float
        Seconds between attempts (default 0.05).
    """

    def __init__(self, path: Path, timeout: float = 5.0, poll: float = 0.05) -> None:
        self.lock_path = Path(str(path) + ".lock")
        self.timeout = timeout
        self.poll = poll
        self._fd: Optional[int] = None

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.release()

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Block until the lock is held or *timeout* expires.

        A lock file older than twice the timeout is treated as left
        behind by a dead process and broken once.
        """
        deadline = time.monotonic() + self.timeout
        broke_stale = False
        while True:
            try:
                self._fd = os.open(
                    str(self.lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY
                )
                return
            except FileExistsError:
                pass

            if time.monotonic() < deadline:
                time.sleep(self.poll)
                continue

            if not broke_stale and self._lock_age() > self.timeout * 2:
                log.warning("Breaking stale lock: %s", self.lock_path)
                self._unlink()
                broke_stale = True
                continue

            raise TimeoutError(
                f"Could not acquire lock on {self.lock_path} within {self.timeout}s"
            )

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            os.close(self._fd)
        except OSError:
            log.debug("Closing lock descriptor failed", exc_info=True)
        self._fd = None
        self._unlink()

    def _lock_age(self) -> float:
        try:
            return time.time() - os.path.getmtime(str(self.lock_path))
        except OSError:
            return 0.0

    def _unlink(self) -> None:
        try:
            os.unlink(str(self.lock_path))
        except FileNotFoundError:
            pass
