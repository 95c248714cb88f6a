"""
stab.core.logging — JSON log lines for unattended runs.

The CLI logs human-readable text to stderr.  A long-running ``stab watch``
under a supervisor is easier to grep as one JSON object per line::

    from stab.core.logging import configure_logging

    configure_logging(structured=True, level="DEBUG")

Engine log calls attach context through ``extra=``; any of
``CONTEXT_FIELDS`` present on a record is copied into the JSON object.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import IO, Optional

#: Record attributes the engines set through ``extra=``.
CONTEXT_FIELDS = ("reason", "closed", "resource_ids", "workspace", "state", "error_kind")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Always present: ``ts`` (UTC, millisecond precision), ``level``,
    ``logger``, ``msg``.  Source location is only added at DEBUG.
    """

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": "%s.%03dZ" % (self.formatTime(record, "%Y-%m-%dT%H:%M:%S"), record.msecs),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.levelno <= logging.DEBUG:
            entry["where"] = f"{record.module}:{record.lineno}"
        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(
    structured: bool = False,
    level: str = "INFO",
    logger_name: str = "stab",
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Set the level of the ``stab`` logger tree; with *structured*, emit JSON.

    Calling it again replaces the JSON handler rather than adding a second.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not structured:
        return logger

    for handler in list(logger.handlers):
        if isinstance(handler.formatter, StructuredFormatter):
            logger.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
