"""Structured JSON logger for notionsync.

Every log record is emitted as a single-line JSON object so that sync
activity can be inspected with ordinary log tooling.

Typical structured output::

    {"ts": "2025-07-01T12:00:00.123456+00:00", "level": "INFO",
     "logger": "notionsync.executor", "message": "Sync finished",
     "op": "sync", "page_id": "abc123", "operations": 4}

All notionsync loggers share one level (:func:`set_level`) and, once
:func:`add_file_handler` has been called, one append-mode log file in
addition to their stream handler.

Usage::

    from notionsync.observability import get_logger, set_level

    set_level("info")
    log = get_logger("notionsync.cache")
    log.info("page saved", extra={"extra_fields": {"page_id": "abc"}})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    The formatter produces a JSON object with the keys ``ts``, ``level``,
    ``logger`` and ``message``.  Structured fields passed via
    ``extra={"extra_fields": {...}}`` are merged into the top-level object,
    and exception/stack information is serialised when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=str)


# Loggers configured by get_logger, by name.
_loggers: dict[str, logging.Logger] = {}
_level: int = logging.DEBUG
_file_handler: logging.FileHandler | None = None


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def get_logger(
    name: str = "notionsync",
    *,
    level: int | str | None = None,
    stream: Any | None = None,
) -> logging.Logger:
    """Get or create a structured JSON logger.

    Parameters
    ----------
    name:
        Logger name.  Sub-modules use dotted children such as
        ``"notionsync.cache"``.
    level:
        Level for this logger.  Defaults to the shared level last set with
        :func:`set_level`.
    stream:
        Output stream for the handler.  Defaults to ``sys.stderr``.

    Returns
    -------
    logging.Logger
        Repeated calls with the same *name* return the same logger and do
        **not** add duplicate handlers.
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(_level if level is None else _resolve_level(level))

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    if _file_handler is not None:
        logger.addHandler(_file_handler)

    # Records are fully rendered by our own handlers.
    logger.propagate = False
    _loggers[name] = logger
    return logger


def set_level(level: int | str) -> int:
    """Set the level of every notionsync logger, present and future.

    Accepts an ``int`` or a case-insensitive level name and returns the
    resolved ``int``.

    Raises
    ------
    ValueError
        If *level* is not a known level name.
    """
    global _level
    _level = _resolve_level(level)
    for logger in _loggers.values():
        logger.setLevel(_level)
    return _level


def get_level() -> int:
    """The shared level last set with :func:`set_level`."""
    return _level


def add_file_handler(path: str) -> logging.FileHandler:
    """Also write every notionsync logger's records to *path*.

    The file is opened in append mode and its directory is created if
    needed.  Calling again with the same path is a no-op; a different path
    replaces the previous file.
    """
    global _file_handler
    path = os.path.abspath(os.path.expanduser(path))
    if _file_handler is not None:
        if _file_handler.baseFilename == path:
            return _file_handler
        remove_file_handler()

    os.makedirs(os.path.dirname(path), exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(StructuredFormatter())
    for logger in _loggers.values():
        logger.addHandler(handler)
    _file_handler = handler
    return handler


def remove_file_handler() -> None:
    """Detach and close the log file handler, if any."""
    global _file_handler
    if _file_handler is None:
        return
    for logger in _loggers.values():
        logger.removeHandler(_file_handler)
    _file_handler.close()
    _file_handler = None
