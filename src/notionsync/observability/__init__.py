"""Observability: structured logging and metrics hooks for notionsync."""

from __future__ import annotations

from .logger import (
    StructuredFormatter,
    add_file_handler,
    get_level,
    get_logger,
    remove_file_handler,
    set_level,
)
from .metrics import MetricsHook, NoopMetricsHook

__all__ = [
    "MetricsHook",
    "NoopMetricsHook",
    "StructuredFormatter",
    "add_file_handler",
    "get_level",
    "get_logger",
    "remove_file_handler",
    "set_level",
]
