"""Buffer sessions: line buffers, position markers, and the session arena."""

from __future__ import annotations

from .markers import MarkerTable
from .protection import find_readonly_violations, restore_readonly
from .session import Session, SessionContext, SessionRegistry

__all__ = [
    "MarkerTable",
    "Session",
    "SessionContext",
    "SessionRegistry",
    "find_readonly_violations",
    "restore_readonly",
]
