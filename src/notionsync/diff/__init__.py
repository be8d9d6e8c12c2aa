"""Sync engine: planning and executing buffer-to-remote changes.

Exports
-------
SyncPlanner
    Computes the operations between a buffer and its last-synced snapshot.
SyncExecutor
    Applies a plan through a remote store.
needs_confirmation, format_plan
    Confirmation policy and plan preview.
compute_signature, lcs_match
    Content matching primitives.
"""

from .confirm import format_plan, needs_confirmation
from .executor import SyncExecutor
from .lcs_matcher import lcs_match
from .planner import SyncPlanner
from .signature import compute_signature

__all__ = [
    "SyncExecutor",
    "SyncPlanner",
    "compute_signature",
    "format_plan",
    "lcs_match",
    "needs_confirmation",
]
