"""Commit log synchronization.

Deduplicates observed commits against the remote log and appends new ones
with conditional writes.
"""

from .engine import SyncEngine, SyncResult, SyncStatus
from .ledger import DedupLedger, LogEntry, format_entry, parse_entry, parse_log, render_log
from .mirror import LocalMirror

__all__ = [
    "DedupLedger",
    "LocalMirror",
    "LogEntry",
    "SyncEngine",
    "SyncResult",
    "SyncStatus",
    "format_entry",
    "parse_entry",
    "parse_log",
    "render_log",
]
