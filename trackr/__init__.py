"""Trackr: mirror local git commits into a remote append-only log."""

from .commit_source import CommitRecord, GitCommitSource
from .config import Config, load_config
from .sync import DedupLedger, SyncEngine, SyncResult, SyncStatus

__version__ = "0.1.0"

__all__ = [
    "CommitRecord",
    "Config",
    "DedupLedger",
    "GitCommitSource",
    "SyncEngine",
    "SyncResult",
    "SyncStatus",
    "load_config",
]
