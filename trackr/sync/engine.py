"""Append newly observed commits to the remote log exactly once.

Writes use optimistic concurrency: the log is read together with its
version tag and written back conditionally on that tag. When another writer
got there first the whole read-modify-write cycle is repeated, a bounded
number of times with exponential backoff.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from ..commit_source import CommitRecord, GitCommitSource
from ..errors import RemoteConflict, RetryExhaustedError, TrackrError
from ..remote.base import RemoteLogStore
from .ledger import DedupLedger, format_entry, iter_entries
from .mirror import LocalMirror

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Outcome of syncing one commit."""

    APPENDED = "appended"
    SKIPPED = "skipped"  # Already recorded
    IGNORED = "ignored"  # Not a repository, or no commits yet
    FAILED = "failed"


@dataclass
class SyncResult:
    """Result of a sync operation."""

    status: SyncStatus
    commit: CommitRecord | None = None
    attempts: int = 0
    error: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)


class SyncEngine:
    """Mirrors commits into the remote log, deduplicating through a ledger."""

    def __init__(
        self,
        store: RemoteLogStore,
        ledger: DedupLedger | None = None,
        path: str = "git.trackr.log",
        commit_source: GitCommitSource | None = None,
        mirror: LocalMirror | None = None,
        max_attempts: int = 5,
        backoff_seconds: float = 0.5,
        max_backoff_seconds: float = 8.0,
    ):
        """Initialize the sync engine.

        Args:
            store: Remote store holding the log.
            ledger: Ledger to deduplicate against. A fresh one by default.
            path: Path of the log file inside the store.
            commit_source: Reader for workspace commits.
            mirror: Optional local copy refreshed after every append.
            max_attempts: Conditional writes tried per commit before giving up.
            backoff_seconds: Delay after the first conflict, doubled each time.
            max_backoff_seconds: Upper bound for a single delay.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.store = store
        self.ledger = ledger if ledger is not None else DedupLedger()
        self.path = path
        self.commit_source = commit_source or GitCommitSource()
        self.mirror = mirror
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds

        self._initialized = False
        self._last_sync: datetime | None = None
        self._counts = {status: 0 for status in SyncStatus}

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def last_sync(self) -> datetime | None:
        """Get timestamp of last successful append."""
        return self._last_sync

    async def initialize(self) -> int:
        """Seed the ledger from the current remote log.

        A missing log leaves the ledger empty. Any other failure propagates
        and the engine stays uninitialized, so the next trigger tries again.

        Returns:
            Number of hashes found in the remote log.
        """
        remote = await self.store.get_file(self.path)
        found = self.ledger.load(remote.content) if remote else set()
        self._initialized = True

        logger.info(
            f"Loaded {len(found)} recorded commits from "
            f"{self.store.describe()}/{self.path}"
        )
        return len(found)

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)

    def _finish(self, result: SyncResult) -> SyncResult:
        self._counts[result.status] += 1
        return result

    async def sync_one(self, commit: CommitRecord) -> SyncResult:
        """Ensure the log holds exactly one entry for the commit.

        Args:
            commit: Commit to record.

        Returns:
            APPENDED if this call wrote the entry, SKIPPED if it was already
            recorded.

        Raises:
            RetryExhaustedError: Every attempt lost against a concurrent writer.
            RemoteError: Any other remote failure. The ledger is unchanged.
        """
        entry = format_entry(commit)
        attempt = 0

        while True:
            if self.ledger.contains(commit.hash):
                logger.debug(f"Commit {commit.short_hash} already recorded, skipping")
                return self._finish(
                    SyncResult(status=SyncStatus.SKIPPED, commit=commit, attempts=attempt)
                )

            attempt += 1
            remote = await self.store.get_file(self.path)
            content = remote.content if remote else ""
            version = remote.version if remote else None

            # Another writer may have recorded this commit since we loaded
            if any(e.hash == commit.hash for e in iter_entries(content)):
                logger.debug(f"Commit {commit.short_hash} found in remote log")
                self.ledger.record(commit.hash)
                return self._finish(
                    SyncResult(status=SyncStatus.SKIPPED, commit=commit, attempts=attempt)
                )

            if content and not content.endswith("\n"):
                content += "\n"
            new_content = content + entry
            verb = "Update" if version else "Create"

            try:
                await self.store.put_file(
                    self.path,
                    new_content,
                    message=f"{verb} {self.path}",
                    expected_version=version,
                )
            except RemoteConflict:
                if attempt >= self.max_attempts:
                    raise RetryExhaustedError(commit.hash, attempt)

                delay = self._backoff(attempt)
                logger.warning(
                    f"Conflict writing {self.path}, "
                    f"attempt {attempt}/{self.max_attempts}, retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            self.ledger.record(commit.hash)
            self._last_sync = datetime.now()
            if self.mirror:
                self.mirror.write(new_content)

            logger.info(f"Tracked commit: {commit.message}")
            return self._finish(
                SyncResult(status=SyncStatus.APPENDED, commit=commit, attempts=attempt)
            )

    async def sync_workspace(self, workspace: str | Path) -> SyncResult:
        """Sync the latest commit of a workspace, reporting failures as results.

        This is the per-trigger entry point: no git or remote error escapes.
        """
        commit: CommitRecord | None = None
        try:
            commit = await self.commit_source.latest_commit(workspace)
            if commit is None:
                return self._finish(SyncResult(status=SyncStatus.IGNORED))

            # Skip the remote entirely when the commit is already known
            if self.ledger.contains(commit.hash):
                return await self.sync_one(commit)

            if not self._initialized:
                await self.initialize()

            return await self.sync_one(commit)

        except (TrackrError, ValueError) as e:
            logger.error(f"Failed to track git change in {workspace}: {e}")
            return self._finish(
                SyncResult(status=SyncStatus.FAILED, commit=commit, error=str(e))
            )

    def get_status(self) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dictionary with sync statistics.
        """
        return {
            "store": self.store.describe(),
            "path": self.path,
            "initialized": self._initialized,
            "recorded_commits": len(self.ledger),
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "appended": self._counts[SyncStatus.APPENDED],
            "skipped": self._counts[SyncStatus.SKIPPED],
            "failed": self._counts[SyncStatus.FAILED],
        }
