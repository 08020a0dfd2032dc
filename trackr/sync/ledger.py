"""Commit log line format and the in-memory dedup ledger.

Each commit is one line of the remote log:

    [2024-01-01T00:00:00Z] deadbeef: Initial commit

The timestamp never contains ``]`` and the hash never contains whitespace,
colons or brackets, so the first ``] `` and the first ``:`` after it are
always the field boundaries. The message may contain anything except line
breaks, which are folded into spaces when an entry is written. Any separator
str.splitlines() recognises counts as a line break, including U+2028 and
U+0085.
"""

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from ..commit_source import CommitRecord

logger = logging.getLogger(__name__)

ENTRY_PATTERN = re.compile(r"^\[([^\]\r\n]*)\] ([^\s:\[\]]+): ?(.*)$")

# Every boundary str.splitlines() honours, so no reader can split an entry
_LINE_BREAKS = re.compile(r"[\r\n\v\f\x1c\x1d\x1e\x85\u2028\u2029]+")
_INVALID_HASH = re.compile(r"[\s:\[\]]")


@dataclass(frozen=True)
class LogEntry:
    """One parsed line of the remote log."""

    timestamp: str
    hash: str
    message: str

    def to_line(self) -> str:
        """Serialize to the on-disk line, including the trailing newline."""
        if "]" in self.timestamp or _LINE_BREAKS.search(self.timestamp):
            raise ValueError(f"Timestamp cannot be written to the log: {self.timestamp!r}")
        if not self.hash or _INVALID_HASH.search(self.hash):
            raise ValueError(f"Commit hash cannot be written to the log: {self.hash!r}")

        message = _LINE_BREAKS.sub(" ", self.message)
        return f"[{self.timestamp}] {self.hash}: {message}\n"

    @classmethod
    def from_commit(cls, commit: CommitRecord) -> "LogEntry":
        return cls(timestamp=commit.timestamp, hash=commit.hash, message=commit.message)


def format_entry(commit: CommitRecord) -> str:
    """Render a commit as a log line."""
    return LogEntry.from_commit(commit).to_line()


def parse_entry(line: str) -> LogEntry | None:
    """Parse a single log line, returning None if it is not an entry."""
    match = ENTRY_PATTERN.match(line.rstrip("\r\n"))
    if not match:
        return None
    timestamp, commit_hash, message = match.groups()
    return LogEntry(timestamp=timestamp, hash=commit_hash, message=message)


def iter_entries(content: str) -> Iterator[LogEntry]:
    """Yield every well-formed entry in log content, in file order."""
    # Entries end with "\n" only; other separators are part of a message
    for line in content.split("\n"):
        if not line.strip():
            continue
        entry = parse_entry(line)
        if entry is None:
            logger.debug(f"Skipping malformed log line: {line[:80]!r}")
            continue
        yield entry


def parse_log(content: str) -> list[LogEntry]:
    return list(iter_entries(content))


def render_log(entries: Iterable[LogEntry]) -> str:
    return "".join(entry.to_line() for entry in entries)


class DedupLedger:
    """Set of commit hashes known to be recorded in the remote log.

    This is a cache of the remote log, never a source of truth: it is seeded
    from the remote content and only grows after a write is confirmed.
    """

    def __init__(self, hashes: Iterable[str] = ()):
        self._hashes: set[str] = set(hashes)

    def load(self, content: str) -> set[str]:
        """Seed the ledger from remote log content.

        Args:
            content: Full text of the remote log. Lines that are not entries
                are ignored.

        Returns:
            The set of hashes found in the content.
        """
        found = {entry.hash for entry in iter_entries(content)}
        self._hashes.update(found)
        return found

    def contains(self, commit_hash: str) -> bool:
        return commit_hash in self._hashes

    def record(self, commit_hash: str) -> None:
        """Mark a hash as durably written. Call only after the write succeeded."""
        self._hashes.add(commit_hash)

    def __contains__(self, commit_hash: object) -> bool:
        return commit_hash in self._hashes

    def __len__(self) -> int:
        return len(self._hashes)

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._hashes)
