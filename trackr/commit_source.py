"""Read the most recent commit of a local git repository."""

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .errors import GitError

logger = logging.getLogger(__name__)

# Hash, strict ISO-8601 author date and subject, NUL separated
LOG_FORMAT = "%H%x00%aI%x00%s"


@dataclass(frozen=True)
class CommitRecord:
    """A commit as observed in a workspace."""

    hash: str
    message: str
    timestamp: str

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class GitCommitSource:
    """Reads commits by shelling out to the git CLI."""

    def __init__(self, git_binary: str = "git"):
        self.git_binary = git_binary

    def _run(self, workspace: Path, *args: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.git_binary, *args],
                cwd=workspace,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise GitError(f"git executable not found: {self.git_binary}") from e
        except OSError as e:
            raise GitError(f"Failed to run git in {workspace}: {e}") from e

    def is_repository(self, workspace: str | Path) -> bool:
        """Check whether the path is inside a git work tree."""
        path = Path(workspace).expanduser()
        if not path.is_dir():
            return False

        result = self._run(path, "rev-parse", "--is-inside-work-tree")
        return result.returncode == 0 and result.stdout.strip() == "true"

    def read_latest(self, workspace: str | Path) -> CommitRecord | None:
        """Blocking variant of latest_commit()."""
        path = Path(workspace).expanduser()
        if not self.is_repository(path):
            logger.debug(f"{path} is not a git repository")
            return None

        result = self._run(path, "log", "-1", f"--format={LOG_FORMAT}")
        if result.returncode != 0:
            # Fresh repositories fail with "does not have any commits yet"
            logger.debug(f"No commits in {path}: {result.stderr.strip()}")
            return None

        line = result.stdout.rstrip("\n")
        parts = line.split("\x00")
        if len(parts) != 3 or not parts[0]:
            logger.debug(f"No commits in {path}")
            return None

        commit_hash, timestamp, message = parts
        return CommitRecord(hash=commit_hash, message=message, timestamp=timestamp)

    async def latest_commit(self, workspace: str | Path) -> CommitRecord | None:
        """Get the most recent commit on the checked-out branch.

        Args:
            workspace: Path inside the repository.

        Returns:
            The HEAD commit, or None if the path is not a repository or the
            repository has no commits.

        Raises:
            GitError: The git executable could not be run.
        """
        # Run blocking git call in thread pool
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self.read_latest, workspace)
