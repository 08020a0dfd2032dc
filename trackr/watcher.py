"""Background loop that notices new commits in watched workspaces."""

import asyncio
import logging
from pathlib import Path

from .sync import SyncEngine, SyncResult

logger = logging.getLogger(__name__)

# Git metadata that changes whenever a commit lands on the checked-out branch
WATCHED_FILES = ("HEAD", "ORIG_HEAD", "packed-refs", "logs/HEAD")
WATCHED_DIRS = ("refs/heads",)

Fingerprint = tuple[tuple[str, int, int], ...]


def find_git_dir(workspace: Path) -> Path | None:
    """Locate the git directory of a workspace, following `gitdir:` files."""
    dot_git = workspace / ".git"
    if dot_git.is_dir():
        return dot_git
    if dot_git.is_file():
        # Worktrees and submodules point at their real git directory
        text = dot_git.read_text(encoding="utf-8", errors="replace").strip()
        if text.startswith("gitdir:"):
            target = Path(text[len("gitdir:"):].strip())
            if not target.is_absolute():
                target = workspace / target
            return target if target.is_dir() else None
    return None


def fingerprint(workspace: str | Path) -> Fingerprint:
    """Summarize the state of a workspace's git metadata.

    Returns an empty tuple when the workspace has no git directory.
    """
    git_dir = find_git_dir(Path(workspace).expanduser())
    if git_dir is None:
        return ()

    candidates = [git_dir / name for name in WATCHED_FILES]
    for name in WATCHED_DIRS:
        root = git_dir / name
        if root.is_dir():
            candidates.extend(p for p in root.rglob("*") if p.is_file())

    parts = []
    for path in sorted(candidates):
        try:
            stat = path.stat()
        except OSError:
            continue
        parts.append((str(path.relative_to(git_dir)), stat.st_mtime_ns, stat.st_size))
    return tuple(parts)


class GitWatcher:
    """Polls workspaces and runs one sync per observed metadata change."""

    def __init__(
        self,
        engine: SyncEngine,
        workspaces: list[str | Path],
        poll_interval: float = 2.0,
    ):
        """Initialize the watcher.

        Args:
            engine: Engine that records commits.
            workspaces: Repositories to watch.
            poll_interval: Seconds between metadata checks.
        """
        self._engine = engine
        self._workspaces = [Path(w).expanduser().resolve() for w in workspaces]
        self._interval = poll_interval
        self._fingerprints: dict[Path, Fingerprint] = {}
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def workspaces(self) -> list[Path]:
        return list(self._workspaces)

    def snapshot(self) -> None:
        """Record the current state so only later changes trigger syncs."""
        for workspace in self._workspaces:
            self._fingerprints[workspace] = fingerprint(workspace)

    async def check_once(self) -> list[SyncResult]:
        """Sync every workspace whose git metadata changed since the last check."""
        loop = asyncio.get_event_loop()
        results = []
        for workspace in self._workspaces:
            # rglob and stat block, so keep them off the loop
            current = await loop.run_in_executor(None, fingerprint, workspace)
            if current == self._fingerprints.get(workspace):
                continue

            self._fingerprints[workspace] = current
            logger.debug(f"Git metadata changed in {workspace}")
            results.append(await self._engine.sync_workspace(workspace))
        return results

    async def start(self) -> None:
        """Start watching as a background task."""
        if self._running:
            return

        await asyncio.get_event_loop().run_in_executor(None, self.snapshot)
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Watching {len(self._workspaces)} workspace(s) "
            f"every {self._interval}s"
        )

    async def stop(self) -> None:
        """Stop watching."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Watcher stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.check_once()
            except Exception as e:
                logger.error(f"Watcher check failed: {e}", exc_info=True)

            await asyncio.sleep(self._interval)

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Watch in the foreground until stop_event is set."""
        await self.start()
        try:
            if stop_event:
                await stop_event.wait()
            else:
                await asyncio.Event().wait()
        finally:
            await self.stop()
