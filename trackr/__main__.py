"""CLI entry point for Trackr."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import Config, load_config
from .errors import ConfigurationError, GitError, TrackrError
from .remote import create_store
from .sync import LocalMirror, SyncEngine, SyncStatus, parse_log
from .watcher import GitWatcher

logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Safe JSON serialization
        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def build_engine(config: Config) -> SyncEngine:
    """Wire a sync engine from configuration."""
    if config.sync.max_attempts < 1:
        raise ConfigurationError(
            f"sync.max_attempts must be at least 1, got {config.sync.max_attempts}"
        )

    store = create_store(config.remote)
    mirror = LocalMirror(config.sync.mirror_path) if config.sync.mirror_enabled else None

    return SyncEngine(
        store=store,
        path=config.remote.path,
        mirror=mirror,
        max_attempts=config.sync.max_attempts,
        backoff_seconds=config.sync.backoff_seconds,
        max_backoff_seconds=config.sync.max_backoff_seconds,
    )


async def cmd_run(args: argparse.Namespace) -> int:
    """Sync once, then watch workspaces for new commits."""
    config = load_config(args.config)
    engine = build_engine(config)

    print(f"Starting Trackr: {engine.store.describe()}/{config.remote.path}")
    for workspace in config.watch.workspaces:
        print(f"Watching: {workspace}")

    try:
        try:
            await engine.initialize()
        except TrackrError as e:
            # Retried on the first change the watcher sees
            logger.error(f"Trackr initialization failed: {e}")

        for workspace in config.watch.workspaces:
            await engine.sync_workspace(workspace)

        watcher = GitWatcher(
            engine,
            config.watch.workspaces,
            poll_interval=config.watch.poll_interval_seconds,
        )
        await watcher.run()
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\nShutting down...")
    finally:
        await engine.store.close()

    return 0


async def cmd_sync(args: argparse.Namespace) -> int:
    """Record the latest commit of each workspace."""
    config = load_config(args.config)
    engine = build_engine(config)
    workspaces = args.workspaces or config.watch.workspaces

    failed = 0
    try:
        for workspace in workspaces:
            result = await engine.sync_workspace(workspace)
            if result.status == SyncStatus.FAILED:
                failed += 1
                print(f"{workspace}: failed: {result.error}", file=sys.stderr)
            elif result.commit:
                print(f"{workspace}: {result.status.value} {result.commit.short_hash} {result.commit.message}")
            else:
                print(f"{workspace}: {result.status.value} (no repository or no commits)")
    finally:
        await engine.store.close()

    return 1 if failed else 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Check remote connectivity and ledger state."""
    config = load_config(args.config)
    engine = build_engine(config)

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "remote": {
            "provider": config.remote.provider,
            "location": engine.store.describe(),
            "path": config.remote.path,
            "branch": config.remote.branch,
            "reachable": False,
            "error": None,
        },
        "workspaces": [],
        "mirror": config.sync.mirror_path if config.sync.mirror_enabled else None,
    }

    try:
        await engine.initialize()
        status_data["remote"]["reachable"] = True
    except TrackrError as e:
        status_data["remote"]["error"] = str(e)
    finally:
        await engine.store.close()

    loop = asyncio.get_event_loop()
    for workspace in config.watch.workspaces:
        entry = {"path": workspace, "repository": False, "error": None}
        try:
            entry["repository"] = await loop.run_in_executor(
                None, engine.commit_source.is_repository, workspace
            )
        except GitError as e:
            entry["error"] = str(e)
        status_data["workspaces"].append(entry)

    status_data["sync"] = engine.get_status()

    if args.json:
        print(json.dumps(status_data, indent=2))
    else:
        remote = status_data["remote"]
        print("Trackr Status Check")
        print("===================")
        print(f"Remote ({remote['location']}/{remote['path']}):")
        if remote["reachable"]:
            print("  Status: Connected")
            print(f"  Recorded commits: {status_data['sync']['recorded_commits']}")
        else:
            print("  Status: Not reachable")
            print(f"  Error: {remote['error']}")
        print()

        print("Workspaces:")
        for workspace in status_data["workspaces"]:
            if workspace["error"]:
                state = f"error: {workspace['error']}"
            elif workspace["repository"]:
                state = "git repository"
            else:
                state = "not a repository"
            print(f"  {workspace['path']}: {state}")
        print()

        print(f"Local mirror: {status_data['mirror'] or 'disabled'}")

    return 0 if status_data["remote"]["reachable"] else 1


async def cmd_show(args: argparse.Namespace) -> int:
    """Print the most recent entries of the remote log."""
    config = load_config(args.config)
    store = create_store(config.remote)

    try:
        remote = await store.get_file(config.remote.path)
    except TrackrError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await store.close()

    if remote is None:
        print(f"{config.remote.path} does not exist yet")
        return 0

    entries = parse_log(remote.content)
    for entry in entries[-args.limit:] if args.limit > 0 else entries:
        print(f"{entry.timestamp}  {entry.hash[:7]}  {entry.message}")

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="trackr",
        description="Mirror the commits of local git repositories into a remote log",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs (and status) as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Watch workspaces and track new commits")
    run_parser.set_defaults(func=cmd_run)

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Track the latest commit once")
    sync_parser.add_argument(
        "workspaces",
        nargs="*",
        help="Repositories to sync (default: configured workspaces)",
    )
    sync_parser.set_defaults(func=cmd_sync)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check remote connectivity")
    status_parser.set_defaults(func=cmd_status)

    # Show command
    show_parser = subparsers.add_parser("show", help="Print the remote commit log")
    show_parser.add_argument(
        "-n", "--limit",
        type=int,
        default=20,
        help="Number of entries to show, 0 for all (default: 20)",
    )
    show_parser.set_defaults(func=cmd_show)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
