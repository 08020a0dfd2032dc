"""Configuration loading for Trackr."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class RemoteConfig:
    """Where the commit log lives."""

    provider: str = "github"  # "github" or "memory"
    api_url: str = "https://api.github.com"
    owner: str = ""  # Empty: resolved from the token's user
    repo: str = "TrackrGitLog"
    path: str = "git.trackr.log"
    branch: str | None = None
    token: str | None = None
    timeout: float = 30.0


@dataclass
class SyncConfig:
    """Configuration for the append/retry loop."""

    max_attempts: int = 5
    backoff_seconds: float = 0.5
    max_backoff_seconds: float = 8.0
    mirror_enabled: bool = True
    mirror_path: str = "~/git.trackr.log"


@dataclass
class WatchConfig:
    workspaces: list[str] = field(default_factory=lambda: ["."])
    poll_interval_seconds: float = 2.0


@dataclass
class Config:
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with TRACKR_ prefix."""
    return os.environ.get(f"TRACKR_{key}", default)


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Remote overrides
    if provider := _get_env("REMOTE_PROVIDER"):
        config.remote.provider = provider
    if api_url := _get_env("API_URL"):
        config.remote.api_url = api_url
    if owner := _get_env("OWNER"):
        config.remote.owner = owner
    if repo := _get_env("REPO"):
        config.remote.repo = repo
    if path := _get_env("LOG_PATH"):
        config.remote.path = path
    if branch := _get_env("BRANCH"):
        config.remote.branch = branch
    if token := _get_env("TOKEN"):
        config.remote.token = token

    # Sync overrides
    if max_attempts := _get_env("SYNC_MAX_ATTEMPTS"):
        config.sync.max_attempts = int(max_attempts)
    if mirror_enabled := _get_env("MIRROR_ENABLED"):
        config.sync.mirror_enabled = _parse_bool(mirror_enabled)
    if mirror_path := _get_env("MIRROR_PATH"):
        config.sync.mirror_path = mirror_path

    # Watch overrides
    if workspaces := _get_env("WORKSPACES"):
        config.watch.workspaces = [w for w in workspaces.split(os.pathsep) if w]
    if poll_interval := _get_env("POLL_INTERVAL"):
        config.watch.poll_interval_seconds = float(poll_interval)

    # The conventional GitHub variable is the last resort for the token
    if not config.remote.token and (gh_token := os.environ.get("GITHUB_TOKEN")):
        config.remote.token = gh_token

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path).expanduser()
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse remote config
            if "remote" in data:
                remote_data = data["remote"]
                config.remote = RemoteConfig(
                    provider=remote_data.get("provider", config.remote.provider),
                    api_url=remote_data.get("api_url", config.remote.api_url),
                    owner=remote_data.get("owner", config.remote.owner),
                    repo=remote_data.get("repo", config.remote.repo),
                    path=remote_data.get("path", config.remote.path),
                    branch=remote_data.get("branch"),
                    token=remote_data.get("token"),
                    timeout=remote_data.get("timeout", config.remote.timeout),
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    max_attempts=sync_data.get(
                        "max_attempts", config.sync.max_attempts
                    ),
                    backoff_seconds=sync_data.get(
                        "backoff_seconds", config.sync.backoff_seconds
                    ),
                    max_backoff_seconds=sync_data.get(
                        "max_backoff_seconds", config.sync.max_backoff_seconds
                    ),
                    mirror_enabled=sync_data.get(
                        "mirror_enabled", config.sync.mirror_enabled
                    ),
                    mirror_path=sync_data.get("mirror_path", config.sync.mirror_path),
                )

            # Parse watch config
            if "watch" in data:
                watch_data = data["watch"]
                config.watch = WatchConfig(
                    workspaces=watch_data.get("workspaces", config.watch.workspaces),
                    poll_interval_seconds=watch_data.get(
                        "poll_interval_seconds", config.watch.poll_interval_seconds
                    ),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config
