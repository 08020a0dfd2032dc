"""Remote stores hosting the commit log."""

from ..config import RemoteConfig
from ..errors import ConfigurationError
from .base import RemoteFile, RemoteLogStore
from .github import GitHubLogStore
from .memory import InMemoryLogStore


def create_store(config: RemoteConfig) -> RemoteLogStore:
    """Build the store selected by the remote configuration.

    Raises:
        ConfigurationError: Unknown provider or incomplete GitHub settings.
    """
    if config.provider == "github":
        return GitHubLogStore(
            token=config.token,
            repo=config.repo,
            owner=config.owner,
            branch=config.branch,
            api_url=config.api_url,
            timeout=config.timeout,
        )
    if config.provider == "memory":
        return InMemoryLogStore()
    raise ConfigurationError(f"Unknown remote provider: {config.provider}")


__all__ = [
    "GitHubLogStore",
    "InMemoryLogStore",
    "RemoteFile",
    "RemoteLogStore",
    "create_store",
]
