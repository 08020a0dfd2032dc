"""Abstract remote log store."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RemoteFile:
    """Content of a remote file together with its version tag."""

    content: str
    version: str


class RemoteLogStore(ABC):
    """Abstract base for stores hosting the append-only commit log.

    Writes are conditional: a write only succeeds if the file is still at
    the version the caller last read.
    """

    @abstractmethod
    async def get_file(self, path: str) -> RemoteFile | None:
        """Fetch a file.

        Args:
            path: Path of the file inside the store.

        Returns:
            The file, or None if it does not exist.

        Raises:
            RemoteAuthFailure: Credentials were rejected.
            RemoteUnavailable: The store could not be reached.
        """
        pass

    @abstractmethod
    async def put_file(
        self,
        path: str,
        content: str,
        message: str,
        expected_version: str | None = None,
    ) -> str:
        """Write a file if it is still at the expected version.

        Args:
            path: Path of the file inside the store.
            content: Full new content.
            message: Change description recorded by the store.
            expected_version: Version the content was derived from, or None
                to create a file that does not exist yet.

        Returns:
            The new version tag.

        Raises:
            RemoteConflict: The file changed since expected_version was read.
            RemoteAuthFailure: Credentials were rejected.
            RemoteUnavailable: The store could not be reached.
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass

    def describe(self) -> str:
        """Human readable location of the store."""
        return self.__class__.__name__
