"""In-process remote log store for tests and dry runs."""

import hashlib
import logging
from dataclasses import dataclass

from ..errors import RemoteConflict
from .base import RemoteFile, RemoteLogStore

logger = logging.getLogger(__name__)


@dataclass
class WriteRecord:
    """One accepted write against the in-memory store."""

    path: str
    message: str
    expected_version: str | None
    new_version: str


class InMemoryLogStore(RemoteLogStore):
    """Dictionary-backed store with strict conditional writes.

    Version tags are the sha256 of the content, so any change to a file
    invalidates every previously handed out tag.
    """

    def __init__(self, files: dict[str, str] | None = None):
        self._files: dict[str, str] = dict(files or {})
        self.writes: list[WriteRecord] = []
        self.conflicts = 0

    @staticmethod
    def version_of(content: str) -> str:
        return hashlib.sha256(content.encode("utf-8")).hexdigest()

    async def get_file(self, path: str) -> RemoteFile | None:
        if path not in self._files:
            return None
        content = self._files[path]
        return RemoteFile(content=content, version=self.version_of(content))

    async def put_file(
        self,
        path: str,
        content: str,
        message: str,
        expected_version: str | None = None,
    ) -> str:
        current = self._files.get(path)
        current_version = self.version_of(current) if current is not None else None

        if current_version != expected_version:
            self.conflicts += 1
            logger.debug(
                f"Rejecting write to {path}: expected {expected_version}, "
                f"found {current_version}"
            )
            raise RemoteConflict(f"{path} has changed", status=409)

        self._files[path] = content
        new_version = self.version_of(content)
        self.writes.append(
            WriteRecord(
                path=path,
                message=message,
                expected_version=expected_version,
                new_version=new_version,
            )
        )
        return new_version

    def content(self, path: str) -> str | None:
        """Current content of a file, bypassing the async interface."""
        return self._files.get(path)

    def describe(self) -> str:
        return "memory"
