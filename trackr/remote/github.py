"""Remote log store backed by the GitHub contents API."""

import base64
import logging
from typing import Any

import httpx

from ..errors import (
    ConfigurationError,
    RemoteAuthFailure,
    RemoteConflict,
    RemoteError,
    RemoteUnavailable,
)
from .base import RemoteFile, RemoteLogStore

logger = logging.getLogger(__name__)


def _decode(content: str, what: str) -> str:
    # The API wraps base64 bodies at 60 columns
    try:
        return base64.b64decode("".join(content.split()), validate=True).decode("utf-8")
    except ValueError as e:
        # binascii.Error and UnicodeDecodeError
        raise RemoteUnavailable(f"{what} is not UTF-8 text: {e}") from e


def _encode(content: str) -> str:
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


class GitHubLogStore(RemoteLogStore):
    """Store the commit log as a file in a GitHub repository.

    The blob sha GitHub reports for the file is used as the version tag;
    the contents API refuses an update whose sha is stale with HTTP 409.
    """

    def __init__(
        self,
        token: str | None,
        repo: str,
        owner: str = "",
        branch: str | None = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
    ):
        """Initialize the store.

        Args:
            token: GitHub token with access to the repository.
            repo: Repository name.
            owner: Repository owner. Empty means the token's own user.
            branch: Branch to read and write. None uses the default branch.
            api_url: Base URL of the GitHub REST API.
            timeout: Request timeout in seconds.
        """
        if not token:
            raise ConfigurationError(
                "No GitHub token configured (set TRACKR_TOKEN or GITHUB_TOKEN)"
            )
        if not repo:
            raise ConfigurationError("No repository configured for the commit log")

        self.api_url = api_url.rstrip("/")
        self.repo = repo
        self.owner = owner
        self.branch = branch
        self.timeout = timeout
        self._token = token
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def describe(self) -> str:
        owner = self.owner or "<token user>"
        return f"github:{owner}/{self.repo}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport failures to RemoteUnavailable."""
        client = await self._get_client()
        try:
            return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteUnavailable(f"GitHub request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"GitHub request failed: {e}") from e

    @staticmethod
    def _error_for(response: httpx.Response, action: str) -> RemoteError:
        """Translate an unexpected response into the matching error."""
        try:
            data = response.json()
        except ValueError:
            data = None
        detail = data.get("message", response.text) if isinstance(data, dict) else response.text

        status = response.status_code
        message = f"{action} failed with HTTP {status}: {detail}"

        if status in (401, 403):
            return RemoteAuthFailure(message, status=status)
        return RemoteUnavailable(message, status=status)

    async def resolve_owner(self) -> str:
        """Return the repository owner, asking GitHub for the token's user if unset."""
        if self.owner:
            return self.owner

        response = await self._request("GET", "/user")
        if response.status_code != 200:
            raise self._error_for(response, "Looking up authenticated user")

        self.owner = response.json()["login"]
        logger.debug(f"Resolved repository owner to {self.owner}")
        return self.owner

    async def _contents_url(self, path: str) -> str:
        owner = await self.resolve_owner()
        return f"/repos/{owner}/{self.repo}/contents/{path.lstrip('/')}"

    async def _fetch_blob(self, sha: str) -> str:
        """Fetch a blob too large to be inlined by the contents API."""
        owner = await self.resolve_owner()
        response = await self._request("GET", f"/repos/{owner}/{self.repo}/git/blobs/{sha}")
        if response.status_code != 200:
            raise self._error_for(response, f"Fetching blob {sha}")
        return _decode(response.json()["content"], f"Blob {sha}")

    async def get_file(self, path: str) -> RemoteFile | None:
        url = await self._contents_url(path)
        params = {"ref": self.branch} if self.branch else None

        response = await self._request("GET", url, params=params)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise self._error_for(response, f"Fetching {path}")

        data = response.json()
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise RemoteUnavailable(f"{path} is not a file in {self.describe()}")

        sha = data["sha"]
        if data.get("encoding") == "base64":
            content = _decode(data.get("content", ""), path)
        else:
            # Files over 1MB come back with encoding "none" and no content
            content = await self._fetch_blob(sha)

        return RemoteFile(content=content, version=sha)

    async def put_file(
        self,
        path: str,
        content: str,
        message: str,
        expected_version: str | None = None,
    ) -> str:
        url = await self._contents_url(path)
        payload: dict[str, Any] = {
            "message": message,
            "content": _encode(content),
        }
        if expected_version is not None:
            payload["sha"] = expected_version
        if self.branch:
            payload["branch"] = self.branch

        response = await self._request("PUT", url, json=payload)
        if response.status_code in (200, 201):
            return response.json()["content"]["sha"]

        if response.status_code == 409:
            raise RemoteConflict(f"{path} changed on GitHub", status=409)
        if response.status_code == 422 and "sha" in response.text:
            # A create raced with another writer: the file now exists
            raise RemoteConflict(f"{path} was created concurrently", status=422)

        raise self._error_for(response, f"Writing {path}")
