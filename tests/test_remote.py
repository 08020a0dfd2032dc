"""Tests for the remote log stores."""

import base64

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from trackr.config import RemoteConfig
from trackr.errors import (
    ConfigurationError,
    RemoteAuthFailure,
    RemoteConflict,
    RemoteUnavailable,
    TrackrError,
)
from trackr.remote import GitHubLogStore, InMemoryLogStore, create_store
from trackr.sync import SyncEngine


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def make_response(status_code: int, data=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    if data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = data
    response.text = text or (str(data) if data is not None else "")
    return response


@pytest.fixture
def github_store():
    return GitHubLogStore(token="ghp_test", repo="TrackrGitLog", owner="octocat")


def mock_http(store, *responses):
    """Patch the store's HTTP client to return responses in order."""
    http = AsyncMock()
    http.request = AsyncMock(side_effect=list(responses))
    return patch.object(store, "_get_client", new=AsyncMock(return_value=http)), http


class TestInMemoryLogStore:
    """Tests for InMemoryLogStore."""

    @pytest.mark.asyncio
    async def test_missing_file(self):
        """Test reading a file that does not exist."""
        store = InMemoryLogStore()

        assert await store.get_file("log") is None

    @pytest.mark.asyncio
    async def test_create_and_update(self):
        """Test writes chain on the returned version."""
        store = InMemoryLogStore()

        v1 = await store.put_file("log", "a\n", "Create log")
        v2 = await store.put_file("log", "a\nb\n", "Update log", expected_version=v1)
        remote = await store.get_file("log")

        assert remote.content == "a\nb\n"
        assert remote.version == v2 != v1

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self):
        """Test a write based on an old version is rejected."""
        store = InMemoryLogStore()
        v1 = await store.put_file("log", "a\n", "Create log")
        await store.put_file("log", "a\nb\n", "Update log", expected_version=v1)

        with pytest.raises(RemoteConflict):
            await store.put_file("log", "a\nc\n", "Update log", expected_version=v1)

        assert store.content("log") == "a\nb\n"
        assert store.conflicts == 1

    @pytest.mark.asyncio
    async def test_create_over_existing_conflicts(self):
        """Test a create without version fails once the file exists."""
        store = InMemoryLogStore({"log": "a\n"})

        with pytest.raises(RemoteConflict):
            await store.put_file("log", "b\n", "Create log")


class TestGitHubLogStore:
    """Tests for GitHubLogStore."""

    def test_requires_token(self):
        """Test a missing token is a configuration error."""
        with pytest.raises(ConfigurationError):
            GitHubLogStore(token=None, repo="TrackrGitLog")

    def test_api_url_trailing_slash(self):
        """Test trailing slash is stripped from the API URL."""
        store = GitHubLogStore(token="t", repo="r", api_url="https://ghe.example.com/api/v3/")

        assert store.api_url == "https://ghe.example.com/api/v3"

    @pytest.mark.asyncio
    async def test_get_file(self, github_store):
        """Test decoding a file from the contents API."""
        content = "[t] abc123: hello\n"
        # The API wraps base64 output across lines
        wrapped = "\n".join(b64(content)[i:i + 8] for i in range(0, len(b64(content)), 8))
        patcher, http = mock_http(
            github_store,
            make_response(200, {"type": "file", "encoding": "base64", "content": wrapped, "sha": "sha1"}),
        )

        with patcher:
            remote = await github_store.get_file("git.trackr.log")

        assert remote.content == content
        assert remote.version == "sha1"
        method, url = http.request.call_args.args
        assert method == "GET"
        assert url == "/repos/octocat/TrackrGitLog/contents/git.trackr.log"

    @pytest.mark.asyncio
    async def test_get_file_not_found(self, github_store):
        """Test 404 means the file does not exist."""
        patcher, _ = mock_http(github_store, make_response(404, {"message": "Not Found"}))

        with patcher:
            assert await github_store.get_file("git.trackr.log") is None

    @pytest.mark.asyncio
    async def test_get_large_file_uses_blob(self, github_store):
        """Test files without inline content are fetched through the blob API."""
        patcher, http = mock_http(
            github_store,
            make_response(200, {"type": "file", "encoding": "none", "content": "", "sha": "big"}),
            make_response(200, {"content": b64("[t] abc: big\n"), "encoding": "base64"}),
        )

        with patcher:
            remote = await github_store.get_file("git.trackr.log")

        assert remote.content == "[t] abc: big\n"
        assert http.request.call_args.args[1] == "/repos/octocat/TrackrGitLog/git/blobs/big"

    @pytest.mark.asyncio
    async def test_get_file_with_branch(self):
        """Test the configured branch is passed as ref."""
        store = GitHubLogStore(token="t", repo="r", owner="o", branch="logs")
        patcher, http = mock_http(store, make_response(404, {"message": "Not Found"}))

        with patcher:
            await store.get_file("git.trackr.log")

        assert http.request.call_args.kwargs["params"] == {"ref": "logs"}

    @pytest.mark.asyncio
    async def test_get_file_auth_failure(self, github_store):
        """Test 401 is reported as an auth failure."""
        patcher, _ = mock_http(github_store, make_response(401, {"message": "Bad credentials"}))

        with patcher:
            with pytest.raises(RemoteAuthFailure) as exc_info:
                await github_store.get_file("git.trackr.log")

        assert exc_info.value.status == 401
        assert "Bad credentials" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_get_file_server_error(self, github_store):
        """Test 5xx is reported as unavailable."""
        patcher, _ = mock_http(github_store, make_response(502, None, text="Bad gateway"))

        with patcher:
            with pytest.raises(RemoteUnavailable):
                await github_store.get_file("git.trackr.log")

    @pytest.mark.parametrize(
        "encoded",
        [
            base64.b64encode(b"[t] abc: \xff\xfe\n").decode("ascii"),
            "not*base64!",
        ],
    )
    @pytest.mark.asyncio
    async def test_get_file_undecodable_content(self, github_store, encoded):
        """Test content that is not base64 UTF-8 is reported as unavailable."""
        patcher, _ = mock_http(
            github_store,
            make_response(200, {"type": "file", "encoding": "base64", "content": encoded, "sha": "sha1"}),
        )

        with patcher:
            with pytest.raises(RemoteUnavailable) as exc_info:
                await github_store.get_file("git.trackr.log")

        assert exc_info.value.status is None
        assert "git.trackr.log" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_undecodable_blob(self, github_store):
        """Test a large file that is not UTF-8 is reported as unavailable."""
        patcher, _ = mock_http(
            github_store,
            make_response(200, {"type": "file", "encoding": "none", "content": "", "sha": "big"}),
            make_response(200, {"content": base64.b64encode(b"\xff\xfe").decode("ascii")}),
        )

        with patcher:
            with pytest.raises(RemoteUnavailable):
                await github_store.get_file("git.trackr.log")

    @pytest.mark.asyncio
    async def test_undecodable_log_fails_initialize_cleanly(self, github_store):
        """Test the engine sees a TrackrError, not a decode error."""
        patcher, _ = mock_http(
            github_store,
            make_response(
                200,
                {
                    "type": "file",
                    "encoding": "base64",
                    "content": base64.b64encode(b"[t] abc: \xff\xfe\n").decode("ascii"),
                    "sha": "sha1",
                },
            ),
        )
        engine = SyncEngine(github_store)

        with patcher:
            with pytest.raises(TrackrError):
                await engine.initialize()

        assert engine.initialized is False

    @pytest.mark.asyncio
    async def test_transport_error(self, github_store):
        """Test connection failures are reported as unavailable."""
        http = AsyncMock()
        http.request = AsyncMock(side_effect=httpx.ConnectError("Connection refused"))

        with patch.object(github_store, "_get_client", new=AsyncMock(return_value=http)):
            with pytest.raises(RemoteUnavailable):
                await github_store.get_file("git.trackr.log")

    @pytest.mark.asyncio
    async def test_put_file_create(self, github_store):
        """Test a create sends no sha."""
        patcher, http = mock_http(
            github_store, make_response(201, {"content": {"sha": "new-sha"}})
        )

        with patcher:
            version = await github_store.put_file("git.trackr.log", "[t] a: b\n", "Create git.trackr.log")

        assert version == "new-sha"
        method, url = http.request.call_args.args
        payload = http.request.call_args.kwargs["json"]
        assert method == "PUT"
        assert url == "/repos/octocat/TrackrGitLog/contents/git.trackr.log"
        assert "sha" not in payload
        assert payload["message"] == "Create git.trackr.log"
        assert base64.b64decode(payload["content"]).decode() == "[t] a: b\n"

    @pytest.mark.asyncio
    async def test_put_file_update(self, github_store):
        """Test an update is conditional on the expected sha."""
        patcher, http = mock_http(
            github_store, make_response(200, {"content": {"sha": "sha2"}})
        )

        with patcher:
            version = await github_store.put_file("git.trackr.log", "x\n", "Update", expected_version="sha1")

        assert version == "sha2"
        assert http.request.call_args.kwargs["json"]["sha"] == "sha1"

    @pytest.mark.asyncio
    async def test_put_file_conflict(self, github_store):
        """Test 409 is a conflict."""
        patcher, _ = mock_http(github_store, make_response(409, {"message": "is at abc but expected def"}))

        with patcher:
            with pytest.raises(RemoteConflict):
                await github_store.put_file("git.trackr.log", "x\n", "Update", expected_version="def")

    @pytest.mark.asyncio
    async def test_put_file_create_race(self, github_store):
        """Test a create that finds the file already there is a conflict."""
        patcher, _ = mock_http(
            github_store,
            make_response(422, {"message": "Invalid request.\n\n\"sha\" wasn't supplied."}),
        )

        with patcher:
            with pytest.raises(RemoteConflict):
                await github_store.put_file("git.trackr.log", "x\n", "Create")

    @pytest.mark.asyncio
    async def test_put_file_forbidden(self, github_store):
        """Test 403 is an auth failure, not a conflict."""
        patcher, _ = mock_http(github_store, make_response(403, {"message": "Resource not accessible"}))

        with patcher:
            with pytest.raises(RemoteAuthFailure):
                await github_store.put_file("git.trackr.log", "x\n", "Update", expected_version="a")

    @pytest.mark.asyncio
    async def test_resolve_owner_from_token(self):
        """Test the owner is looked up once when not configured."""
        store = GitHubLogStore(token="t", repo="TrackrGitLog")
        patcher, http = mock_http(
            store,
            make_response(200, {"login": "someone"}),
            make_response(404, {"message": "Not Found"}),
            make_response(404, {"message": "Not Found"}),
        )

        with patcher:
            await store.get_file("git.trackr.log")
            await store.get_file("git.trackr.log")

        urls = [call.args[1] for call in http.request.call_args_list]
        assert urls == [
            "/user",
            "/repos/someone/TrackrGitLog/contents/git.trackr.log",
            "/repos/someone/TrackrGitLog/contents/git.trackr.log",
        ]
        assert store.owner == "someone"

    @pytest.mark.asyncio
    async def test_close(self, github_store):
        """Test closing releases the client."""
        client = await github_store._get_client()
        assert isinstance(client, httpx.AsyncClient)

        await github_store.close()

        assert github_store._client is None


class TestCreateStore:
    """Tests for the store factory."""

    def test_github_provider(self):
        """Test GitHub settings are passed through."""
        store = create_store(RemoteConfig(token="t", owner="o", repo="r", branch="b"))

        assert isinstance(store, GitHubLogStore)
        assert store.describe() == "github:o/r"
        assert store.branch == "b"

    def test_memory_provider(self):
        """Test the in-memory provider."""
        assert isinstance(create_store(RemoteConfig(provider="memory")), InMemoryLogStore)

    def test_unknown_provider(self):
        """Test unknown providers are refused."""
        with pytest.raises(ConfigurationError):
            create_store(RemoteConfig(provider="s3"))
