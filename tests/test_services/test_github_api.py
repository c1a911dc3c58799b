"""Tests for the GitHub REST client."""

from __future__ import annotations

import httpx
import pytest

from reposync.config import Settings
from reposync.exceptions import (
    ContentConflictError,
    HostingApiError,
    InvalidTokenError,
    RepositoryNotFoundError,
)
from reposync.services.github_api import GitHubClient
from tests.conftest import TEST_TOKEN, FakeGitHub


def _client(settings: Settings, handler: object) -> GitHubClient:
    return GitHubClient(settings, transport=httpx.MockTransport(handler))  # type: ignore[arg-type]


class TestRequests:
    async def test_sends_auth_and_version_headers(
        self, test_settings: Settings, fake_github: FakeGitHub
    ) -> None:
        async with GitHubClient(test_settings, transport=fake_github.transport()) as client:
            await client.get_repository()
        request = fake_github.requests[0]
        assert request.headers["Authorization"] == f"Bearer {TEST_TOKEN}"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert "X-GitHub-Api-Version" in request.headers
        assert request.url.path == "/repos/acme/content"

    async def test_list_open_pulls_filters_by_head(
        self, test_settings: Settings, fake_github: FakeGitHub
    ) -> None:
        fake_github.pulls.append(
            {"number": 7, "html_url": "u", "head": "edit/alice/2026-01-01", "base": "main"}
        )
        async with GitHubClient(test_settings, transport=fake_github.transport()) as client:
            pulls = await client.list_open_pulls("edit/alice/2026-01-01")
            other = await client.list_open_pulls("edit/bob/2026-01-01")
        assert [p["number"] for p in pulls] == [7]
        assert other == []
        assert fake_github.requests[0].url.params["state"] == "open"
        assert fake_github.requests[0].url.params["head"] == "acme:edit/alice/2026-01-01"

    async def test_get_contents_returns_none_for_missing_path(
        self, test_settings: Settings, fake_github: FakeGitHub
    ) -> None:
        async with GitHubClient(test_settings, transport=fake_github.transport()) as client:
            assert await client.get_contents(".github/workflows/x.yml", ref="main") is None
        assert fake_github.requests[0].url.params["ref"] == "main"

    async def test_put_contents_sends_sha_only_when_updating(self, test_settings: Settings) -> None:
        bodies: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content)
            return httpx.Response(201, json={})

        async with _client(test_settings, handler) as client:
            await client.put_contents("a.txt", content_b64="YQ==", message="m", branch="main")
            await client.put_contents("a.txt", content_b64="YQ==", message="m", branch="main", sha="abc")
        assert b'"sha"' not in bodies[0]
        assert b'"sha":"abc"' in bodies[1].replace(b" ", b"")

    async def test_get_contents_of_a_directory_is_an_error(self, test_settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"path": ".github/workflows/a.yml", "sha": "x"}])

        async with _client(test_settings, handler) as client:
            with pytest.raises(HostingApiError, match="is a directory"):
                await client.get_contents(".github/workflows", ref="main")


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("status", "error_type"),
        [
            (401, InvalidTokenError),
            (404, RepositoryNotFoundError),
            (500, HostingApiError),
            (422, HostingApiError),
        ],
    )
    async def test_status_codes_map_to_errors(
        self, test_settings: Settings, status: int, error_type: type[HostingApiError]
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"message": "nope"})

        async with _client(test_settings, handler) as client:
            with pytest.raises(error_type) as excinfo:
                await client.get_repository()
        assert excinfo.value.status_code == status

    async def test_conflict_on_put_is_content_conflict(self, test_settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(409, json={"message": "sha mismatch"})

        async with _client(test_settings, handler) as client:
            with pytest.raises(ContentConflictError):
                await client.put_contents("a", content_b64="", message="m", branch="main")

    async def test_conflict_elsewhere_is_generic(self, test_settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(409, json={"message": "conflict"})

        async with _client(test_settings, handler) as client:
            with pytest.raises(HostingApiError) as excinfo:
                await client.list_open_pulls("x")
        assert not isinstance(excinfo.value, ContentConflictError)

    async def test_network_errors_become_hosting_errors(self, test_settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(test_settings, handler) as client:
            with pytest.raises(HostingApiError, match="network error"):
                await client.get_repository()

    async def test_error_text_never_contains_token(self, test_settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"message": f"echo {TEST_TOKEN}"})

        async with _client(test_settings, handler) as client:
            with pytest.raises(HostingApiError) as excinfo:
                await client.get_repository()
        assert TEST_TOKEN not in str(excinfo.value)
