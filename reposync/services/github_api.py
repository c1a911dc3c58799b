"""Minimal GitHub REST API client for pull requests, contents and probing."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from reposync.exceptions import (
    ContentConflictError,
    HostingApiError,
    InvalidTokenError,
    RepositoryNotFoundError,
)

if TYPE_CHECKING:
    from types import TracebackType

    from reposync.config import Settings

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
# Used when the request never produced a response (DNS, TLS, timeout).
NETWORK_ERROR_STATUS = 502


def raise_for_status(response: httpx.Response, *, conflict_is_content: bool = False) -> None:
    """Translate an error response into the matching HostingApiError subclass."""
    status = response.status_code
    if status < 400:
        return
    try:
        detail = str(response.json().get("message", ""))
    except (ValueError, AttributeError):
        detail = response.text[:200]
    if status == 401:
        raise InvalidTokenError(status, detail)
    if status == 404:
        raise RepositoryNotFoundError(status, detail)
    if status == 409 and conflict_is_content:
        raise ContentConflictError(status, detail)
    raise HostingApiError(status, detail)


class GitHubClient:
    """Async client bound to one repository (``/repos/{owner}/{repo}``)."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.owner, self.repo = settings.owner_repo()
        token = settings.require_token()
        self._client = httpx.AsyncClient(
            base_url=f"{settings.api_url.rstrip('/')}/repos/{self.owner}/{self.repo}",
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
            timeout=settings.http_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("GitHub API %s %s failed: %s", method, url or "/", exc)
            raise HostingApiError(NETWORK_ERROR_STATUS, f"network error: {exc}") from exc

    async def get_repository(self) -> dict[str, Any]:
        """Fetch repository metadata; used as the connectivity check."""
        response = await self._request("GET", str(self._client.base_url).rstrip("/"))
        raise_for_status(response)
        return response.json()

    async def list_open_pulls(self, head_branch: str) -> list[dict[str, Any]]:
        """Open pull requests whose head is ``{owner}:{head_branch}``."""
        response = await self._request(
            "GET", "/pulls", params={"state": "open", "head": f"{self.owner}:{head_branch}"}
        )
        raise_for_status(response)
        return list(response.json())

    async def create_pull(self, *, title: str, head: str, base: str, body: str) -> dict[str, Any]:
        response = await self._request(
            "POST", "/pulls", json={"title": title, "head": head, "base": base, "body": body}
        )
        raise_for_status(response)
        return response.json()

    async def get_contents(self, path: str, ref: str) -> dict[str, Any] | None:
        """Return the contents entry for *path*, or None when it does not exist."""
        response = await self._request("GET", f"/contents/{quote(path, safe='/')}", params={"ref": ref})
        if response.status_code == 404:
            return None
        raise_for_status(response)
        entry = response.json()
        if not isinstance(entry, dict):
            msg = f"{path} is a directory, not a file"
            raise HostingApiError(response.status_code, msg)
        return entry

    async def put_contents(
        self,
        path: str,
        *,
        content_b64: str,
        message: str,
        branch: str,
        sha: str | None = None,
    ) -> dict[str, Any]:
        """Create or update a file. *sha* is required when updating an existing file."""
        payload: dict[str, Any] = {"message": message, "content": content_b64, "branch": branch}
        if sha:
            payload["sha"] = sha
        response = await self._request("PUT", f"/contents/{quote(path, safe='/')}", json=payload)
        raise_for_status(response, conflict_is_content=True)
        return response.json()
