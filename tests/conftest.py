"""Shared test fixtures for RepoSync."""

from __future__ import annotations

import base64
import json
import subprocess
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from reposync.config import Settings
from reposync.filesystem.frontmatter import encode_item
from reposync.models.item import ContentItem, ItemStatus
from reposync.services.deploy_service import git_blob_sha
from reposync.services.redaction import clear_registered_secrets
from reposync.services.sync_service import SyncEngine

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

TEST_TOKEN = "ghp_testtoken1234567890abcdefghij"
TEST_REPOSITORY = "acme/content"
TEST_API_URL = "https://api.github.test"

_GIT_TEST_CONFIG = (
    "-c",
    "user.name=Remote Editor",
    "-c",
    "user.email=editor@example.com",
    "-c",
    "init.defaultBranch=main",
    "-c",
    "commit.gpgsign=false",
)


def run_git(cwd: Path, *args: str) -> str:
    """Run git synchronously in a test helper repository and return stdout."""
    result = subprocess.run(
        ["git", *_GIT_TEST_CONFIG, *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


def clone_remote(remote: Path, dest: Path) -> Path:
    """Clone the bare remote into *dest*, standing in for another editor of the repository."""
    run_git(dest.parent, "clone", str(remote), dest.name)
    run_git(dest, "config", "user.name", "Remote Editor")
    run_git(dest, "config", "user.email", "editor@example.com")
    return dest


def write_local_item(
    settings: Settings,
    account_id: str,
    filename: str,
    body: str,
    status: ItemStatus = ItemStatus.GENERATED,
    **metadata: Any,
) -> Path:
    """Write an item into the local store the way the content generator would."""
    directory = settings.data_dir / "accounts" / account_id / "articles"
    directory.mkdir(parents=True, exist_ok=True)
    item = ContentItem(filename=filename, status=status, metadata=metadata, body=body)
    path = directory / filename
    path.write_text(encode_item(item), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _forget_secrets() -> Iterator[None]:
    yield
    clear_registered_secrets()


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """An empty bare repository whose default branch is ``main``."""
    remote = tmp_path / "remote.git"
    remote.mkdir()
    run_git(remote, "init", "--bare", "--initial-branch=main")
    return remote


@pytest.fixture
def seeded_remote(bare_remote: Path, tmp_path: Path) -> Path:
    """A bare remote with one initial commit on ``main``."""
    work = clone_remote(bare_remote, tmp_path / "seed")
    (work / "README.md").write_text("# content\n", encoding="utf-8")
    run_git(work, "add", "README.md")
    run_git(work, "commit", "-m", "Initial commit")
    run_git(work, "push", "origin", "HEAD:main")
    return bare_remote


@pytest.fixture
def test_settings(tmp_path: Path, bare_remote: Path) -> Settings:
    """Settings pointing at a local bare repository instead of GitHub."""
    return Settings(
        _env_file=None,
        github_repository=TEST_REPOSITORY,
        github_token=TEST_TOKEN,
        api_url=TEST_API_URL,
        remote_url_override=str(bare_remote),
        data_dir=tmp_path / "data",
        git_timeout=60,
        account_display_names={"alice": "Alice Writes"},
    )


@dataclass
class FakeGitHub:
    """In-memory stand-in for the GitHub REST endpoints the engine calls."""

    owner: str = "acme"
    repo: str = "content"
    pulls: list[dict[str, Any]] = field(default_factory=list)
    contents: dict[str, bytes] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)
    status_override: int | None = None
    put_status_override: int | None = None

    @property
    def prefix(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def requests_for(self, method: str, suffix: str = "") -> list[httpx.Request]:
        path = f"{self.prefix}{suffix}"
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_override is not None:
            return httpx.Response(self.status_override, json={"message": "forced failure"})
        path = request.url.path
        if path.rstrip("/") == self.prefix and request.method == "GET":
            return httpx.Response(200, json={"full_name": f"{self.owner}/{self.repo}"})
        if path == f"{self.prefix}/pulls":
            return self._pulls(request)
        if path.startswith(f"{self.prefix}/contents/"):
            return self._contents(request, path.removeprefix(f"{self.prefix}/contents/"))
        return httpx.Response(404, json={"message": "Not Found"})

    def _pulls(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            head = request.url.params.get("head")
            matching = [p for p in self.pulls if f"{self.owner}:{p['head']}" == head]
            return httpx.Response(200, json=matching)
        payload = json.loads(request.content)
        number = len(self.pulls) + 1
        pull = {
            "number": number,
            "html_url": f"https://github.test/{self.owner}/{self.repo}/pull/{number}",
            "head": payload["head"],
            "base": payload["base"],
            "title": payload["title"],
            "body": payload["body"],
        }
        self.pulls.append(pull)
        return httpx.Response(201, json=pull)

    def _contents(self, request: httpx.Request, path: str) -> httpx.Response:
        if request.method == "GET":
            if path not in self.contents:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"path": path, "sha": git_blob_sha(self.contents[path])})
        if self.put_status_override is not None:
            return httpx.Response(self.put_status_override, json={"message": "sha mismatch"})
        payload = json.loads(request.content)
        if path in self.contents and payload.get("sha") != git_blob_sha(self.contents[path]):
            return httpx.Response(409, json={"message": "sha does not match"})
        self.contents[path] = base64.b64decode(payload["content"])
        return httpx.Response(201, json={"content": {"path": path}})


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def engine(test_settings: Settings, fake_github: FakeGitHub) -> SyncEngine:
    return SyncEngine(test_settings, http_transport=fake_github.transport())
