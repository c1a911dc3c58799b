"""Sync engine: bidirectional orchestration, run gating and status reporting."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import yaml

from reposync.exceptions import ConfigurationError, GitCommandError, HostingApiError
from reposync.filesystem.content_store import LocalItemStore
from reposync.filesystem.frontmatter import decode_item
from reposync.filesystem.status_dirs import list_mirror_files, place
from reposync.models.sync import (
    ConnectionReport,
    DeployResult,
    EngineStatus,
    PullOutcome,
    PushOutcome,
    PushResult,
    SyncMode,
    SyncOutcome,
    SyncRun,
)
from reposync.services.conflict_service import safe_pull
from reposync.services.datetime_service import format_iso, now_utc, today_utc
from reposync.services.deploy_service import deploy_artifacts
from reposync.services.git_service import GitService
from reposync.services.github_api import GitHubClient
from reposync.services.mirror_service import MirrorManager
from reposync.services.push_service import (
    open_review_request,
    push_direct,
    push_for_review,
    stage_account,
)
from reposync.services.redaction import mask_secrets
from reposync.services.review_service import (
    checkout_review_branch,
    return_to_main,
    review_branch_name,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable
    from datetime import datetime
    from pathlib import Path

    import httpx

    from reposync.config import Settings
    from reposync.models.item import ItemStatus
    from reposync.models.sync import ArtifactFile

logger = logging.getLogger(__name__)

BUSY_REASON = "sync in progress"
SYNC_COMMIT = "[auto] Sync - {account} ({count} items)"

# Gate and mirror key used when one pair serves the whole process.
_SHARED_KEY = ""


class RunGate:
    """Admits one git-facing operation at a time; busy callers are turned away, not queued."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def try_enter(self) -> AsyncIterator[bool]:
        """Yield True when the gate was acquired, False when another run holds it."""
        if self._lock.locked():
            yield False
            return
        async with self._lock:
            yield True


class SyncEngine:
    """Owns the mirrors and run gates of one process.

    Create once (FastAPI lifespan, CLI) and pass it to callers. By default one
    mirror and one gate serve every account; with ``per_account_mirrors``
    both are keyed by account id.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.store = LocalItemStore(settings.data_dir)
        self.http_transport = http_transport
        self.last_sync_time: datetime | None = None
        self._mirrors: dict[str, MirrorManager] = {}
        self._gates: dict[str, RunGate] = {}

    # -- wiring ------------------------------------------------------------

    def _key(self, account_id: str | None) -> str:
        if self.settings.per_account_mirrors and account_id:
            return account_id
        return _SHARED_KEY

    def mirror_path(self, account_id: str | None = None) -> Path:
        """``{mirror_root}/{owner}_{repo}``, plus ``/{account}`` for per-account mirrors."""
        owner, repo = self.settings.owner_repo()
        path = self.settings.resolved_mirror_root / f"{owner}_{repo}"
        key = self._key(account_id)
        return path / key if key else path

    def mirror(self, account_id: str | None = None) -> MirrorManager:
        key = self._key(account_id)
        if key not in self._mirrors:
            self._mirrors[key] = MirrorManager(self.settings, self.mirror_path(account_id))
        return self._mirrors[key]

    def gate(self, account_id: str | None = None) -> RunGate:
        return self._gates.setdefault(self._key(account_id), RunGate())

    def github_client(self) -> GitHubClient:
        return GitHubClient(self.settings, transport=self.http_transport)

    def reset(self) -> None:
        """Drop cached mirror handles; call after settings change."""
        for manager in self._mirrors.values():
            manager.reset()
        self._mirrors.clear()

    # -- operations --------------------------------------------------------

    async def sync(self, account_id: str, mode: SyncMode = SyncMode.DIRECT) -> SyncOutcome:
        """Push local items of *account_id* to the remote, then pull remote edits back."""
        async with self.gate(account_id).try_enter() as entered:
            if not entered:
                logger.info("Sync of %s skipped: %s", account_id, BUSY_REASON)
                return SyncOutcome(skipped=True, reason=BUSY_REASON)
            run = SyncRun.start(account_id, SyncMode(mode))
            outcome = await self._sync(run)
            run.pushed, run.pulled = outcome.pushed, outcome.pulled
            run.finish()
            self.last_sync_time = run.finished_at
            logger.info(
                "Sync of %s (%s) finished: pushed=%d pulled=%d",
                account_id,
                run.mode,
                run.pushed,
                run.pulled,
            )
            return outcome

    async def _sync(self, run: SyncRun) -> SyncOutcome:
        account_id = run.account_id
        mirror = self.mirror(account_id)
        handle = await mirror.ensure_ready()
        git = handle.git
        main = self.settings.main_branch

        await mirror.ensure_main_branch()
        excluded = await mirror.exclude_workflow_dir()
        await safe_pull(git, main)
        if excluded:
            await git.push(main)

        if not self.store.has_account(account_id):
            logger.info("No local store for %s, nothing to sync", account_id)
            return SyncOutcome()

        review = run.mode == SyncMode.REVIEW
        branch = review_branch_name(account_id, run.started_at) if review else main
        if review:
            await checkout_review_branch(git, branch, main)
        try:
            pushed = await self._push_local_items(git, handle.path, account_id)
            request = None
            await stage_account(git, handle.path, account_id)
            message = SYNC_COMMIT.format(account=account_id, count=pushed)
            if await git.commit_staged(message):
                await git.push(branch)
                logger.info("Pushed %d change(s) for %s to %s", pushed, account_id, branch)
                if review:
                    request = await open_review_request(
                        self.settings,
                        self.github_client,
                        handle.path,
                        account_id,
                        branch,
                        today_utc(run.started_at),
                    )
            if review:
                return SyncOutcome(pushed=pushed, pulled=0, review_request=request)
        finally:
            if review:
                await return_to_main(git, main)

        pulled = self._pull_back(handle.path, account_id)
        return SyncOutcome(pushed=pushed, pulled=pulled)

    async def _push_local_items(self, git: GitService, mirror_dir: Path, account_id: str) -> int:
        """Propagate local deletions and re-place every local item; returns the change count."""
        local_names = set(self.store.list_filenames(account_id))
        mirror_files = list_mirror_files(mirror_dir, account_id)
        changes = 0
        if mirror_files:
            for filename, entries in mirror_files.items():
                if filename in local_names:
                    continue
                for _status, path in entries:
                    await self._remove_from_mirror(git, mirror_dir, path)
                    changes += 1

        synced_at = format_iso(now_utc())
        for item in self.store.load_all(account_id):
            if place(mirror_dir, account_id, item, synced_at):
                changes += 1
        return changes

    @staticmethod
    async def _remove_from_mirror(git: GitService, mirror_dir: Path, path: Path) -> None:
        relative = path.relative_to(mirror_dir).as_posix()
        try:
            await git.remove(relative)
        except GitCommandError:
            # Never committed: plain file removal is enough.
            path.unlink(missing_ok=True)
        logger.info("Removed %s from mirror (deleted locally)", relative)

    def _pull_back(self, mirror_dir: Path, account_id: str, *, reflect_deletions: bool = False) -> int:
        """Write mirror items that differ from the local store; returns the change count."""
        mirror_files = list_mirror_files(mirror_dir, account_id)
        changes = 0
        for filename, entries in mirror_files.items():
            # Several copies only exist mid-edit on the remote; the most advanced status wins.
            _status, path = entries[-1]
            try:
                remote = decode_item(path.read_text(encoding="utf-8"), filename)
            except (UnicodeDecodeError, yaml.YAMLError) as exc:
                logger.warning("Skipping unreadable mirror file %s: %s", path, exc)
                continue
            local = self.store.read(account_id, filename)
            if local is not None and local.comparable() == remote.comparable():
                continue
            self.store.write(account_id, remote)
            changes += 1
            logger.debug("Pulled %s/%s into local store", account_id, filename)

        if reflect_deletions and mirror_files:
            for filename in self.store.list_filenames(account_id):
                if filename not in mirror_files and self.store.delete(account_id, filename):
                    changes += 1
                    logger.info("Deleted local %s/%s (removed remotely)", account_id, filename)
        return changes

    async def pull(self, account_id: str, *, reflect_deletions: bool = True) -> PullOutcome:
        """Bring remote changes for *account_id* into the local store, remote side winning."""
        async with self.gate(account_id).try_enter() as entered:
            if not entered:
                return PullOutcome(skipped=True, reason=BUSY_REASON)
            mirror = self.mirror(account_id)
            handle = await mirror.ensure_ready()
            await mirror.ensure_main_branch()
            await safe_pull(handle.git, self.settings.main_branch)
            changes = self._pull_back(handle.path, account_id, reflect_deletions=reflect_deletions)
            self.last_sync_time = now_utc()
            logger.info("Pull for %s finished: %d change(s)", account_id, changes)
            return PullOutcome(changes=changes)

    async def push_item(
        self,
        account_id: str,
        filename: str,
        *,
        review: bool = False,
        status: ItemStatus | str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PushResult:
        """Publish one local item, directly to main or through today's review branch."""
        async with self.gate(account_id).try_enter() as entered:
            if not entered:
                return PushResult(outcome=PushOutcome.SKIPPED, reason=BUSY_REASON)
            mirror = self.mirror(account_id)
            if review:
                result = await push_for_review(
                    self.settings,
                    mirror,
                    self.store,
                    self.github_client,
                    account_id,
                    filename,
                    status=status,
                    metadata=metadata,
                )
            else:
                result = await push_direct(
                    self.settings,
                    mirror,
                    self.store,
                    account_id,
                    filename,
                    status=status,
                    metadata=metadata,
                )
            if result.outcome in (PushOutcome.PUSHED, PushOutcome.NO_CHANGES):
                self.last_sync_time = now_utc()
            return result

    async def deploy(self, files: Iterable[ArtifactFile]) -> DeployResult:
        """Publish artifact files to main through the contents API."""
        async with self.gate().try_enter() as entered:
            if not entered:
                return DeployResult(skipped_run=True)
            async with self.github_client() as client:
                return await deploy_artifacts(client, files, branch=self.settings.main_branch)

    async def check_connection(self) -> ConnectionReport:
        """Check the git remote and the REST API with the configured credentials."""
        try:
            remote_url = self.settings.remote_url()
            self.settings.data_dir.mkdir(parents=True, exist_ok=True)
            checker = GitService(self.settings.data_dir, timeout=self.settings.git_timeout)
            await checker.run("ls-remote", "--heads", remote_url)
            async with self.github_client() as client:
                await client.get_repository()
        except (ConfigurationError, GitCommandError, HostingApiError) as exc:
            logger.warning("Connection check failed: %s", exc)
            return ConnectionReport(success=False, error=mask_secrets(str(exc)))
        return ConnectionReport(success=True)

    def status(self) -> EngineStatus:
        try:
            mirror_path: str | None = str(self.mirror_path())
        except ConfigurationError:
            mirror_path = None
        return EngineStatus(
            syncing=any(gate.busy for gate in self._gates.values()),
            last_sync_time=self.last_sync_time,
            mirror_path=mirror_path,
        )
