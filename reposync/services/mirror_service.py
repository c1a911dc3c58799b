"""Repository mirror manager: clone/init the local working copy of the remote."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from reposync.exceptions import ConfigurationError, GitCommandError
from reposync.services.git_service import GitService

if TYPE_CHECKING:
    from pathlib import Path

    from reposync.config import Settings

logger = logging.getLogger(__name__)

WORKFLOW_DIR = ".github/"
WORKFLOW_EXCLUSION_COMMIT = "[auto] Exclude .github/ from sync"

# Clone failures that mean "nothing to clone yet" rather than a real error.
_EMPTY_REMOTE_MARKERS = ("empty", "warning")


class MirrorStatus(StrEnum):
    """How the mirror became usable on this call."""

    READY = "ready"
    CLONED = "cloned"
    INITIALIZED = "initialized"


@dataclass
class MirrorHandle:
    """A usable mirror working copy."""

    path: Path
    git: GitService
    status: MirrorStatus


class MirrorManager:
    """Owns one mirror directory; creates it on first use and reuses it afterwards."""

    def __init__(self, settings: Settings, path: Path) -> None:
        self.settings = settings
        self.path = path
        self._handle: MirrorHandle | None = None

    def reset(self) -> None:
        """Forget the cached handle so the next call re-reads settings."""
        self._handle = None

    async def ensure_ready(self) -> MirrorHandle:
        """Return a ready mirror, cloning or initialising it on first use.

        Raises ConfigurationError when the repository or token is missing, or
        when cloning fails for any reason other than an empty remote.
        """
        self.settings.owner_repo()
        self.settings.require_token()
        remote_url = self.settings.remote_url()

        if self._handle is not None:
            await self._handle.git.set_remote(remote_url)
            self._handle.status = MirrorStatus.READY
            return self._handle

        git = GitService(self.path, timeout=self.settings.git_timeout)
        if git.is_repo():
            await git.set_remote(remote_url)
            status = MirrorStatus.READY
        else:
            status = await self._clone_or_init(git, remote_url)
        await git.configure_identity(self.settings.git_user_name, self.settings.git_user_email)
        self._handle = MirrorHandle(path=self.path, git=git, status=status)
        return self._handle

    async def _clone_or_init(self, git: GitService, remote_url: str) -> MirrorStatus:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            await git.run("clone", remote_url, self.path.name, cwd=self.path.parent)
        except GitCommandError as exc:
            output = exc.output.lower()
            if not any(marker in output for marker in _EMPTY_REMOTE_MARKERS):
                logger.error("Clone into %s failed: %s", self.path, exc.output)
                msg = f"Could not clone repository: {exc.output.strip()}"
                raise ConfigurationError(msg) from exc
            logger.warning("Remote looks empty, initialising %s instead of cloning", self.path)
            self.path.mkdir(parents=True, exist_ok=True)
            await git.run("init")
            await git.set_remote(remote_url)
            return MirrorStatus.INITIALIZED
        logger.info("Cloned remote repository into %s", self.path)
        return MirrorStatus.CLONED

    async def ensure_main_branch(self) -> None:
        """Make the main branch current, creating it when it does not exist yet."""
        handle = await self._require_handle()
        git = handle.git
        main = self.settings.main_branch
        if await git.current_branch() == main:
            return
        if await git.branch_exists(main):
            await git.checkout(main)
            return
        if not await git.has_commits():
            # Unborn repository: just rename the branch HEAD points at.
            await git.run("symbolic-ref", "HEAD", f"refs/heads/{main}")
            return
        remote_ref = await git.run(
            "rev-parse", "--verify", "--quiet", f"refs/remotes/origin/{main}", check=False
        )
        if remote_ref.returncode == 0:
            await git.run("checkout", "-b", main, "--track", f"origin/{main}")
        else:
            await git.checkout(main, create=True)
        logger.info("Switched mirror %s to branch %s", self.path, main)

    async def exclude_workflow_dir(self) -> bool:
        """Ignore and untrack ``.github/`` so sync pushes never touch workflow files.

        Returns True when an exclusion commit was made; the caller pushes it.
        """
        handle = await self._require_handle()
        git = handle.git
        gitignore = self.path / ".gitignore"
        existing = gitignore.read_text(encoding="utf-8") if gitignore.is_file() else ""
        if WORKFLOW_DIR not in existing.splitlines():
            prefix = existing.rstrip("\n")
            lines = f"{prefix}\n{WORKFLOW_DIR}\n" if prefix else f"{WORKFLOW_DIR}\n"
            gitignore.write_text(lines, encoding="utf-8")
        await git.run("rm", "-r", "--cached", "--ignore-unmatch", "--quiet", ".github")
        await git.add(".gitignore")
        if not await git.commit_staged(WORKFLOW_EXCLUSION_COMMIT):
            return False
        logger.info("Excluded %s from tracking in %s", WORKFLOW_DIR, self.path)
        return True

    async def _require_handle(self) -> MirrorHandle:
        if self._handle is None:
            return await self.ensure_ready()
        return self._handle
