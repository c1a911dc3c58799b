"""Git service: async wrapper around the git CLI for mirror working copies."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from reposync.exceptions import GitCommandError
from reposync.services.redaction import mask_secrets

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# Never prompt for credentials; keep messages in English so they can be classified.
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C", "LANG": "C"}


@dataclass
class GitResult:
    """Captured result of one git invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Combined stdout and stderr, the text error classification looks at."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


class GitService:
    """Runs git commands in one working copy."""

    def __init__(self, repo_dir: Path, timeout: float = 120.0) -> None:
        self.repo_dir = repo_dir
        self.timeout = timeout

    async def run(self, *args: str, check: bool = True, cwd: Path | None = None) -> GitResult:
        """Run a git command and capture its output.

        Raises GitCommandError (with masked output) on a non-zero exit when
        *check* is set, and always on timeout.
        """
        workdir = cwd if cwd is not None else self.repo_dir
        logger.debug("git %s (in %s)", mask_secrets(" ".join(args)), workdir)
        try:
            proc = await asyncio.create_subprocess_exec(
                "git",
                *args,
                cwd=workdir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **_GIT_ENV},
            )
        except FileNotFoundError as exc:
            raise GitCommandError(args, 127, f"git executable not found: {exc}") from exc
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except TimeoutError:
            logger.warning("git %s timed out after %.0fs, killing", mask_secrets(args[0]), self.timeout)
            proc.kill()
            await proc.wait()
            raise GitCommandError(args, -1, f"timed out after {self.timeout:.0f}s") from None
        result = GitResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if check and result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.output)
        return result

    def is_repo(self) -> bool:
        """Whether the working copy directory already holds a repository."""
        return (self.repo_dir / ".git").exists()

    async def current_branch(self) -> str | None:
        """Name of the checked-out branch, or None on a detached HEAD."""
        result = await self.run("symbolic-ref", "--short", "HEAD", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    async def branch_exists(self, name: str) -> bool:
        result = await self.run("rev-parse", "--verify", "--quiet", f"refs/heads/{name}", check=False)
        return result.returncode == 0

    async def has_commits(self) -> bool:
        result = await self.run("rev-parse", "--verify", "--quiet", "HEAD", check=False)
        return result.returncode == 0

    async def is_clean(self) -> bool:
        """True when there is nothing to commit (tracked or untracked)."""
        result = await self.run("status", "--porcelain")
        return not result.stdout.strip()

    async def set_remote(self, url: str, name: str = "origin") -> None:
        """Point *name* at *url*, adding the remote when it does not exist."""
        result = await self.run("remote", "set-url", name, url, check=False)
        if result.returncode != 0:
            await self.run("remote", "add", name, url)

    async def configure_identity(self, user_name: str, user_email: str) -> None:
        await self.run("config", "user.name", user_name)
        await self.run("config", "user.email", user_email)

    async def add(self, *paths: str) -> None:
        """Stage all changes under *paths* (the whole tree when none given)."""
        await self.run("add", "-A", "--", *(paths or (".",)))

    async def commit(self, message: str) -> None:
        await self.run("commit", "-m", message)

    async def commit_staged(self, message: str) -> bool:
        """Commit the index if it has changes. Returns False when there was nothing to commit."""
        result = await self.run("diff", "--cached", "--quiet", check=False)
        if result.returncode == 0:
            return False
        await self.commit(message)
        return True

    async def push(self, branch: str) -> None:
        """Push *branch* to origin, retrying once with upstream tracking."""
        try:
            await self.run("push", "origin", branch)
        except GitCommandError as exc:
            logger.warning("Push of %s failed, retrying with upstream tracking: %s", branch, exc)
            await self.run("push", "-u", "origin", branch)

    async def remove(self, path: str) -> None:
        await self.run("rm", "-f", "--", path)

    async def checkout(self, branch: str, *, create: bool = False) -> None:
        if create:
            await self.run("checkout", "-b", branch)
        else:
            await self.run("checkout", branch)
