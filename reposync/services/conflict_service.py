"""Conflict-safe pull and merge protocols.

Git failures are classified from their output and recovered in place with an
ordered list of named strategies. Conflicts always resolve in favour of the
remote side ("theirs"); only unclassified failures reach the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from reposync.exceptions import GitCommandError

if TYPE_CHECKING:
    from reposync.services.git_service import GitService

logger = logging.getLogger(__name__)

PULL_CONFLICT_COMMIT = "[auto] Resolve conflict: prefer remote changes"
MERGE_CONFLICT_COMMIT = "[auto] Resolve conflict: merge {source}"
_STASH_MESSAGE = "reposync: auto-stash before pull"
_PULL_ARGS = ("--no-rebase", "--no-edit", "origin")


class GitErrorKind(StrEnum):
    """Classification of a failed pull or merge."""

    EMPTY_REMOTE = "empty_remote"
    CONFLICT = "conflict"
    DIRTY_TREE = "dirty_tree"
    UNKNOWN = "unknown"


# Checked in order; the first kind with a matching marker wins.
_ERROR_MARKERS: tuple[tuple[GitErrorKind, tuple[str, ...]], ...] = (
    (GitErrorKind.EMPTY_REMOTE, ("couldn't find remote ref", "no such remote ref", "empty repository")),
    (GitErrorKind.DIRTY_TREE, ("would be overwritten",)),
    (GitErrorKind.CONFLICT, ("conflict", "unmerged files")),
)


def classify_git_error(output: str) -> GitErrorKind:
    """Map git error text to a GitErrorKind (case-insensitive)."""
    text = output.lower()
    for kind, markers in _ERROR_MARKERS:
        if any(marker in text for marker in markers):
            return kind
    return GitErrorKind.UNKNOWN


@dataclass(frozen=True)
class ResolutionContext:
    """What a strategy needs to act on the working copy."""

    git: GitService
    branch: str
    commit_message: str


@dataclass(frozen=True)
class ResolutionStrategy:
    """A named recovery step; ``apply`` returns True when the tree is usable again."""

    name: str
    apply: Callable[[ResolutionContext], Awaitable[bool]]


async def _take_theirs(ctx: ResolutionContext) -> bool:
    try:
        await ctx.git.run("checkout", "--theirs", ".")
        await ctx.git.run("add", "-A")
        await ctx.git.run("commit", "-m", ctx.commit_message)
    except GitCommandError as exc:
        logger.warning("Taking remote side failed: %s", exc)
        return False
    return True


async def _reset_to_remote(ctx: ResolutionContext) -> bool:
    await ctx.git.run("merge", "--abort", check=False)
    try:
        await ctx.git.run("reset", "--hard", f"origin/{ctx.branch}")
    except GitCommandError as exc:
        logger.warning("Reset to origin/%s failed: %s", ctx.branch, exc)
        return False
    return True


async def _abort_merge(ctx: ResolutionContext) -> bool:
    try:
        await ctx.git.run("merge", "--abort")
    except GitCommandError as exc:
        logger.warning("Aborting merge failed: %s", exc)
        return False
    return True


async def _stash_and_retry(ctx: ResolutionContext) -> bool:
    stash = await ctx.git.run("stash", "push", "--include-untracked", "-m", _STASH_MESSAGE)
    stashed = "no local changes to save" not in stash.output.lower()
    try:
        await ctx.git.run("pull", *_PULL_ARGS, ctx.branch)
    except GitCommandError as exc:
        if classify_git_error(exc.output) != GitErrorKind.CONFLICT or not await _take_theirs(ctx):
            logger.warning("Pull after stashing failed: %s", exc)
            if stashed:
                await ctx.git.run("stash", "pop", check=False)
            return False
    if stashed:
        pop = await ctx.git.run("stash", "pop", check=False)
        if pop.returncode != 0:
            # Local edits clash with what was pulled: remote wins.
            logger.warning("Stashed changes conflict with remote, discarding them: %s", pop.output)
            await ctx.git.run("reset", "--hard", "HEAD")
            await ctx.git.run("stash", "drop", check=False)
    return True


TAKE_THEIRS = ResolutionStrategy("take_theirs", _take_theirs)
RESET_TO_REMOTE = ResolutionStrategy("reset_to_remote", _reset_to_remote)
ABORT_MERGE = ResolutionStrategy("abort_merge", _abort_merge)
STASH_AND_RETRY = ResolutionStrategy("stash_and_retry", _stash_and_retry)

PULL_STRATEGIES: dict[GitErrorKind, list[ResolutionStrategy]] = {
    GitErrorKind.CONFLICT: [TAKE_THEIRS, RESET_TO_REMOTE],
    GitErrorKind.DIRTY_TREE: [STASH_AND_RETRY],
}
MERGE_STRATEGIES: list[ResolutionStrategy] = [TAKE_THEIRS, ABORT_MERGE]


async def _apply_strategies(
    strategies: list[ResolutionStrategy], ctx: ResolutionContext, operation: str
) -> bool:
    for strategy in strategies:
        logger.warning("%s on %s needs recovery, trying %s", operation, ctx.branch, strategy.name)
        if await strategy.apply(ctx):
            logger.info("%s on %s recovered with %s", operation, ctx.branch, strategy.name)
            return True
        logger.warning("Strategy %s did not recover %s on %s", strategy.name, operation, ctx.branch)
    return False


async def safe_pull(git: GitService, branch: str) -> bool:
    """Pull *branch* from origin, recovering from every classified failure.

    Any merge left over from an interrupted run is aborted first. Returns True
    on success; raises GitCommandError for unclassified failures or when every
    strategy for a classified one fails.
    """
    await git.run("merge", "--abort", check=False)
    try:
        await git.run("pull", *_PULL_ARGS, branch)
    except GitCommandError as exc:
        kind = classify_git_error(exc.output or str(exc))
        if kind == GitErrorKind.EMPTY_REMOTE:
            logger.info("Remote has no %s branch yet, nothing to pull", branch)
            return True
        if kind == GitErrorKind.UNKNOWN:
            logger.error("Pull of %s failed: %s", branch, exc)
            raise
        ctx = ResolutionContext(git=git, branch=branch, commit_message=PULL_CONFLICT_COMMIT)
        if await _apply_strategies(PULL_STRATEGIES[kind], ctx, "Pull"):
            return True
        logger.error("Could not recover pull of %s: %s", branch, exc)
        raise
    return True


async def safe_merge(git: GitService, source_branch: str) -> None:
    """Merge *source_branch* into the current branch, remote side winning conflicts.

    Non-conflict failures are logged and swallowed so the current branch keeps
    its own commits.
    """
    try:
        await git.run("merge", "--no-edit", source_branch)
    except GitCommandError as exc:
        if classify_git_error(exc.output or str(exc)) != GitErrorKind.CONFLICT:
            logger.info("Merge of %s not applied: %s", source_branch, exc)
            return
        ctx = ResolutionContext(
            git=git,
            branch=source_branch,
            commit_message=MERGE_CONFLICT_COMMIT.format(source=source_branch),
        )
        if not await _apply_strategies(MERGE_STRATEGIES, ctx, "Merge"):
            logger.error("Could not recover merge of %s: %s", source_branch, exc)
