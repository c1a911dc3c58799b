"""Single-item push workflows: straight to main, or through a review branch."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from reposync.filesystem.frontmatter import extract_title
from reposync.filesystem.status_dirs import count_items, place
from reposync.models.item import ContentItem, ItemStatus, resolve_status, status_label
from reposync.models.sync import PushOutcome, PushResult, ReviewRequest
from reposync.services.conflict_service import safe_pull
from reposync.services.datetime_service import format_iso, now_utc, today_utc
from reposync.services.review_service import (
    checkout_review_branch,
    ensure_review_request,
    return_to_main,
    review_branch_name,
    review_body,
    review_title,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from pathlib import Path

    from reposync.config import Settings
    from reposync.filesystem.content_store import LocalItemStore
    from reposync.services.git_service import GitService
    from reposync.services.github_api import GitHubClient
    from reposync.services.mirror_service import MirrorManager

logger = logging.getLogger(__name__)


def apply_overrides(
    item: ContentItem,
    status: ItemStatus | str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ContentItem:
    """Return a copy of *item* with metadata overrides and a new status applied."""
    merged = {**item.metadata, **(metadata or {})}
    raw_status = merged.pop("status", None)
    if status is None:
        status = raw_status if raw_status is not None else item.status
    return ContentItem(
        filename=item.filename,
        status=resolve_status(status),
        metadata=merged,
        body=item.body,
    )


def push_commit_message(item: ContentItem) -> str:
    return f"[auto] {status_label(item.status)} - {extract_title(item) or item.filename}"


async def stage_account(git: GitService, mirror_dir: Path, account_id: str) -> None:
    """Stage every change under the account's subtree of the mirror."""
    if (mirror_dir / account_id).exists():
        await git.add(account_id)


def _load_item(
    store: LocalItemStore,
    account_id: str,
    filename: str,
    status: ItemStatus | str | None,
    metadata: dict[str, Any] | None,
) -> ContentItem | None:
    item = store.read(account_id, filename)
    if item is None:
        logger.warning("Item %s/%s not found in local store", account_id, filename)
        return None
    if status is None and not metadata:
        return item
    updated = apply_overrides(item, status, metadata)
    store.write(account_id, updated)
    return updated


async def push_direct(
    settings: Settings,
    mirror: MirrorManager,
    store: LocalItemStore,
    account_id: str,
    filename: str,
    *,
    status: ItemStatus | str | None = None,
    metadata: dict[str, Any] | None = None,
) -> PushResult:
    """Publish one local item to the main branch."""
    handle = await mirror.ensure_ready()
    git = handle.git
    main = settings.main_branch
    await mirror.ensure_main_branch()
    await safe_pull(git, main)

    item = _load_item(store, account_id, filename, status, metadata)
    if item is None:
        return PushResult(outcome=PushOutcome.MISSING, reason=f"{filename} not found")

    place(handle.path, account_id, item, format_iso(now_utc()))
    await stage_account(git, handle.path, account_id)
    message = push_commit_message(item)
    if not await git.commit_staged(message):
        return PushResult(outcome=PushOutcome.NO_CHANGES, branch=main)
    await git.push(main)
    logger.info("Pushed %s/%s to %s", account_id, filename, main)
    return PushResult(outcome=PushOutcome.PUSHED, commit_message=message, branch=main)


async def open_review_request(
    settings: Settings,
    client_factory: Callable[[], GitHubClient],
    mirror_dir: Path,
    account_id: str,
    branch: str,
    date: str,
) -> ReviewRequest:
    """Reuse or open the pull request for a pushed review branch."""
    display = settings.display_name(account_id)
    count = count_items(mirror_dir, account_id)
    async with client_factory() as client:
        return await ensure_review_request(
            client,
            branch=branch,
            base=settings.main_branch,
            title=review_title(display, date, count),
            body=review_body(account_id, display, date, count),
        )


async def push_for_review(
    settings: Settings,
    mirror: MirrorManager,
    store: LocalItemStore,
    client_factory: Callable[[], GitHubClient],
    account_id: str,
    filename: str,
    *,
    status: ItemStatus | str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> PushResult:
    """Publish one local item on today's review branch and make sure a pull request is open.

    Main is checked out again before returning, whatever the outcome.
    """
    handle = await mirror.ensure_ready()
    git = handle.git
    main = settings.main_branch
    date = today_utc(now)
    branch = review_branch_name(account_id, now)
    await mirror.ensure_main_branch()
    await safe_pull(git, main)

    item = _load_item(store, account_id, filename, status, metadata)
    if item is None:
        return PushResult(outcome=PushOutcome.MISSING, reason=f"{filename} not found")

    try:
        await checkout_review_branch(git, branch, main)
        place(handle.path, account_id, item, format_iso(now_utc()))
        await stage_account(git, handle.path, account_id)
        message = push_commit_message(item)
        if not await git.commit_staged(message):
            return PushResult(outcome=PushOutcome.NO_CHANGES, branch=branch)
        await git.push(branch)
        request = await open_review_request(
            settings, client_factory, handle.path, account_id, branch, date
        )
    finally:
        await return_to_main(git, main)
    logger.info("Pushed %s/%s to review branch %s", account_id, filename, branch)
    return PushResult(
        outcome=PushOutcome.PUSHED,
        commit_message=message,
        review_request=request,
        branch=branch,
    )
