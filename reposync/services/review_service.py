"""Review branches and their pull requests."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reposync.models.sync import ReviewRequest
from reposync.services.conflict_service import safe_merge
from reposync.services.datetime_service import today_utc

if TYPE_CHECKING:
    from datetime import datetime

    from reposync.services.git_service import GitService
    from reposync.services.github_api import GitHubClient

logger = logging.getLogger(__name__)


def review_branch_name(account_id: str, now: datetime | None = None) -> str:
    """``edit/{account}/{YYYY-MM-DD}`` for the current UTC date."""
    return f"edit/{account_id}/{today_utc(now)}"


def review_title(display_name: str, date: str, item_count: int) -> str:
    return f"[{display_name}] Articles for {date} ({item_count} items)"


def review_body(account_id: str, display_name: str, date: str, item_count: int) -> str:
    return (
        f"Automated sync of articles for review.\n\n"
        f"- Account: {display_name} (`{account_id}`)\n"
        f"- Date: {date}\n"
        f"- Items: {item_count}\n\n"
        f"Merge this pull request to publish the changes to the main branch."
    )


async def ensure_review_request(
    client: GitHubClient,
    *,
    branch: str,
    base: str,
    title: str,
    body: str,
) -> ReviewRequest:
    """Reuse the open pull request for *branch*, or open a new one against *base*."""
    existing = await client.list_open_pulls(branch)
    if existing:
        pull = existing[0]
        logger.info("Reusing pull request #%s for %s", pull["number"], branch)
        return ReviewRequest(number=int(pull["number"]), url=str(pull["html_url"]), created=False)
    pull = await client.create_pull(title=title, head=branch, base=base, body=body)
    logger.info("Opened pull request #%s for %s", pull["number"], branch)
    return ReviewRequest(number=int(pull["number"]), url=str(pull["html_url"]), created=True)


async def checkout_review_branch(git: GitService, branch: str, main_branch: str) -> None:
    """Switch to *branch*, bringing it up to date with main or creating it from main."""
    if await git.branch_exists(branch):
        await git.checkout(branch)
        await safe_merge(git, main_branch)
    else:
        await git.checkout(branch, create=True)
        logger.info("Created review branch %s from %s", branch, main_branch)


async def return_to_main(git: GitService, main_branch: str) -> None:
    """Check out main again after review work; failures are logged, not raised."""
    result = await git.run("checkout", main_branch, check=False)
    if result.returncode != 0:
        logger.warning("Could not switch back to %s: %s", main_branch, result.output)
