"""Placement of content items into per-account status directories of the mirror."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import yaml

from reposync.filesystem.frontmatter import decode_item, encode_item
from reposync.models.item import DIR_STATUS_MAP, STATUS_DIR_MAP, ContentItem, ItemStatus

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

ITEM_SUFFIX = ".md"


def is_safe_filename(filename: str) -> bool:
    """A bare ``*.md`` file name with no path components and no leading dot."""
    return (
        bool(filename)
        and filename.endswith(ITEM_SUFFIX)
        and "/" not in filename
        and "\\" not in filename
        and not filename.startswith(".")
    )


def status_path(mirror_dir: Path, account_id: str, status: ItemStatus) -> Path:
    """Directory holding items of *status* for *account_id*."""
    return mirror_dir / account_id / STATUS_DIR_MAP[status]


def list_mirror_files(mirror_dir: Path, account_id: str) -> dict[str, list[tuple[ItemStatus, Path]]]:
    """Map filename -> [(status, path), ...] for every item of an account in the mirror.

    More than one entry per filename means the one-location invariant is
    currently violated (e.g. after a remote edit); ``place`` repairs it.
    """
    found: dict[str, list[tuple[ItemStatus, Path]]] = {}
    account_dir = mirror_dir / account_id
    if not account_dir.is_dir():
        return found
    for dir_name, status in DIR_STATUS_MAP.items():
        directory = account_dir / dir_name
        if not directory.is_dir():
            continue
        for path in sorted(directory.glob(f"*{ITEM_SUFFIX}")):
            if not is_safe_filename(path.name):
                logger.warning("Ignoring mirror file with unsupported name: %s", path)
                continue
            if path.is_file():
                found.setdefault(path.name, []).append((status, path))
    return found


def count_items(mirror_dir: Path, account_id: str) -> int:
    """Number of item files in the account's status subtree."""
    return sum(len(entries) for entries in list_mirror_files(mirror_dir, account_id).values())


def remove_stale_copies(
    mirror_dir: Path, account_id: str, filename: str, keep: ItemStatus | None
) -> int:
    """Delete copies of *filename* from every status directory except *keep*."""
    removed = 0
    for status in ItemStatus:
        if status == keep:
            continue
        stale = status_path(mirror_dir, account_id, status) / filename
        if stale.is_file():
            stale.unlink()
            removed += 1
            logger.debug("Removed stale copy %s/%s/%s", account_id, STATUS_DIR_MAP[status], filename)
    return removed


def _unchanged(target: Path, item: ContentItem) -> bool:
    if not target.is_file():
        return False
    try:
        existing = decode_item(target.read_text(encoding="utf-8"), target.name)
    except (UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.warning("Replacing unreadable mirror file %s: %s", target, exc)
        return False
    return existing.comparable() == item.comparable()


def place(mirror_dir: Path, account_id: str, item: ContentItem, synced_at: str) -> bool:
    """Write *item* into its status directory, enforcing the one-location invariant.

    The file is only rewritten when its content differs from what is on disk,
    ignoring ``synced_at``. Returns True when anything changed on disk.
    """
    removed = remove_stale_copies(mirror_dir, account_id, item.filename, keep=item.status)
    target_dir = status_path(mirror_dir, account_id, item.status)
    target = target_dir / item.filename
    if _unchanged(target, item):
        return removed > 0
    target_dir.mkdir(parents=True, exist_ok=True)
    content = encode_item(item, {"account_id": account_id, "synced_at": synced_at})
    target.write_text(content, encoding="utf-8")
    logger.debug("Placed %s into %s", item.filename, target_dir)
    return True
