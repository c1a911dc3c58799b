"""Local item store: per-account article files on disk."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import yaml

from reposync.filesystem.frontmatter import decode_item, encode_item
from reposync.filesystem.status_dirs import ITEM_SUFFIX, is_safe_filename
from reposync.models.item import SYNC_ONLY_KEYS, ContentItem

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


def _check_filename(filename: str) -> None:
    if not is_safe_filename(filename):
        msg = f"Invalid item filename: {filename!r}"
        raise ValueError(msg)


class LocalItemStore:
    """Reads and writes items under ``{data_dir}/accounts/{account}/articles``."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir

    def articles_dir(self, account_id: str) -> Path:
        return self.data_dir / "accounts" / account_id / "articles"

    def has_account(self, account_id: str) -> bool:
        return self.articles_dir(account_id).is_dir()

    def list_filenames(self, account_id: str) -> list[str]:
        directory = self.articles_dir(account_id)
        if not directory.is_dir():
            return []
        names = []
        for path in sorted(directory.glob(f"*{ITEM_SUFFIX}")):
            if not is_safe_filename(path.name):
                logger.warning("Ignoring item file with unsupported name: %s", path)
                continue
            if path.is_file():
                names.append(path.name)
        return names

    def read(self, account_id: str, filename: str) -> ContentItem | None:
        """Load one item, or None when the file does not exist."""
        _check_filename(filename)
        path = self.articles_dir(account_id) / filename
        if not path.is_file():
            return None
        return decode_item(path.read_text(encoding="utf-8"), filename)

    def load_all(self, account_id: str) -> list[ContentItem]:
        """Every readable item of an account; unreadable files are logged and skipped."""
        items: list[ContentItem] = []
        for filename in self.list_filenames(account_id):
            try:
                item = self.read(account_id, filename)
            except (UnicodeDecodeError, yaml.YAMLError) as exc:
                logger.warning("Skipping unreadable item %s/%s: %s", account_id, filename, exc)
                continue
            if item is not None:
                items.append(item)
        return items

    def write(self, account_id: str, item: ContentItem) -> None:
        """Write an item, dropping the keys that only belong in the mirror."""
        _check_filename(item.filename)
        directory = self.articles_dir(account_id)
        directory.mkdir(parents=True, exist_ok=True)
        local = ContentItem(
            filename=item.filename,
            status=item.status,
            metadata={k: v for k, v in item.metadata.items() if k not in SYNC_ONLY_KEYS},
            body=item.body,
        )
        (directory / item.filename).write_text(encode_item(local), encoding="utf-8")

    def delete(self, account_id: str, filename: str) -> bool:
        _check_filename(filename)
        path = self.articles_dir(account_id) / filename
        if not path.is_file():
            return False
        path.unlink()
        return True
