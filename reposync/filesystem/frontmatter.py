"""YAML front matter codec for content items."""

from __future__ import annotations

import re
from typing import Any

import frontmatter

from reposync.models.item import ContentItem, ItemStatus, resolve_status

_HEADING_PREFIX_RE = re.compile(r"^#+\s*")


def decode_item(raw_content: str, filename: str) -> ContentItem:
    """Parse a file with optional YAML front matter into a ContentItem.

    Files without a header decode to empty metadata and status ``generated``.
    Raises ``yaml.YAMLError`` when the header is not valid YAML.
    """
    raw_metadata, body = frontmatter.parse(raw_content)
    metadata: dict[str, Any] = {str(k): v for k, v in raw_metadata.items()}
    status = resolve_status(metadata.pop("status", None))
    return ContentItem(filename=filename, status=status, metadata=metadata, body=body)


def encode_item(item: ContentItem, extra: dict[str, Any] | None = None) -> str:
    """Serialize an item to front matter + blank line + body.

    *extra* keys (``account_id``, ``synced_at``) override item metadata.
    """
    metadata: dict[str, Any] = {k: _plain(v) for k, v in item.metadata.items() if k != "status"}
    metadata["status"] = str(item.status)
    if extra:
        metadata.update({k: _plain(v) for k, v in extra.items() if v is not None})
    post = frontmatter.Post(item.body.strip())
    post.metadata.update(metadata)
    return str(frontmatter.dumps(post)) + "\n"


def extract_title(item: ContentItem) -> str:
    """Title from metadata, else the first body line with heading markers stripped."""
    meta_title = item.metadata.get("title")
    if isinstance(meta_title, str) and meta_title.strip():
        return meta_title.strip()
    first_line = item.body.strip().split("\n", 1)[0] if item.body.strip() else ""
    return _HEADING_PREFIX_RE.sub("", first_line).strip()


def _plain(value: Any) -> Any:
    """Convert enum values to plain strings so the YAML safe dumper accepts them."""
    if isinstance(value, ItemStatus):
        return str(value)
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value
