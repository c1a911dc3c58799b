"""Content items and the status <-> directory mapping."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class ItemStatus(StrEnum):
    """Lifecycle status of a content item."""

    GENERATED = "generated"
    REVIEWING = "reviewing"
    REVIEWED = "reviewed"
    REJECTED = "rejected"


STATUS_DIR_MAP: dict[ItemStatus, str] = {
    ItemStatus.GENERATED: "drafts",
    ItemStatus.REVIEWING: "reviewing",
    ItemStatus.REVIEWED: "approved",
    ItemStatus.REJECTED: "rejected",
}

DIR_STATUS_MAP: dict[str, ItemStatus] = {v: k for k, v in STATUS_DIR_MAP.items()}

STATUS_LABELS: dict[ItemStatus, str] = {
    ItemStatus.GENERATED: "Generated",
    ItemStatus.REVIEWING: "In review",
    ItemStatus.REVIEWED: "Approved",
    ItemStatus.REJECTED: "Rejected",
}

# Keys the engine adds to mirror copies; never written back to the local store.
SYNC_ONLY_KEYS: frozenset[str] = frozenset({"account_id", "synced_at"})


def resolve_status(raw: object) -> ItemStatus:
    """Map a raw metadata value to an ItemStatus, defaulting to GENERATED."""
    if isinstance(raw, ItemStatus):
        return raw
    if raw is None or raw == "":
        return ItemStatus.GENERATED
    try:
        return ItemStatus(str(raw).strip())
    except ValueError:
        logger.warning("Unknown item status %r, treating as %s", raw, ItemStatus.GENERATED)
        return ItemStatus.GENERATED


def status_label(status: object) -> str:
    """Human-readable label for commit messages."""
    try:
        return STATUS_LABELS[ItemStatus(str(status))]
    except ValueError:
        return "Status change"


@dataclass
class ContentItem:
    """One content file: unique filename, status, metadata and body."""

    filename: str
    status: ItemStatus = ItemStatus.GENERATED
    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""

    def comparable(self) -> tuple[ItemStatus, dict[str, Any], str]:
        """Identity used to decide whether two copies differ, ignoring sync-only keys."""
        meta = {k: v for k, v in self.metadata.items() if k not in SYNC_ONLY_KEYS}
        return self.status, meta, self.body.strip()
