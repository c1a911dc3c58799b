"""Sync run records and operation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from reposync.services.datetime_service import now_utc


class SyncMode(StrEnum):
    """Where a sync pushes: straight to the main line or to a review branch."""

    DIRECT = "direct"
    REVIEW = "review"


class PushOutcome(StrEnum):
    """Result kind of a single-item push."""

    PUSHED = "pushed"
    NO_CHANGES = "no_changes"
    SKIPPED = "skipped"
    MISSING = "missing"


@dataclass
class ReviewRequest:
    """An open pull request for a review branch."""

    number: int
    url: str
    created: bool


@dataclass
class PushResult:
    """Result of pushing one item."""

    outcome: PushOutcome
    commit_message: str | None = None
    review_request: ReviewRequest | None = None
    branch: str | None = None
    reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.outcome == PushOutcome.SKIPPED


@dataclass
class SyncOutcome:
    """Result of a full bidirectional sync."""

    pushed: int = 0
    pulled: int = 0
    review_request: ReviewRequest | None = None
    skipped: bool = False
    reason: str | None = None


@dataclass
class PullOutcome:
    """Result of a pull-only run."""

    changes: int = 0
    skipped: bool = False
    reason: str | None = None


@dataclass
class SyncRun:
    """Ephemeral record of one orchestration call."""

    account_id: str
    mode: SyncMode
    started_at: datetime
    finished_at: datetime | None = None
    pushed: int = 0
    pulled: int = 0

    @classmethod
    def start(cls, account_id: str, mode: SyncMode) -> SyncRun:
        return cls(account_id=account_id, mode=mode, started_at=now_utc())

    def finish(self) -> None:
        self.finished_at = now_utc()


@dataclass
class EngineStatus:
    """Process-wide engine state for status reporting."""

    syncing: bool
    last_sync_time: datetime | None
    mirror_path: str | None


@dataclass
class ConnectionReport:
    """Outcome of the connectivity check."""

    success: bool
    error: str | None = None


@dataclass
class ArtifactFile:
    """A file to publish into the remote repository through the contents API."""

    path: str
    content: bytes


@dataclass
class DeployResult:
    """Result of an artifact deployment."""

    deployed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    skipped_run: bool = False
