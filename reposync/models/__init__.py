"""Domain models for RepoSync."""

from reposync.models.item import (
    DIR_STATUS_MAP,
    STATUS_DIR_MAP,
    ContentItem,
    ItemStatus,
    resolve_status,
    status_label,
)
from reposync.models.sync import (
    ArtifactFile,
    ConnectionReport,
    DeployResult,
    EngineStatus,
    PullOutcome,
    PushOutcome,
    PushResult,
    ReviewRequest,
    SyncMode,
    SyncOutcome,
    SyncRun,
)

__all__ = [
    "ArtifactFile",
    "DIR_STATUS_MAP",
    "STATUS_DIR_MAP",
    "ConnectionReport",
    "ContentItem",
    "DeployResult",
    "EngineStatus",
    "ItemStatus",
    "PullOutcome",
    "PushOutcome",
    "PushResult",
    "ReviewRequest",
    "SyncMode",
    "SyncOutcome",
    "SyncRun",
    "resolve_status",
    "status_label",
]
