"""Sync API endpoints: status, connectivity, sync, pull, single-item push, deploy."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from reposync.api.deps import get_engine, require_api_token
from reposync.filesystem.content_store import is_safe_filename
from reposync.models.item import ItemStatus
from reposync.models.sync import ArtifactFile, PushOutcome, ReviewRequest, SyncMode
from reposync.services.datetime_service import format_iso
from reposync.services.sync_service import SyncEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"], dependencies=[Depends(require_api_token)])

_ACCOUNT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,99}$")
_MAX_ARTIFACT_SIZE = 1024 * 1024  # 1 MB, the contents API limit for base64 uploads


def _check_account_id(account_id: str) -> str:
    if not _ACCOUNT_ID_RE.match(account_id) or ".." in account_id:
        raise HTTPException(status_code=400, detail=f"Invalid account id: {account_id}")
    return account_id


# ── Schemas ──────────────────────────────────────────


class ReviewRequestResponse(BaseModel):
    """Pull request opened or reused for a review branch."""

    number: int
    url: str
    created: bool


class SyncStatusResponse(BaseModel):
    syncing: bool
    last_sync_time: str | None = None
    mirror_path: str | None = None


class ConnectionCheckResponse(BaseModel):
    success: bool
    error: str | None = None


class SyncResponse(BaseModel):
    """Result of a full sync."""

    pushed: int = 0
    pulled: int = 0
    skipped: bool = False
    reason: str | None = None
    review_request: ReviewRequestResponse | None = None


class PullResponse(BaseModel):
    changes: int = 0
    skipped: bool = False
    reason: str | None = None


class PushItemRequest(BaseModel):
    """Push one local item, optionally changing its status or metadata first."""

    review: bool = False
    status: ItemStatus | None = None
    metadata: dict[str, Any] | None = None


class PushItemResponse(BaseModel):
    outcome: str
    commit_message: str | None = None
    branch: str | None = None
    reason: str | None = None
    review_request: ReviewRequestResponse | None = None


class DeployFile(BaseModel):
    """One artifact to publish into the repository."""

    path: str = Field(min_length=1, max_length=500, pattern=r"^[^/\\][^\\]*$")
    content: str
    encoding: Literal["utf-8", "base64"] = "utf-8"


class DeployRequest(BaseModel):
    files: list[DeployFile] = Field(min_length=1, max_length=50)


class DeployResponse(BaseModel):
    deployed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    skipped_run: bool = False


def _review_response(request: ReviewRequest | None) -> ReviewRequestResponse | None:
    if request is None:
        return None
    return ReviewRequestResponse(number=request.number, url=request.url, created=request.created)


def _to_artifact(file: DeployFile) -> ArtifactFile:
    if ".." in file.path.split("/") or file.path.endswith("/"):
        raise HTTPException(status_code=400, detail=f"Invalid artifact path: {file.path}")
    if file.encoding == "base64":
        try:
            data = base64.b64decode(file.content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(
                status_code=400, detail=f"Invalid base64 content for {file.path}"
            ) from exc
    else:
        data = file.content.encode("utf-8")
    if len(data) > _MAX_ARTIFACT_SIZE:
        raise HTTPException(status_code=413, detail=f"Artifact too large (max 1 MB): {file.path}")
    return ArtifactFile(path=file.path, content=data)


# ── Endpoints ────────────────────────────────────────


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(engine: Annotated[SyncEngine, Depends(get_engine)]) -> SyncStatusResponse:
    """Report whether a run is in progress and when the last one finished."""
    state = engine.status()
    return SyncStatusResponse(
        syncing=state.syncing,
        last_sync_time=format_iso(state.last_sync_time) if state.last_sync_time else None,
        mirror_path=state.mirror_path,
    )


@router.post("/check", response_model=ConnectionCheckResponse)
async def check_connection(
    engine: Annotated[SyncEngine, Depends(get_engine)],
) -> ConnectionCheckResponse:
    """Check the git remote and the GitHub API with the configured token."""
    report = await engine.check_connection()
    return ConnectionCheckResponse(success=report.success, error=report.error)


@router.post("/deploy", response_model=DeployResponse)
async def deploy(
    body: DeployRequest,
    engine: Annotated[SyncEngine, Depends(get_engine)],
) -> DeployResponse:
    """Publish artifact files to the main branch, skipping files that are already identical."""
    artifacts = [_to_artifact(f) for f in body.files]
    result = await engine.deploy(artifacts)
    return DeployResponse(
        deployed=result.deployed, skipped=result.skipped, skipped_run=result.skipped_run
    )


@router.post("/{account_id}", response_model=SyncResponse)
async def sync_account(
    account_id: str,
    engine: Annotated[SyncEngine, Depends(get_engine)],
    mode: Annotated[SyncMode, Query()] = SyncMode.DIRECT,
) -> SyncResponse:
    """Run a full bidirectional sync for one account."""
    outcome = await engine.sync(_check_account_id(account_id), mode)
    return SyncResponse(
        pushed=outcome.pushed,
        pulled=outcome.pulled,
        skipped=outcome.skipped,
        reason=outcome.reason,
        review_request=_review_response(outcome.review_request),
    )


@router.post("/{account_id}/pull", response_model=PullResponse)
async def pull_account(
    account_id: str,
    engine: Annotated[SyncEngine, Depends(get_engine)],
    reflect_deletions: Annotated[bool, Query()] = True,
) -> PullResponse:
    """Pull remote changes into the local store, remote side winning."""
    outcome = await engine.pull(_check_account_id(account_id), reflect_deletions=reflect_deletions)
    return PullResponse(changes=outcome.changes, skipped=outcome.skipped, reason=outcome.reason)


@router.post("/{account_id}/items/{filename}/push", response_model=PushItemResponse)
async def push_item(
    account_id: str,
    filename: str,
    engine: Annotated[SyncEngine, Depends(get_engine)],
    body: PushItemRequest | None = None,
) -> PushItemResponse:
    """Push one item, directly or through today's review branch."""
    _check_account_id(account_id)
    if not is_safe_filename(filename):
        raise HTTPException(status_code=400, detail=f"Invalid item filename: {filename}")
    request = body or PushItemRequest()
    result = await engine.push_item(
        account_id,
        filename,
        review=request.review,
        status=request.status,
        metadata=request.metadata,
    )
    if result.outcome == PushOutcome.MISSING:
        raise HTTPException(status_code=404, detail=f"Item not found: {filename}")
    return PushItemResponse(
        outcome=str(result.outcome),
        commit_message=result.commit_message,
        branch=result.branch,
        reason=result.reason,
        review_request=_review_response(result.review_request),
    )
