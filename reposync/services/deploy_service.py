"""Artifact deployment through the GitHub contents API, bypassing the mirror."""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import TYPE_CHECKING

from reposync.models.sync import DeployResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from reposync.models.sync import ArtifactFile
    from reposync.services.github_api import GitHubClient

logger = logging.getLogger(__name__)

DEPLOY_COMMIT = "[setup] Deploy {path}"


def git_blob_sha(data: bytes) -> str:
    """SHA-1 git assigns to a blob with this content."""
    header = f"blob {len(data)}\0".encode()
    return hashlib.sha1(header + data, usedforsecurity=False).hexdigest()


async def deploy_artifacts(
    client: GitHubClient, files: Iterable[ArtifactFile], *, branch: str
) -> DeployResult:
    """Create or update each file on *branch* unless the remote copy is identical.

    ContentConflictError (HTTP 409) propagates and is not retried.
    """
    result = DeployResult()
    for artifact in files:
        local_sha = git_blob_sha(artifact.content)
        existing = await client.get_contents(artifact.path, ref=branch)
        remote_sha = existing.get("sha") if existing else None
        if remote_sha == local_sha:
            logger.debug("Artifact %s unchanged, skipping", artifact.path)
            result.skipped.append(artifact.path)
            continue
        await client.put_contents(
            artifact.path,
            content_b64=base64.b64encode(artifact.content).decode("ascii"),
            message=DEPLOY_COMMIT.format(path=artifact.path),
            branch=branch,
            sha=remote_sha,
        )
        logger.info("Deployed %s to %s", artifact.path, branch)
        result.deployed.append(artifact.path)
    return result
