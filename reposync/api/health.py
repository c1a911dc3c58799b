"""Health check endpoint."""

from __future__ import annotations

import logging
import shutil

from fastapi import APIRouter
from pydantic import BaseModel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    git: str


@router.get("/api/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint for monitoring and load balancers."""
    git_status = "ok"
    if shutil.which("git") is None:
        logger.warning("Health check: git executable not found on PATH")
        git_status = "missing"

    return HealthResponse(
        status="ok" if git_status == "ok" else "degraded",
        version="0.1.0",
        git=git_status,
    )
