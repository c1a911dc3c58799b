"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from reposync.api.health import router as health_router
from reposync.api.sync import router as sync_router
from reposync.config import Settings
from reposync.exceptions import (
    ConfigurationError,
    ContentConflictError,
    GitCommandError,
    HostingApiError,
    InvalidTokenError,
    RepositoryNotFoundError,
)
from reposync.services.redaction import TokenMaskingFilter
from reposync.services.sync_service import SyncEngine

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    """Configure application logging with credential masking on every root handler."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(TokenMaskingFilter())
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    configure_logging(settings.debug)
    logger.info("Starting RepoSync (debug=%s)", settings.debug)

    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.critical("Failed to create data directory at %s: %s.", settings.data_dir, exc)
        raise

    if not settings.github_repository:
        logger.warning("REPOSYNC_GITHUB_REPOSITORY is not set; sync calls will fail until it is")

    yield

    logger.info("RepoSync stopped")


def create_app(settings: Settings | None = None, engine: SyncEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="RepoSync",
        description="Synchronizes local content with a GitHub repository",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.engine = engine if engine is not None else SyncEngine(settings)

    app.include_router(health_router)
    app.include_router(sync_router)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        logger.error("ConfigurationError in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(HostingApiError)
    async def hosting_api_error_handler(request: Request, exc: HostingApiError) -> JSONResponse:
        logger.error("HostingApiError in %s %s: %s", request.method, request.url.path, exc)
        if isinstance(exc, InvalidTokenError):
            status_code = 401
        elif isinstance(exc, RepositoryNotFoundError):
            status_code = 404
        elif isinstance(exc, ContentConflictError):
            status_code = 409
        else:
            status_code = 502
        return JSONResponse(status_code=status_code, content={"detail": exc.default_message})

    @app.exception_handler(GitCommandError)
    async def git_error_handler(request: Request, exc: GitCommandError) -> JSONResponse:
        logger.error("GitCommandError in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    return app


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "reposync.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
