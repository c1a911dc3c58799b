"""Engine-level exception types.

Convention:
- ``ConfigurationError``: missing or invalid remote identifier, credential or
  account mapping. Fatal for the call, never retried, surfaced verbatim (after
  token masking) to the caller.
- ``GitCommandError``: a git invocation failed and no recovery strategy
  applied. Its text is masked when the exception is built, so it is safe to log
  or return as-is.
- ``HostingApiError`` and subclasses: GitHub REST API failures, each mapped to
  a fixed user-facing message.

A busy engine is not an error: operations return a ``skipped`` result instead.
"""

from __future__ import annotations

from reposync.services.redaction import mask_secrets


class SyncError(Exception):
    """Base class for all synchronization engine errors."""


class ConfigurationError(SyncError):
    """Raised when the remote repository, token or account mapping is unusable."""

    def __init__(self, message: str) -> None:
        super().__init__(mask_secrets(message))


class GitCommandError(SyncError):
    """Raised when a git command exits non-zero or times out."""

    def __init__(self, args: tuple[str, ...], returncode: int, output: str) -> None:
        self.git_args = tuple(mask_secrets(a) for a in args)
        self.returncode = returncode
        self.output = mask_secrets(output)
        command = " ".join(self.git_args)
        super().__init__(f"git {command} failed (exit {returncode}): {self.output.strip()}")


class HostingApiError(SyncError):
    """Raised for GitHub REST API failures that have no more specific type."""

    default_message = "GitHub API request failed"

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = mask_secrets(detail)
        message = f"{self.default_message} (HTTP {status_code})"
        if self.detail:
            message = f"{message}: {self.detail}"
        super().__init__(message)


class InvalidTokenError(HostingApiError):
    """HTTP 401: the configured token was rejected."""

    default_message = "GitHub token is invalid or expired"


class RepositoryNotFoundError(HostingApiError):
    """HTTP 404: the repository or path does not exist or is not visible to the token."""

    default_message = "Repository or path not found"


class ContentConflictError(HostingApiError):
    """HTTP 409 on a contents update: the file changed concurrently; retry later."""

    default_message = "File was updated concurrently; retry the deployment"
