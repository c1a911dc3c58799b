"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reposync.exceptions import ConfigurationError
from reposync.services.redaction import register_secret

_REPOSITORY_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


class Settings(BaseSettings):
    """RepoSync settings."""

    model_config = SettingsConfigDict(
        env_prefix="REPOSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Remote repository
    github_repository: str = ""
    github_token: str = ""
    git_host: str = "github.com"
    api_url: str = "https://api.github.com"
    remote_url_override: str | None = None
    main_branch: str = "main"

    # Paths
    data_dir: Path = Path("./data")
    mirror_root: Path | None = None

    # Git
    git_user_name: str = "RepoSync"
    git_user_email: str = "reposync@localhost"
    git_timeout: float = Field(default=120.0, gt=0)
    http_timeout: float = Field(default=30.0, gt=0)

    # Per-account gate and mirror instead of one process-wide pair
    per_account_mirrors: bool = False

    # Accounts: id -> display name used in review request titles
    account_display_names: dict[str, str] = Field(default_factory=dict)

    # Server
    host: str = "127.0.0.1"
    port: int = Field(default=8400, ge=1, le=65535)
    api_token: str | None = None

    def model_post_init(self, __context: object) -> None:
        register_secret(self.github_token)
        register_secret(self.api_token)

    @property
    def resolved_mirror_root(self) -> Path:
        """Directory holding all mirrors."""
        return self.mirror_root if self.mirror_root is not None else self.data_dir / "github-sync"

    def owner_repo(self) -> tuple[str, str]:
        """Split ``github_repository`` into owner and repository name."""
        repository = self.github_repository.strip()
        if not repository:
            raise ConfigurationError("GitHub repository is not configured")
        if not _REPOSITORY_RE.match(repository):
            msg = f"Invalid GitHub repository {repository!r}; expected 'owner/repo'"
            raise ConfigurationError(msg)
        owner, repo = repository.split("/", 1)
        return owner, repo.removesuffix(".git")

    def require_token(self) -> str:
        """Return the GitHub token or raise if it is missing."""
        if not self.github_token:
            raise ConfigurationError("GitHub token is not configured")
        return self.github_token

    def remote_url(self) -> str:
        """Authenticated HTTPS remote URL for git."""
        if self.remote_url_override:
            return self.remote_url_override
        owner, repo = self.owner_repo()
        token = self.require_token()
        return f"https://x-access-token:{token}@{self.git_host}/{owner}/{repo}.git"

    def display_name(self, account_id: str) -> str:
        """Human-readable account name, falling back to the id."""
        return self.account_display_names.get(account_id) or account_id
