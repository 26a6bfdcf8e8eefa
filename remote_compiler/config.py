"""Configuration settings for remote_compiler.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import tempfile
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_artifacts_dir() -> Path:
    """Return the default artifacts directory (scratch space)."""
    return Path(tempfile.gettempdir()) / "remote-compiler" / "artifacts"


def _default_credentials_path() -> Path:
    """Return the default credentials file path."""
    return Path.home() / ".config" / "remote-compiler" / "credentials.json"


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "remote-compiler" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the RCOMP_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="RCOMP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote API
    api_base_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the repository hosting REST API",
    )
    api_version: str = Field(
        default="2022-11-28",
        description="Value sent in the X-GitHub-Api-Version header",
    )
    user_agent: str = Field(
        default="remote-compiler",
        description="Client identifier sent with every request",
    )

    # Remote repository layout
    branch: str = Field(default="main", description="Branch targeted by all writes")
    workflow_file: str = Field(
        default="build.yml",
        description="Workflow file name dispatched to build the project",
    )
    manifest_path: str = Field(
        default="project.yml",
        description="Repository path of the generated project manifest",
    )
    source_path: str = Field(
        default="Sources/main.swift",
        description="Repository path the source code is written to",
    )
    commit_message: str = Field(
        default="Update {path} via remote-compiler",
        description="Commit message template; {path} is replaced by the file path",
    )

    # Polling
    poll_max_attempts: int = Field(
        default=40,
        ge=1,
        description="Maximum number of workflow run status polls",
    )
    poll_interval: float = Field(
        default=5.0,
        ge=0,
        description="Seconds between workflow run status polls",
    )
    settle_delay: float = Field(
        default=5.0,
        ge=0,
        description="Seconds to wait after dispatch before the first poll",
    )
    filter_runs: bool = Field(
        default=False,
        description="Restrict run polling to workflow_dispatch runs on the branch",
    )

    # Timeouts (in seconds)
    request_timeout: int = Field(
        default=30,
        ge=1,
        description="Timeout for API requests",
    )
    download_timeout: int = Field(
        default=600,
        ge=1,
        description="Timeout for artifact downloads",
    )

    # Paths
    artifacts_dir: Path = Field(
        default_factory=_default_artifacts_dir,
        description="Directory downloaded artifacts are written to",
    )
    credentials_path: Path = Field(
        default_factory=_default_credentials_path,
        description="File holding stored credentials",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Credential overrides (take precedence over the credential store)
    owner: str | None = Field(default=None, description="Repository owner override")
    repository: str | None = Field(default=None, description="Repository override")
    token: str | None = Field(default=None, description="Access token override")


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    The access token is redacted.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    redacted = settings.model_copy(
        update={"token": "***" if settings.token else None}
    )
    return redacted.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
