"""Shared type definitions for remote_compiler.

This module contains dataclasses, enums, and type aliases shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class BuildPhase(str, Enum):
    """Phase of the remote build state machine."""

    IDLE = "idle"
    CONFIGURING = "configuring"
    UPLOADING_MANIFEST = "uploading_manifest"
    UPLOADING_SOURCE = "uploading_source"
    QUEUING = "queuing"
    MONITORING = "monitoring"
    DOWNLOADING = "downloading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """Whether the phase ends a build."""
        return self in (BuildPhase.SUCCEEDED, BuildPhase.FAILED, BuildPhase.CANCELED)


# Progress checkpoints reached on entering each phase.
PHASE_PROGRESS: dict[BuildPhase, float] = {
    BuildPhase.IDLE: 0.0,
    BuildPhase.CONFIGURING: 0.1,
    BuildPhase.UPLOADING_MANIFEST: 0.2,
    BuildPhase.UPLOADING_SOURCE: 0.4,
    BuildPhase.QUEUING: 0.5,
    BuildPhase.MONITORING: 0.5,
    BuildPhase.DOWNLOADING: 0.9,
    BuildPhase.SUCCEEDED: 1.0,
    BuildPhase.FAILED: 0.0,
    BuildPhase.CANCELED: 0.0,
}


class BuildErrorKind(str, Enum):
    """Kind of failure that ended a build."""

    UPLOAD_FAILURE = "upload_failure"
    DISPATCH_FAILURE = "dispatch_failure"
    BUILD_FAILURE = "build_failure"
    TIMEOUT = "timeout"
    NO_ARTIFACT_FOUND = "no_artifact_found"
    DOWNLOAD_FAILURE = "download_failure"
    CANCELED = "canceled"


class BuildStatus(str, Enum):
    """Status of a persisted build record."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class RunStatus(str, Enum):
    """Workflow run status values reported by the CI service."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class BuildConfig:
    """Credentials and target repository for one build."""

    owner: str
    repository: str
    token: str = field(repr=False)

    def is_ready(self) -> bool:
        """Return True when all three values are non-empty."""
        return bool(self.owner and self.repository and self.token)


@dataclass(frozen=True)
class BuildRequest:
    """User input for a single compile invocation."""

    app_name: str
    source_code: str


@dataclass
class BuildState:
    """Observable snapshot of the orchestrator state.

    Attributes:
        phase: Current phase.
        progress: Progress fraction (0.0-1.0).
        status_message: Human-readable status line.
        error_kind: Failure kind once failed or canceled.
        error_message: Failure message once failed or canceled.
        artifact_path: Local artifact path once succeeded.
        run_id: Workflow run id once known.
        started_at: When the current build started.
        finished_at: When the current build reached a terminal phase.
    """

    phase: BuildPhase = BuildPhase.IDLE
    progress: float = 0.0
    status_message: str = "Ready"
    error_kind: BuildErrorKind | None = None
    error_message: str | None = None
    artifact_path: Path | None = None
    run_id: int | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        """Whether a build is in flight."""
        return self.phase is not BuildPhase.IDLE and not self.phase.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "phase": self.phase.value,
            "progress": self.progress,
            "status_message": self.status_message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_message": self.error_message,
            "artifact_path": str(self.artifact_path) if self.artifact_path else None,
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class RemoteFile:
    """A text file stored in the remote repository.

    ``sha`` is the revision marker; None means the file does not exist yet.
    """

    path: str
    content: str
    sha: str | None = None


@dataclass
class WorkflowRun:
    """One execution of a dispatched workflow."""

    id: int
    status: str
    conclusion: str | None = None
    html_url: str | None = None

    @property
    def is_completed(self) -> bool:
        """Whether the run reached the completed status."""
        return self.status == RunStatus.COMPLETED.value

    @property
    def succeeded(self) -> bool:
        """Whether the run completed successfully."""
        return self.is_completed and self.conclusion == "success"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "WorkflowRun":
        """Build from a workflow run JSON object."""
        return cls(
            id=int(data["id"]),
            status=str(data.get("status") or ""),
            conclusion=data.get("conclusion"),
            html_url=data.get("html_url"),
        )


@dataclass
class ArtifactRef:
    """An artifact attached to a workflow run."""

    id: int
    name: str
    download_url: str
    size_bytes: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ArtifactRef":
        """Build from an artifact JSON object."""
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            download_url=str(data["archive_download_url"]),
            size_bytes=data.get("size_in_bytes"),
        )


@dataclass
class DownloadResult:
    """Result of an artifact download."""

    path: Path
    sha256: str
    size_bytes: int


__all__ = [
    "PHASE_PROGRESS",
    "ArtifactRef",
    "BuildConfig",
    "BuildErrorKind",
    "BuildPhase",
    "BuildRequest",
    "BuildState",
    "BuildStatus",
    "DownloadResult",
    "RemoteFile",
    "RunStatus",
    "WorkflowRun",
]
