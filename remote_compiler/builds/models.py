"""Build ORM models.

This module defines the BuildRecord model for storing the history of
remote build attempts and their outcomes.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from remote_compiler.db import Base
from remote_compiler.types import BuildStatus


class BuildRecord(Base):
    """ORM model for remote build attempts.

    Attributes:
        id: Primary key.
        app_name: Application name requested by the user.
        owner: Repository owner the build ran against.
        repository: Repository the build ran against.
        status: Build status (pending, running, succeeded, failed, canceled).
        phase: Last phase reached by the engine.
        run_id: Workflow run id, once known.
        requested_at: Timestamp when the build was requested.
        started_at: Timestamp when the engine started the build.
        finished_at: Timestamp when the build reached a terminal phase.
        error_type: Error kind if the build failed.
        error_message: Error message if the build failed.
        artifact_path: Local path of the downloaded artifact.
        artifact_sha256: SHA-256 of the downloaded artifact.
        artifact_size_bytes: Size of the downloaded artifact.
    """

    __tablename__ = "build_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Request
    app_name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    repository: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Status and timing
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BuildStatus.PENDING.value, index=True
    )
    phase: Mapped[str | None] = mapped_column(String(32), nullable=True)
    run_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Error tracking
    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Artifact
    artifact_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    artifact_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    artifact_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    __table_args__ = (Index("ix_build_records_repository_status", "repository", "status"),)

    def __repr__(self) -> str:
        """Return string representation of BuildRecord."""
        return (
            f"<BuildRecord(id={self.id}, app_name='{self.app_name}', "
            f"status='{self.status}', run_id={self.run_id})>"
        )

    def mark_running(self) -> None:
        """Mark this build as running."""
        self.status = BuildStatus.RUNNING.value
        self.started_at = datetime.now()

    def mark_succeeded(self) -> None:
        """Mark this build as succeeded."""
        self.status = BuildStatus.SUCCEEDED.value
        self.finished_at = datetime.now()

    def mark_failed(
        self, error_type: str | None = None, message: str | None = None
    ) -> None:
        """Mark this build as failed.

        Args:
            error_type: Kind of the error.
            message: Error message details.
        """
        self.status = BuildStatus.FAILED.value
        self.finished_at = datetime.now()
        if error_type:
            self.error_type = error_type
        if message:
            self.error_message = message

    def mark_canceled(self) -> None:
        """Mark this build as canceled."""
        self.status = BuildStatus.CANCELED.value
        self.finished_at = datetime.now()

    def is_succeeded(self) -> bool:
        """Check if this build succeeded."""
        return self.status == BuildStatus.SUCCEEDED.value

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "app_name": self.app_name,
            "owner": self.owner,
            "repository": self.repository,
            "status": self.status,
            "phase": self.phase,
            "run_id": self.run_id,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "artifact_path": self.artifact_path,
            "artifact_sha256": self.artifact_sha256,
            "artifact_size_bytes": self.artifact_size_bytes,
        }


__all__ = ["BuildRecord"]
