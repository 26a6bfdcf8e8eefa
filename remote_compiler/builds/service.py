"""Build service module.

This module provides the high-level build API:
- compile_and_record(): run a build and persist its outcome
- Build record lookup and listing
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from remote_compiler.builds.models import BuildRecord
from remote_compiler.db import get_session
from remote_compiler.types import (
    BuildConfig,
    BuildPhase,
    BuildRequest,
    BuildState,
    BuildStatus,
)

if TYPE_CHECKING:
    from remote_compiler.builds.engine import BuildEngine

logger = logging.getLogger(__name__)


class BuildNotFoundError(Exception):
    """Raised when a build is not found."""

    def __init__(self, build_id: int, code: str = "build_not_found") -> None:
        super().__init__(f"Build not found: {build_id}")
        self.build_id = build_id
        self.code = code


def create_build_record(
    session: Session, config: BuildConfig, request: BuildRequest
) -> BuildRecord:
    """Create a new BuildRecord in pending state.

    Args:
        session: Database session.
        config: Build configuration.
        request: Build request.

    Returns:
        Created BuildRecord.
    """
    build = BuildRecord(
        app_name=request.app_name,
        owner=config.owner,
        repository=config.repository,
        status=BuildStatus.PENDING.value,
    )
    session.add(build)
    session.flush()
    return build


def apply_build_state(
    build: BuildRecord, state: BuildState, engine: BuildEngine | None = None
) -> None:
    """Copy a terminal engine state onto a build record.

    Args:
        build: Record to update.
        state: Terminal BuildState returned by the engine.
        engine: Engine that ran the build, for download details.
    """
    build.phase = state.phase.value
    build.run_id = state.run_id

    if state.phase is BuildPhase.SUCCEEDED:
        build.artifact_path = str(state.artifact_path) if state.artifact_path else None
        download = engine.last_download if engine is not None else None
        if download is not None:
            build.artifact_sha256 = download.sha256
            build.artifact_size_bytes = download.size_bytes
        build.mark_succeeded()
    elif state.phase is BuildPhase.CANCELED:
        build.error_type = state.error_kind.value if state.error_kind else None
        build.error_message = state.error_message
        build.mark_canceled()
    else:
        build.mark_failed(
            error_type=state.error_kind.value if state.error_kind else None,
            message=state.error_message,
        )


def compile_and_record(
    session: Session,
    engine: BuildEngine,
    config: BuildConfig,
    request: BuildRequest,
) -> tuple[BuildRecord, BuildState]:
    """Run a build on the calling thread and persist its outcome.

    Args:
        session: Database session.
        engine: Build engine.
        config: Build configuration.
        request: Build request.

    Returns:
        Tuple of (BuildRecord, terminal BuildState).

    Raises:
        ValueError: If the config is not ready.
        BuildInProgressError: If the engine is already running a build.
    """
    build = create_build_record(session, config, request)
    logger.info("Created build record %d", build.id)
    build.mark_running()
    session.flush()

    try:
        state = engine.compile(config, request)
    except Exception:
        build.mark_failed(error_type="not_started", message="Build did not start")
        session.flush()
        raise

    apply_build_state(build, state, engine)
    session.flush()
    logger.info("Build %d finished with status %s", build.id, build.status)
    return build, state


def record_build_outcome(
    session_factory: sessionmaker[Session],
    build_id: int,
    state: BuildState,
    engine: BuildEngine | None = None,
) -> None:
    """Persist the outcome of a background build in its own transaction.

    Args:
        session_factory: Session factory (the caller's session is gone).
        build_id: Record created when the build was started.
        state: Terminal BuildState.
        engine: Engine that ran the build.
    """
    with get_session(session_factory) as session:
        build = get_build(session, build_id)
        apply_build_state(build, state, engine)
    logger.info("Recorded outcome of build %d: %s", build_id, state.phase.value)


def get_build(session: Session, build_id: int) -> BuildRecord:
    """Get a build record by ID.

    Args:
        session: Database session.
        build_id: Build ID.

    Returns:
        BuildRecord instance.

    Raises:
        BuildNotFoundError: If build not found.
    """
    build = session.get(BuildRecord, build_id)
    if build is None:
        raise BuildNotFoundError(build_id)
    return build


def get_build_or_none(session: Session, build_id: int) -> BuildRecord | None:
    """Get a build record by ID, or None if not found."""
    return session.get(BuildRecord, build_id)


def list_builds(
    session: Session,
    status: BuildStatus | None = None,
    repository: str | None = None,
    limit: int = 100,
) -> list[BuildRecord]:
    """List build records with optional filters, newest first.

    Args:
        session: Database session.
        status: Filter by status.
        repository: Filter by repository name.
        limit: Maximum results to return.

    Returns:
        List of BuildRecord instances.
    """
    stmt = select(BuildRecord)

    if status is not None:
        stmt = stmt.where(BuildRecord.status == status.value)
    if repository is not None:
        stmt = stmt.where(BuildRecord.repository == repository)

    stmt = stmt.order_by(BuildRecord.id.desc()).limit(limit)

    return list(session.execute(stmt).scalars().all())


__all__ = [
    "BuildNotFoundError",
    "apply_build_state",
    "compile_and_record",
    "create_build_record",
    "get_build",
    "get_build_or_none",
    "list_builds",
    "record_build_outcome",
]
