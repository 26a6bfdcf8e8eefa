"""Build management endpoints.

- POST /builds - Start a build in the background
- GET /builds/current - Current engine state
- POST /builds/current/cancel - Cancel the running build
- GET /builds - List build records
- GET /builds/{id} - Get build record by ID
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker

from remote_compiler.builds.engine import BuildEngine, BuildInProgressError
from remote_compiler.builds.service import (
    BuildNotFoundError,
    create_build_record,
    get_build,
    list_builds,
    record_build_outcome,
)
from remote_compiler.credentials import CredentialStore
from remote_compiler.db import get_session
from remote_compiler.types import BuildRequest, BuildState, BuildStatus
from web.deps import (
    get_build_engine,
    get_credential_store,
    get_db,
    get_session_factory,
)

router = APIRouter()


class StartBuildRequest(BaseModel):
    """Request body for starting a build."""

    app_name: str = Field(min_length=1, max_length=255)
    source_code: str


@router.post("", status_code=http_status.HTTP_202_ACCEPTED)
def start_build(
    body: StartBuildRequest,
    engine: BuildEngine = Depends(get_build_engine),
    store: CredentialStore = Depends(get_credential_store),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> dict[str, Any]:
    """Start a remote build.

    Returns:
        The new build record id and the engine state.

    Raises:
        HTTPException: 412 if credentials are incomplete, 409 if a build
            is already running.
    """
    if not store.is_ready():
        raise HTTPException(
            status_code=http_status.HTTP_412_PRECONDITION_FAILED,
            detail="Owner, repository and token must all be configured",
        )
    if engine.is_running:
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail="A build is already in progress",
        )

    config = store.to_build_config()
    request = BuildRequest(app_name=body.app_name, source_code=body.source_code)

    # Committed before the worker starts so the outcome can be recorded.
    with get_session(session_factory) as session:
        build = create_build_record(session, config, request)
        build.mark_running()
        build_id = build.id

    def on_finish(state: BuildState) -> None:
        record_build_outcome(session_factory, build_id, state, engine)

    try:
        engine.start(config, request, on_finish=on_finish)
    except BuildInProgressError as e:
        with get_session(session_factory) as session:
            get_build(session, build_id).mark_failed(
                error_type=e.code, message=str(e)
            )
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT, detail=str(e)
        ) from e

    return {"build_id": build_id, "state": engine.state.to_dict()}


@router.get("/current")
def current_state(
    engine: BuildEngine = Depends(get_build_engine),
) -> dict[str, Any]:
    """Get the engine state."""
    return {"running": engine.is_running, **engine.state.to_dict()}


@router.post("/current/cancel")
def cancel_build(
    engine: BuildEngine = Depends(get_build_engine),
) -> dict[str, Any]:
    """Cancel the running build.

    Raises:
        HTTPException: 409 if no build is running.
    """
    if not engine.cancel():
        raise HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail="No build is running",
        )
    return {"canceled": True}


@router.get("")
def list_builds_endpoint(
    status: str | None = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List build records."""
    status_filter: BuildStatus | None = None
    if status:
        try:
            status_filter = BuildStatus(status)
        except ValueError:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status: {status}",
            ) from None

    builds = list_builds(db, status=status_filter, limit=limit)
    return [b.to_dict() for b in builds]


@router.get("/{build_id}")
def get_build_endpoint(
    build_id: int,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a build record by ID."""
    try:
        build = get_build(db, build_id)
    except BuildNotFoundError:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=f"Build not found: {build_id}",
        ) from None
    return build.to_dict()
