"""Dependencies for FastAPI route handlers.

The lifespan in web.app puts three process-wide objects on app.state:
the history session factory, the build engine and the credential store.
Handlers receive them through the getters below.

get_db() owns the request transaction: commit when the handler returns,
rollback when it raises.
"""

from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from remote_compiler.builds.engine import BuildEngine
from remote_compiler.credentials import CredentialStore


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """History session factory from app state."""
    factory: sessionmaker[Session] = request.app.state.session_factory
    return factory


def get_db(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    """Yield a history session scoped to one request."""
    with session_factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def get_build_engine(request: Request) -> BuildEngine:
    """Process-wide build engine from app state."""
    engine: BuildEngine = request.app.state.build_engine
    return engine


def get_credential_store(request: Request) -> CredentialStore:
    """Credential store from app state."""
    store: CredentialStore = request.app.state.credential_store
    return store
