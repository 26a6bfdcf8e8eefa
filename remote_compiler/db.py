"""Build history database for remote_compiler.

One SQLite file (or any SQLAlchemy URL from settings) holds the build
records. Engines are created per process; the web app and the CLI both
go through init_db() so tables exist before the first query.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from remote_compiler.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for build history tables."""


def get_engine(db_url: str | None = None) -> Engine:
    """Create an engine for the history database.

    For SQLite the parent directory of the database file is created, and
    connections may be used from the worker thread that records the
    outcome of a background build.

    Args:
        db_url: Database URL; defaults to ``settings.db_url``.
    """
    url = make_url(db_url or get_settings().db_url)

    connect_args: dict[str, Any] = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(url, connect_args=connect_args, echo=False)


def get_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Return a session factory bound to ``engine`` (or a new default engine).

    Objects stay usable after commit so callers can read a record's id and
    fields once its transaction is closed.
    """
    if engine is None:
        engine = get_engine()
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_all_tables(engine: Engine | None = None) -> None:
    """Create the history tables if they do not exist yet."""
    # Model import registers the tables on Base.metadata
    from remote_compiler.builds import models  # noqa: F401

    if engine is None:
        engine = get_engine()
    Base.metadata.create_all(bind=engine)


def init_db(db_url: str | None = None) -> sessionmaker[Session]:
    """Open the history database, create its tables and return a session factory."""
    engine = get_engine(db_url)
    create_all_tables(engine)
    return get_session_factory(engine)


@contextmanager
def get_session(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error.

    Args:
        session_factory: Factory to open the session with; init_db() is
            used when not provided.
    """
    if session_factory is None:
        session_factory = init_db()

    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
]
