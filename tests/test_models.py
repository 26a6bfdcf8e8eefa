"""Tests for ORM models."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from remote_compiler.builds.models import BuildRecord
from remote_compiler.db import Base


@pytest.fixture
def session():
    """Create an in-memory database session."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(bind=engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def build(session):
    """Create a pending build record."""
    record = BuildRecord(app_name="Hello", owner="octo", repository="builds")
    session.add(record)
    session.commit()
    return record


class TestBuildRecord:
    """Tests for BuildRecord."""

    def test_defaults(self, build) -> None:
        """A new record should be pending with a request timestamp."""
        assert build.id is not None
        assert build.status == "pending"
        assert build.requested_at is not None
        assert not build.is_succeeded()

    def test_lifecycle(self, build) -> None:
        """mark_running then mark_succeeded should set timestamps."""
        build.mark_running()
        assert build.status == "running"
        assert build.started_at is not None

        build.mark_succeeded()
        assert build.is_succeeded()
        assert build.finished_at is not None

    def test_mark_failed(self, build) -> None:
        """mark_failed should keep the error details."""
        build.mark_failed(error_type="upload_failure", message="HTTP 403")

        assert build.status == "failed"
        assert build.error_type == "upload_failure"
        assert build.error_message == "HTTP 403"

    def test_mark_canceled(self, build) -> None:
        """mark_canceled should set the canceled status."""
        build.mark_canceled()

        assert build.status == "canceled"
        assert build.finished_at is not None

    def test_to_dict(self, build) -> None:
        """to_dict should expose all columns."""
        build.run_id = 555
        data = build.to_dict()

        assert data["app_name"] == "Hello"
        assert data["repository"] == "builds"
        assert data["run_id"] == 555
        assert data["artifact_path"] is None
        assert isinstance(data["requested_at"], str)

    def test_repr(self, build) -> None:
        """repr should include the id and status."""
        assert "status='pending'" in repr(build)


class TestInitDb:
    """Tests for init_db."""

    def test_creates_directory_and_tables(self, tmp_path) -> None:
        """init_db should create the database file's directory and tables."""
        from remote_compiler.db import get_session, init_db

        db_file = tmp_path / "nested" / "history.sqlite"
        factory = init_db(f"sqlite:///{db_file}")

        with get_session(factory) as session:
            session.add(BuildRecord(app_name="A", owner="o", repository="r"))

        assert db_file.exists()
        with factory() as session:
            assert session.query(BuildRecord).count() == 1

    def test_rollback_on_error(self, tmp_path) -> None:
        """get_session should roll back when the block raises."""
        from remote_compiler.db import get_session, init_db

        factory = init_db(f"sqlite:///{tmp_path}/history.sqlite")

        with pytest.raises(RuntimeError):
            with get_session(factory) as session:
                session.add(BuildRecord(app_name="A", owner="o", repository="r"))
                session.flush()
                raise RuntimeError("abort")

        with factory() as session:
            assert session.query(BuildRecord).count() == 0
