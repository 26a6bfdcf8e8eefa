"""Tests for FastAPI web API.

Uses TestClient with a build engine bound to an in-memory gateway.
"""

import threading
import time
import uuid
from contextlib import nullcontext

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from remote_compiler import __version__
from remote_compiler.builds.engine import BuildEngine
from remote_compiler.config import Settings
from remote_compiler.credentials import CredentialStore
from remote_compiler.db import create_all_tables, get_engine, get_session_factory
from remote_compiler.types import DownloadResult, RemoteFile, WorkflowRun
from web.routers import builds, config, health


class FakeGateway:
    """In-memory gateway; the run completes once ``finish`` is set."""

    def __init__(self):
        self.finish = threading.Event()

    def upsert_file(self, path, content):
        return RemoteFile(path=path, content=content, sha="abc")

    def dispatch_workflow(self):
        pass

    def poll_latest_run(self):
        if self.finish.is_set():
            return WorkflowRun(id=555, status="completed", conclusion="success")
        return WorkflowRun(id=555, status="in_progress")

    def fetch_artifact(self, run_id, dest_dir):
        dest_dir.mkdir(parents=True, exist_ok=True)
        path = dest_dir / f"{run_id}.zip"
        path.write_bytes(b"app")
        return DownloadResult(path=path, sha256="0" * 64, size_bytes=3)


def create_test_app() -> FastAPI:
    """Create a minimal FastAPI app for testing without lifespan."""
    application = FastAPI(title="Remote Compiler API", version=__version__)
    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(builds.router, prefix="/builds", tags=["builds"])
    return application


def wait_until_idle(engine: BuildEngine, timeout: float = 5.0) -> None:
    """Wait for a background build to release the engine."""
    deadline = time.monotonic() + timeout
    while engine.is_running:
        if time.monotonic() > deadline:
            raise AssertionError("build did not finish in time")
        time.sleep(0.01)


@pytest.fixture
def gateway():
    """The gateway shared by every build in a test."""
    return FakeGateway()


@pytest.fixture
def app(tmp_path, gateway):
    """Test app with a fresh SQLite database in tmp_path."""
    settings = Settings(
        artifacts_dir=tmp_path / "artifacts",
        credentials_path=tmp_path / "credentials.json",
        db_url=f"sqlite:///{tmp_path}/test_{uuid.uuid4().hex[:8]}.db",
        settle_delay=0,
        poll_interval=0.01,
        poll_max_attempts=10_000,
    )
    db_engine = get_engine(settings.db_url)
    create_all_tables(db_engine)

    application = create_test_app()
    application.state.session_factory = get_session_factory(db_engine)
    application.state.build_engine = BuildEngine(
        settings=settings,
        gateway_factory=lambda config, settings: nullcontext(gateway),
    )
    application.state.credential_store = CredentialStore(
        settings.credentials_path,
        overrides={"owner": "octo", "repository": "builds", "token": "secret"},
    )
    yield application

    application.state.build_engine.cancel()
    wait_until_idle(application.state.build_engine)
    db_engine.dispose()


@pytest.fixture
def client(app):
    """Create a test client."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def build_engine(app):
    """The engine behind the app."""
    return app.state.build_engine


BUILD_BODY = {"app_name": "Hello App", "source_code": 'print("Hello")\n'}


class TestHealth:
    """Tests for health endpoints."""

    def test_health(self, client) -> None:
        """/health should report ok and the version."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}

    def test_root(self, client) -> None:
        """/ should report the API name."""
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "Remote Compiler API"


class TestConfig:
    """Tests for the config endpoint."""

    def test_config(self, client) -> None:
        """GET /config should return settings."""
        response = client.get("/config")
        assert response.status_code == 200
        assert "poll_max_attempts" in response.json()


class TestBuilds:
    """Tests for build endpoints."""

    def test_current_idle(self, client) -> None:
        """The engine should start idle."""
        data = client.get("/builds/current").json()
        assert data["running"] is False
        assert data["phase"] == "idle"

    def test_start_and_finish(self, client, gateway, build_engine) -> None:
        """A started build should finish and be recorded."""
        response = client.post("/builds", json=BUILD_BODY)
        assert response.status_code == 202
        build_id = response.json()["build_id"]

        gateway.finish.set()
        wait_until_idle(build_engine)

        current = client.get("/builds/current").json()
        assert current["phase"] == "succeeded"
        assert current["progress"] == 1.0
        assert current["artifact_path"].endswith("555.zip")

        record = client.get(f"/builds/{build_id}").json()
        assert record["status"] == "succeeded"
        assert record["app_name"] == "Hello App"
        assert record["artifact_sha256"] == "0" * 64

    def test_second_build_rejected(self, client, gateway, build_engine) -> None:
        """Starting while a build runs should return 409."""
        assert client.post("/builds", json=BUILD_BODY).status_code == 202

        response = client.post("/builds", json=BUILD_BODY)

        assert response.status_code == 409
        gateway.finish.set()
        wait_until_idle(build_engine)

    def test_cancel(self, client, build_engine) -> None:
        """Canceling a running build should record it as canceled."""
        build_id = client.post("/builds", json=BUILD_BODY).json()["build_id"]

        response = client.post("/builds/current/cancel")
        assert response.status_code == 200
        assert response.json() == {"canceled": True}

        wait_until_idle(build_engine)
        assert client.get("/builds/current").json()["phase"] == "canceled"
        assert client.get(f"/builds/{build_id}").json()["status"] == "canceled"

    def test_setup_failure_is_recorded(self, client, app) -> None:
        """A build that fails before its first step should not stay running."""

        def broken_factory(config, settings):
            raise RuntimeError("cannot open gateway")

        engine = BuildEngine(
            settings=app.state.build_engine.settings, gateway_factory=broken_factory
        )
        app.state.build_engine = engine

        build_id = client.post("/builds", json=BUILD_BODY).json()["build_id"]
        wait_until_idle(engine)

        record = client.get(f"/builds/{build_id}").json()
        assert record["status"] == "failed"
        assert record["error_type"] == "upload_failure"

    def test_cancel_idle(self, client) -> None:
        """Canceling with nothing running should return 409."""
        assert client.post("/builds/current/cancel").status_code == 409

    def test_missing_credentials(self, client, app, tmp_path) -> None:
        """Starting without credentials should return 412."""
        app.state.credential_store = CredentialStore(tmp_path / "empty.json")

        response = client.post("/builds", json=BUILD_BODY)

        assert response.status_code == 412

    def test_invalid_body(self, client) -> None:
        """An empty app name should be rejected."""
        response = client.post("/builds", json={"app_name": "", "source_code": "x"})
        assert response.status_code == 422

    def test_list(self, client, gateway, build_engine) -> None:
        """Recorded builds should be listed and filterable."""
        gateway.finish.set()
        client.post("/builds", json=BUILD_BODY)
        wait_until_idle(build_engine)

        assert len(client.get("/builds").json()) == 1
        assert len(client.get("/builds", params={"status": "succeeded"}).json()) == 1
        assert client.get("/builds", params={"status": "failed"}).json() == []

    def test_list_invalid_status(self, client) -> None:
        """An unknown status should return 400."""
        assert client.get("/builds", params={"status": "bogus"}).status_code == 400

    def test_get_missing(self, client) -> None:
        """An unknown build id should return 404."""
        assert client.get("/builds/999").status_code == 404


class TestAppFactory:
    """Tests for create_app with its lifespan."""

    def test_lifespan_initializes_state(self, tmp_path, monkeypatch) -> None:
        """Startup should create the engine, store and database."""
        from web.app import create_app

        monkeypatch.setenv("RCOMP_DB_URL", f"sqlite:///{tmp_path}/app.db")
        monkeypatch.setenv("RCOMP_CREDENTIALS_PATH", str(tmp_path / "c.json"))

        application = create_app()
        with TestClient(application) as test_client:
            assert test_client.get("/health").status_code == 200
            assert test_client.get("/builds").json() == []
            assert test_client.get("/builds/current").json()["running"] is False
            assert isinstance(application.state.build_engine, BuildEngine)
