"""Remote build engine.

This module drives one remote build from source text to a local artifact:

    idle -> configuring -> uploading_manifest -> uploading_source
         -> queuing -> monitoring -> downloading -> succeeded

with ``failed`` reachable from every running phase and ``canceled``
reachable through cancel(). Only one build runs per engine at a time.

Gateway errors are mapped onto BuildErrorKind at each step boundary; the
caller only ever observes a terminal BuildState.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, TypeVar

from remote_compiler.builds.manifest import ManifestOptions, render_manifest
from remote_compiler.builds.state import BuildStateStore, StateListener
from remote_compiler.config import get_settings
from remote_compiler.gateway.client import (
    GatewayError,
    NoArtifactError,
    RepositoryGateway,
    create_http_client,
)
from remote_compiler.types import (
    PHASE_PROGRESS,
    BuildConfig,
    BuildErrorKind,
    BuildPhase,
    BuildRequest,
    BuildState,
    DownloadResult,
    WorkflowRun,
)

if TYPE_CHECKING:
    from remote_compiler.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

GatewayFactory = Callable[
    [BuildConfig, "Settings"], AbstractContextManager[RepositoryGateway]
]


class BuildInProgressError(Exception):
    """Raised when compile() is called while a build is running."""

    def __init__(self, code: str = "build_in_progress") -> None:
        super().__init__("A build is already in progress")
        self.code = code


class BuildCanceledError(Exception):
    """Raised inside the pipeline when cancel() was requested."""


class StepFailure(Exception):
    """A build step failed with a classified error kind."""

    def __init__(self, kind: BuildErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


@contextmanager
def default_gateway(config: BuildConfig, settings: Settings) -> Iterator[RepositoryGateway]:
    """Open an HTTP client and wrap it in a RepositoryGateway."""
    with create_http_client(config, settings) as client:
        yield RepositoryGateway(client, config, settings)


class BuildEngine:
    """Single-flight orchestrator for remote builds.

    Attributes:
        settings: Application settings (paths, delays, attempt budget).
        manifest_options: Options embedded in the generated manifest.
        last_download: Download result of the most recent successful build.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        gateway_factory: GatewayFactory | None = None,
        manifest_options: ManifestOptions | None = None,
        sleep: Callable[[float], bool] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Application settings; loaded from the environment if None.
            gateway_factory: Context manager factory producing a gateway
                for a build; defaults to an httpx-backed gateway.
            manifest_options: Manifest options; defaults if None.
            sleep: Wait function returning True when the wait was interrupted
                by cancel(); defaults to waiting on the cancel event.
        """
        self.settings = settings if settings is not None else get_settings()
        self.manifest_options = manifest_options or ManifestOptions()
        self.last_download: DownloadResult | None = None

        self._gateway_factory = gateway_factory or default_gateway
        self._store = BuildStateStore()
        self._flight = threading.Lock()
        self._cancel = threading.Event()
        self._sleep = sleep or self._cancel.wait

    @property
    def state(self) -> BuildState:
        """Snapshot of the current build state."""
        return self._store.snapshot()

    @property
    def is_running(self) -> bool:
        """Whether a build currently holds the engine."""
        return self._flight.locked()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state observer; returns an unsubscribe callable."""
        return self._store.subscribe(listener)

    def compile(self, config: BuildConfig, request: BuildRequest) -> BuildState:
        """Run a build to completion on the calling thread.

        Args:
            config: Credentials and target repository.
            request: Application name and source code.

        Returns:
            The terminal BuildState.

        Raises:
            ValueError: If the config is missing a value.
            BuildInProgressError: If another build is running.
        """
        self._claim(config)
        try:
            return self._run(config, request)
        finally:
            self._flight.release()

    def start(
        self,
        config: BuildConfig,
        request: BuildRequest,
        on_finish: StateListener | None = None,
    ) -> threading.Thread:
        """Run a build on a background thread.

        The engine is claimed before the thread starts, so rejection is
        reported to the caller.

        Args:
            config: Credentials and target repository.
            request: Application name and source code.
            on_finish: Called on the worker thread with the terminal state,
                before the engine accepts another build.

        Raises:
            ValueError: If the config is missing a value.
            BuildInProgressError: If another build is running.
        """
        self._claim(config)
        thread = threading.Thread(
            target=self._run_and_release,
            args=(config, request, on_finish),
            name="remote-build",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError:
            self._flight.release()
            raise
        return thread

    def cancel(self) -> bool:
        """Request cancellation of the running build.

        Returns:
            True if a build was running and will stop, False otherwise.
        """
        if not self.is_running:
            return False
        logger.info("Cancellation requested")
        self._cancel.set()
        return True

    def _claim(self, config: BuildConfig) -> None:
        if not config.is_ready():
            raise ValueError("Owner, repository and token must all be set")
        if not self._flight.acquire(blocking=False):
            raise BuildInProgressError()
        self._cancel.clear()
        self.last_download = None
        self._store.reset()

    def _run_and_release(
        self,
        config: BuildConfig,
        request: BuildRequest,
        on_finish: StateListener | None,
    ) -> None:
        try:
            try:
                state = self._run(config, request)
            except Exception:
                logger.exception("Background build crashed")
                state = self._store.snapshot()
            if on_finish is not None:
                try:
                    on_finish(state)
                except Exception:
                    logger.exception("Build completion callback failed")
        finally:
            self._flight.release()

    def _run(self, config: BuildConfig, request: BuildRequest) -> BuildState:
        logger.info(
            "Starting build of %s in %s/%s",
            request.app_name,
            config.owner,
            config.repository,
        )
        self._store.update(started_at=datetime.now(timezone.utc))
        try:
            with self._gateway_factory(config, self.settings) as gateway:
                self._execute(gateway, request)
        except StepFailure as e:
            self._finish_failed(e.kind, str(e))
        except BuildCanceledError:
            self._finish_canceled()
        except Exception as e:
            # Raised outside any step, e.g. while opening the gateway
            logger.exception("Build setup failed")
            self._finish_failed(
                BuildErrorKind.UPLOAD_FAILURE, f"Could not reach the repository: {e}"
            )
        return self._store.snapshot()

    def _execute(self, gateway: RepositoryGateway, request: BuildRequest) -> None:
        self._enter(BuildPhase.CONFIGURING, "Generating project manifest")
        manifest = render_manifest(request.app_name, self.manifest_options)

        self._check_canceled()
        self._enter(BuildPhase.UPLOADING_MANIFEST, "Uploading project manifest")
        self._step(
            BuildErrorKind.UPLOAD_FAILURE,
            gateway.upsert_file,
            self.settings.manifest_path,
            manifest,
        )

        self._check_canceled()
        self._enter(BuildPhase.UPLOADING_SOURCE, "Uploading source code")
        self._step(
            BuildErrorKind.UPLOAD_FAILURE,
            gateway.upsert_file,
            self.settings.source_path,
            request.source_code,
        )

        self._check_canceled()
        self._enter(BuildPhase.QUEUING, "Queuing remote build")
        self._step(BuildErrorKind.DISPATCH_FAILURE, gateway.dispatch_workflow)
        self._wait(self.settings.settle_delay)

        run = self._monitor(gateway)

        self._check_canceled()
        self._enter(
            BuildPhase.DOWNLOADING,
            f"Downloading artifact of run {run.id}",
            run_id=run.id,
        )
        result = self._step(
            BuildErrorKind.DOWNLOAD_FAILURE,
            gateway.fetch_artifact,
            run.id,
            self.settings.artifacts_dir,
        )
        self.last_download = result
        self._store.update(
            phase=BuildPhase.SUCCEEDED,
            progress=PHASE_PROGRESS[BuildPhase.SUCCEEDED],
            status_message="Build succeeded",
            artifact_path=result.path,
            error_kind=None,
            error_message=None,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info("Build succeeded, artifact at %s", result.path)

    def _monitor(self, gateway: RepositoryGateway) -> WorkflowRun:
        """Poll until the latest run completes or the attempt budget runs out."""
        max_attempts = self.settings.poll_max_attempts
        self._enter(BuildPhase.MONITORING, "Waiting for remote build to start")

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                self._wait(self.settings.poll_interval)

            try:
                run = gateway.poll_latest_run()
            except (GatewayError, KeyError, TypeError, ValueError) as e:
                logger.warning(
                    "Poll attempt %d/%d failed: %s", attempt, max_attempts, e
                )
                continue

            if run is None:
                self._store.update(
                    status_message=(
                        f"Waiting for remote build to appear "
                        f"(attempt {attempt}/{max_attempts})"
                    )
                )
                continue

            if not run.is_completed:
                self._store.update(
                    run_id=run.id,
                    status_message=(
                        f"Run {run.id} is {run.status} "
                        f"(attempt {attempt}/{max_attempts})"
                    ),
                )
                continue

            if run.succeeded:
                logger.info("Run %d completed successfully", run.id)
                return run

            raise StepFailure(
                BuildErrorKind.BUILD_FAILURE,
                f"Remote build failed (conclusion: {run.conclusion or 'unknown'})",
            )

        raise StepFailure(
            BuildErrorKind.TIMEOUT,
            f"No completed run after {max_attempts} poll attempts; "
            "the remote build may still be running",
        )

    def _step(
        self, kind: BuildErrorKind, func: Callable[..., T], *args: Any
    ) -> T:
        """Call a gateway operation, classifying any failure as ``kind``."""
        try:
            return func(*args)
        except NoArtifactError as e:
            raise StepFailure(BuildErrorKind.NO_ARTIFACT_FOUND, str(e)) from e
        except GatewayError as e:
            raise StepFailure(kind, str(e)) from e
        except Exception as e:
            logger.exception("Unexpected error during %s", kind.value)
            raise StepFailure(kind, f"Unexpected error: {e}") from e

    def _enter(self, phase: BuildPhase, message: str, **changes: Any) -> None:
        logger.info("%s: %s", phase.value, message)
        self._store.update(
            phase=phase,
            progress=PHASE_PROGRESS[phase],
            status_message=message,
            **changes,
        )

    def _wait(self, seconds: float) -> None:
        if self._sleep(seconds) or self._cancel.is_set():
            raise BuildCanceledError()

    def _check_canceled(self) -> None:
        if self._cancel.is_set():
            raise BuildCanceledError()

    def _finish_failed(self, kind: BuildErrorKind, message: str) -> None:
        logger.error("Build failed (%s): %s", kind.value, message)
        self._store.update(
            phase=BuildPhase.FAILED,
            progress=PHASE_PROGRESS[BuildPhase.FAILED],
            status_message="Build failed",
            error_kind=kind,
            error_message=message,
            artifact_path=None,
            finished_at=datetime.now(timezone.utc),
        )

    def _finish_canceled(self) -> None:
        logger.info("Build canceled")
        self._store.update(
            phase=BuildPhase.CANCELED,
            progress=PHASE_PROGRESS[BuildPhase.CANCELED],
            status_message="Build canceled",
            error_kind=BuildErrorKind.CANCELED,
            error_message="Build canceled before completion",
            artifact_path=None,
            finished_at=datetime.now(timezone.utc),
        )


__all__ = [
    "BuildCanceledError",
    "BuildEngine",
    "BuildInProgressError",
    "GatewayFactory",
    "StepFailure",
    "default_gateway",
]
