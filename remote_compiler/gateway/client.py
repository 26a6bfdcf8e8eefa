"""Remote repository gateway.

This module handles:
- Building an authenticated HTTP client for the hosting REST API
- Upserting text files through the contents API (revision-marker aware)
- Dispatching the build workflow
- Polling the latest workflow run
- Listing and downloading run artifacts

The gateway performs no retries; retry and timeout policy belongs to the
build engine.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from remote_compiler.types import (
    ArtifactRef,
    BuildConfig,
    DownloadResult,
    RemoteFile,
    WorkflowRun,
)

if TYPE_CHECKING:
    from remote_compiler.config import Settings

logger = logging.getLogger(__name__)

# Chunk size for artifact downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# Status code returned by a successful workflow dispatch
DISPATCH_ACCEPTED = 204


class GatewayError(Exception):
    """Base error for remote repository operations."""

    def __init__(
        self,
        message: str,
        code: str = "gateway_error",
        status_code: int | None = None,
    ) -> None:
        """Initialize GatewayError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
            status_code: HTTP status code, when a response was received.
        """
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class UploadError(GatewayError):
    """Raised when a file cannot be written to the repository."""

    def __init__(
        self, message: str, code: str = "upload_failed", status_code: int | None = None
    ) -> None:
        super().__init__(message, code=code, status_code=status_code)


class DispatchError(GatewayError):
    """Raised when the build workflow is not accepted."""

    def __init__(
        self,
        message: str,
        code: str = "dispatch_failed",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, code=code, status_code=status_code)


class PollError(GatewayError):
    """Raised when workflow runs cannot be listed."""

    def __init__(
        self, message: str, code: str = "poll_failed", status_code: int | None = None
    ) -> None:
        super().__init__(message, code=code, status_code=status_code)


class NoArtifactError(GatewayError):
    """Raised when a completed run has no artifacts."""

    def __init__(self, run_id: int, code: str = "no_artifact_found") -> None:
        super().__init__(f"Run {run_id} produced no artifacts", code=code)
        self.run_id = run_id


class ArtifactDownloadError(GatewayError):
    """Raised when an artifact cannot be listed or downloaded."""

    def __init__(
        self,
        message: str,
        code: str = "download_failed",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, code=code, status_code=status_code)


def auth_headers(config: BuildConfig, settings: Settings) -> dict[str, str]:
    """Return the headers sent with every API request."""
    return {
        "Authorization": f"Bearer {config.token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": settings.api_version,
        "User-Agent": settings.user_agent,
    }


def create_http_client(config: BuildConfig, settings: Settings) -> httpx.Client:
    """Create an HTTPX client bound to the API base URL.

    Args:
        config: Build configuration providing the access token.
        settings: Application settings.

    Returns:
        Configured httpx.Client. The caller owns and closes it.
    """
    return httpx.Client(
        base_url=settings.api_base_url,
        headers=auth_headers(config, settings),
        timeout=settings.request_timeout,
    )


def _transport_error(
    error_cls: type[GatewayError], action: str, exc: httpx.HTTPError
) -> GatewayError:
    """Map an httpx transport error onto a gateway error."""
    if isinstance(exc, httpx.TimeoutException):
        return error_cls(f"Timeout while {action}", code="timeout")
    return error_cls(f"Network error while {action}: {exc}", code="network_error")


class RepositoryGateway:
    """Thin translation layer between build steps and the REST API.

    Attributes:
        client: HTTPX client with auth headers and base URL configured.
        config: Build configuration (owner, repository, token).
        settings: Application settings.
    """

    def __init__(
        self, client: httpx.Client, config: BuildConfig, settings: Settings
    ) -> None:
        self.client = client
        self.config = config
        self.settings = settings

    @property
    def repo_path(self) -> str:
        """Repository-relative API prefix."""
        return f"/repos/{self.config.owner}/{self.config.repository}"

    def get_file_sha(self, path: str) -> str | None:
        """Return the current revision marker of a file, or None if absent.

        Any non-200 response is treated as "file does not exist".

        Raises:
            UploadError: On transport failure.
        """
        try:
            response = self.client.get(
                f"{self.repo_path}/contents/{path}",
                params={"ref": self.settings.branch},
            )
        except httpx.HTTPError as e:
            raise _transport_error(UploadError, f"reading {path}", e) from e

        if response.status_code != 200:
            logger.debug("No existing file at %s (HTTP %d)", path, response.status_code)
            return None

        sha = _json_or_empty(response).get("sha")
        return str(sha) if sha else None

    def upsert_file(
        self, path: str, content: str, message: str | None = None
    ) -> RemoteFile:
        """Create or replace a text file on the configured branch.

        The revision marker is read immediately before the write so a
        replaced file is always addressed at its current revision.

        Args:
            path: Repository path of the file.
            content: New text content.
            message: Commit message (defaults to the settings template).

        Returns:
            RemoteFile carrying the revision marker after the write.

        Raises:
            UploadError: If the write is rejected or the request fails.
        """
        existing_sha = self.get_file_sha(path)
        if message is None:
            message = self.settings.commit_message.format(path=path)

        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "sha": existing_sha or "",
            "branch": self.settings.branch,
        }
        logger.info(
            "%s %s on %s",
            "Replacing" if existing_sha else "Creating",
            path,
            self.settings.branch,
        )

        try:
            response = self.client.put(f"{self.repo_path}/contents/{path}", json=body)
        except httpx.HTTPError as e:
            raise _transport_error(UploadError, f"writing {path}", e) from e

        if response.status_code >= 300:
            hint = ""
            if response.status_code in (401, 403, 404):
                hint = " (check that the token has contents write scope)"
            raise UploadError(
                f"Upload of {path} failed with HTTP {response.status_code}{hint}",
                status_code=response.status_code,
            )

        content_meta = _json_or_empty(response).get("content")
        new_sha: str | None = existing_sha
        if isinstance(content_meta, dict):
            new_sha = content_meta.get("sha") or existing_sha
        return RemoteFile(path=path, content=content, sha=new_sha)

    def dispatch_workflow(self) -> None:
        """Trigger the build workflow on the configured branch.

        Raises:
            DispatchError: Unless the API answers 204 No Content.
        """
        url = (
            f"{self.repo_path}/actions/workflows/"
            f"{self.settings.workflow_file}/dispatches"
        )
        logger.info(
            "Dispatching workflow %s on %s",
            self.settings.workflow_file,
            self.settings.branch,
        )
        try:
            response = self.client.post(url, json={"ref": self.settings.branch})
        except httpx.HTTPError as e:
            raise _transport_error(DispatchError, "dispatching workflow", e) from e

        if response.status_code != DISPATCH_ACCEPTED:
            raise DispatchError(
                f"Workflow dispatch failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

    def poll_latest_run(self) -> WorkflowRun | None:
        """Return the most recent workflow run, or None if none is visible.

        Raises:
            PollError: On transport failure or a non-2xx response.
        """
        params: dict[str, Any] = {"per_page": 1}
        if self.settings.filter_runs:
            params["branch"] = self.settings.branch
            params["event"] = "workflow_dispatch"

        try:
            response = self.client.get(f"{self.repo_path}/actions/runs", params=params)
        except httpx.HTTPError as e:
            raise _transport_error(PollError, "listing workflow runs", e) from e

        if not response.is_success:
            raise PollError(
                f"Listing workflow runs failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        runs = _json_or_empty(response).get("workflow_runs") or []
        if not runs:
            return None
        return WorkflowRun.from_api(runs[0])

    def list_artifacts(self, run_id: int) -> list[ArtifactRef]:
        """List the artifacts attached to a run.

        Raises:
            ArtifactDownloadError: On transport failure or a non-2xx response.
        """
        try:
            response = self.client.get(f"{self.repo_path}/actions/runs/{run_id}/artifacts")
        except httpx.HTTPError as e:
            raise _transport_error(
                ArtifactDownloadError, f"listing artifacts of run {run_id}", e
            ) from e

        if not response.is_success:
            raise ArtifactDownloadError(
                f"Listing artifacts of run {run_id} failed with HTTP "
                f"{response.status_code}",
                status_code=response.status_code,
            )

        items = _json_or_empty(response).get("artifacts") or []
        return [ArtifactRef.from_api(item) for item in items]

    def fetch_artifact(self, run_id: int, dest_dir: Path) -> DownloadResult:
        """Download the first artifact of a run to ``dest_dir/<run_id>.zip``.

        An existing file at that path is overwritten.

        Raises:
            NoArtifactError: If the run has no artifacts.
            ArtifactDownloadError: If listing or downloading fails.
        """
        artifacts = self.list_artifacts(run_id)
        if not artifacts:
            raise NoArtifactError(run_id)

        artifact = artifacts[0]
        dest_path = dest_dir / f"{run_id}.zip"
        return download_file(
            self.client,
            artifact.download_url,
            dest_path,
            timeout=self.settings.download_timeout,
        )


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = 600,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Stream a file to disk, computing its SHA-256 on the way.

    Args:
        client: HTTPX client instance.
        url: URL to download from (redirects are followed).
        dest_path: Destination path, overwritten if present.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with path, checksum, and size.

    Raises:
        ArtifactDownloadError: If the download fails. The partial file is removed.
    """
    logger.info("Downloading artifact to %s", dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with client.stream(
            "GET", url, timeout=timeout, follow_redirects=True
        ) as response:
            response.raise_for_status()

            total_bytes = 0
            sha256 = hashlib.sha256()
            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    sha256.update(chunk)
                    total_bytes += len(chunk)

    except httpx.HTTPStatusError as e:
        dest_path.unlink(missing_ok=True)
        raise ArtifactDownloadError(
            f"HTTP error downloading artifact: {e.response.status_code} "
            f"{e.response.reason_phrase}",
            code="http_error",
            status_code=e.response.status_code,
        ) from e
    except httpx.HTTPError as e:
        dest_path.unlink(missing_ok=True)
        raise _transport_error(ArtifactDownloadError, "downloading artifact", e) from e
    except OSError as e:
        dest_path.unlink(missing_ok=True)
        raise ArtifactDownloadError(
            f"Failed to write artifact to {dest_path}: {e}", code="write_failed"
        ) from e

    checksum = sha256.hexdigest()
    logger.info(
        "Downloaded %s (%d bytes, checksum: %s)",
        dest_path.name,
        total_bytes,
        checksum[:16] + "...",
    )
    return DownloadResult(path=dest_path, sha256=checksum, size_bytes=total_bytes)


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body, returning {} for empty or invalid bodies."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


__all__ = [
    "DISPATCH_ACCEPTED",
    "ArtifactDownloadError",
    "DispatchError",
    "GatewayError",
    "NoArtifactError",
    "PollError",
    "RepositoryGateway",
    "UploadError",
    "auth_headers",
    "create_http_client",
    "download_file",
]
