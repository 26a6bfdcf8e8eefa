"""Remote repository gateway module.

This module handles:
- Authenticated HTTP access to the repository hosting REST API
- Revision-aware file upserts
- Workflow dispatch, run polling and artifact download
"""

from remote_compiler.gateway.client import (
    ArtifactDownloadError,
    DispatchError,
    GatewayError,
    NoArtifactError,
    PollError,
    RepositoryGateway,
    UploadError,
    create_http_client,
    download_file,
)

__all__ = [
    "ArtifactDownloadError",
    "DispatchError",
    "GatewayError",
    "NoArtifactError",
    "PollError",
    "RepositoryGateway",
    "UploadError",
    "create_http_client",
    "download_file",
]
