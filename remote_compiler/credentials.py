"""Credential storage.

Stores the three values a build needs (owner, repository, token) in a
small JSON file readable only by the current user. Values set through
RCOMP_OWNER / RCOMP_REPOSITORY / RCOMP_TOKEN take precedence over stored
values.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from remote_compiler.types import BuildConfig

if TYPE_CHECKING:
    from remote_compiler.config import Settings

logger = logging.getLogger(__name__)

CREDENTIAL_KEYS = ("owner", "repository", "token")

CredentialListener = Callable[[str, str], None]


class CredentialStoreError(Exception):
    """Raised when the credential file cannot be read or written."""

    def __init__(self, message: str, code: str = "credential_store_error") -> None:
        super().__init__(message)
        self.code = code


class CredentialStore:
    """Synchronized string store for build credentials."""

    def __init__(
        self,
        path: Path,
        overrides: dict[str, str | None] | None = None,
    ) -> None:
        """Initialize the store and load persisted values.

        Args:
            path: JSON file holding the credentials.
            overrides: Values that shadow the stored ones when not None.
        """
        self.path = path
        self._overrides = {k: v for k, v in (overrides or {}).items() if v}
        self._lock = threading.Lock()
        self._values: dict[str, str] = dict.fromkeys(CREDENTIAL_KEYS, "")
        self._listeners: list[CredentialListener] = []
        self._load()

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialStore:
        """Create a store at the configured path with env overrides applied."""
        return cls(
            settings.credentials_path,
            overrides={
                "owner": settings.owner,
                "repository": settings.repository,
                "token": settings.token,
            },
        )

    def get(self, key: str) -> str:
        """Return the effective value for a key ("" when unset)."""
        _check_key(key)
        if key in self._overrides:
            return self._overrides[key] or ""
        with self._lock:
            return self._values[key]

    def set(self, key: str, value: str) -> None:
        """Store a value, persist it, and notify listeners."""
        _check_key(key)
        value = value.strip()
        with self._lock:
            self._save({**self._values, key: value})
            self._values[key] = value
        logger.info("Stored credential %s", key)
        self._notify(key, value)

    def clear(self) -> None:
        """Remove all stored values."""
        with self._lock:
            cleared = dict.fromkeys(CREDENTIAL_KEYS, "")
            self._save(cleared)
            self._values = cleared
        logger.info("Cleared stored credentials")
        for key in CREDENTIAL_KEYS:
            self._notify(key, "")

    def is_ready(self) -> bool:
        """Return True when owner, repository and token are all non-empty."""
        return all(self.get(key) for key in CREDENTIAL_KEYS)

    def to_build_config(self) -> BuildConfig:
        """Snapshot the effective values as an immutable BuildConfig."""
        return BuildConfig(
            owner=self.get("owner"),
            repository=self.get("repository"),
            token=self.get("token"),
        )

    def subscribe(self, listener: CredentialListener) -> Callable[[], None]:
        """Register a change listener called with (key, value).

        Returns:
            Callable that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str, value: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(key, value)
            except Exception:
                logger.exception("Credential listener %r failed", listener)

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise CredentialStoreError(
                f"Failed to read credentials from {self.path}: {e}",
                code="credentials_unreadable",
            ) from e
        if not isinstance(data, dict):
            raise CredentialStoreError(
                f"Credentials file {self.path} must hold a JSON object",
                code="credentials_invalid",
            )
        for key in CREDENTIAL_KEYS:
            value = data.get(key)
            if isinstance(value, str):
                self._values[key] = value

    def _save(self, values: dict[str, str]) -> None:
        # Caller holds self._lock; values replace the file contents
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(values, f, indent=2)
        except OSError as e:
            raise CredentialStoreError(
                f"Failed to write credentials to {self.path}: {e}",
                code="credentials_unwritable",
            ) from e


def _check_key(key: str) -> None:
    if key not in CREDENTIAL_KEYS:
        raise KeyError(f"Unknown credential key: {key}")


__all__ = [
    "CREDENTIAL_KEYS",
    "CredentialListener",
    "CredentialStore",
    "CredentialStoreError",
]
