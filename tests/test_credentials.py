"""Tests for credentials module."""

import json
import stat

import pytest

from remote_compiler.config import Settings
from remote_compiler.credentials import CredentialStore, CredentialStoreError


@pytest.fixture
def path(tmp_path):
    """Location of the credentials file."""
    return tmp_path / "conf" / "credentials.json"


class TestCredentialStore:
    """Tests for CredentialStore."""

    def test_empty_store(self, path) -> None:
        """A missing file should give empty values."""
        store = CredentialStore(path)

        assert store.get("owner") == ""
        assert not store.is_ready()

    def test_set_persists(self, path) -> None:
        """Values should survive a new store instance."""
        store = CredentialStore(path)
        store.set("owner", "  octo  ")
        store.set("repository", "builds")
        store.set("token", "secret")

        reloaded = CredentialStore(path)
        assert reloaded.get("owner") == "octo"
        assert reloaded.is_ready()
        assert json.loads(path.read_text())["repository"] == "builds"

    def test_file_permissions(self, path) -> None:
        """The credentials file should be readable by the owner only."""
        CredentialStore(path).set("token", "secret")

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_clear(self, path) -> None:
        """clear() should remove all values."""
        store = CredentialStore(path)
        store.set("owner", "octo")
        store.clear()

        assert CredentialStore(path).get("owner") == ""

    def test_unknown_key(self, path) -> None:
        """Unknown keys should raise KeyError."""
        store = CredentialStore(path)

        with pytest.raises(KeyError):
            store.get("password")
        with pytest.raises(KeyError):
            store.set("password", "x")

    def test_overrides_take_precedence(self, path) -> None:
        """Non-empty overrides should shadow stored values."""
        CredentialStore(path).set("owner", "stored")

        store = CredentialStore(path, overrides={"owner": "env", "token": None})

        assert store.get("owner") == "env"
        assert store.get("token") == ""

    def test_to_build_config(self, path) -> None:
        """to_build_config should snapshot the effective values."""
        store = CredentialStore(path)
        store.set("owner", "octo")
        store.set("repository", "builds")
        store.set("token", "secret")

        config = store.to_build_config()

        assert (config.owner, config.repository, config.token) == (
            "octo",
            "builds",
            "secret",
        )

    def test_listeners(self, path) -> None:
        """Listeners should be told about each change."""
        store = CredentialStore(path)
        changes = []
        unsubscribe = store.subscribe(lambda k, v: changes.append((k, v)))

        store.set("owner", "octo")
        unsubscribe()
        store.set("token", "secret")

        assert changes == [("owner", "octo")]

    def test_failed_save_keeps_previous_value(self, tmp_path) -> None:
        """A value that cannot be written should not be kept in memory."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = CredentialStore(blocker / "credentials.json")

        with pytest.raises(CredentialStoreError) as exc_info:
            store.set("owner", "octo")

        assert exc_info.value.code == "credentials_unwritable"
        assert store.get("owner") == ""

        with pytest.raises(CredentialStoreError):
            store.clear()

    def test_failing_listener_is_isolated(self, path) -> None:
        """A failing listener should not stop set() or other listeners."""
        store = CredentialStore(path)
        changes = []

        def broken(key, value):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(lambda k, v: changes.append((k, v)))

        store.set("owner", "octo")

        assert changes == [("owner", "octo")]
        assert CredentialStore(path).get("owner") == "octo"

    def test_corrupt_file(self, path) -> None:
        """An unreadable file should raise CredentialStoreError."""
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        with pytest.raises(CredentialStoreError) as exc_info:
            CredentialStore(path)

        assert exc_info.value.code == "credentials_unreadable"

    def test_non_object_file(self, path) -> None:
        """A JSON array should be rejected."""
        path.parent.mkdir(parents=True)
        path.write_text("[]")

        with pytest.raises(CredentialStoreError) as exc_info:
            CredentialStore(path)

        assert exc_info.value.code == "credentials_invalid"

    def test_from_settings(self, tmp_path) -> None:
        """from_settings should use the configured path and env values."""
        settings = Settings(
            credentials_path=tmp_path / "c.json",
            owner="octo",
            repository="builds",
            token="secret",
        )

        store = CredentialStore.from_settings(settings)

        assert store.path == tmp_path / "c.json"
        assert store.is_ready()
