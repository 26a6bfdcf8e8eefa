"""Tests for builds/manifest.py module."""

import json

import pytest
import yaml
from pydantic import ValidationError

from remote_compiler.builds.manifest import (
    ManifestOptions,
    build_manifest,
    load_manifest_options,
    render_manifest,
    sanitize_app_name,
)


class TestSanitizeAppName:
    """Tests for sanitize_app_name."""

    def test_removes_spaces(self) -> None:
        """Spaces should be removed."""
        assert sanitize_app_name("Hello App") == "HelloApp"

    def test_strips_invalid_characters(self) -> None:
        """Punctuation other than - and _ should be dropped."""
        assert sanitize_app_name("My App! v2.0") == "MyAppv20"
        assert sanitize_app_name("my_app-x") == "my_app-x"

    def test_empty_falls_back(self) -> None:
        """A name with no valid characters should fall back to App."""
        assert sanitize_app_name("   ") == "App"
        assert sanitize_app_name("!!!") == "App"


class TestManifestOptions:
    """Tests for ManifestOptions validation."""

    def test_defaults(self) -> None:
        """Defaults should disable signing."""
        options = ManifestOptions()
        assert options.bundle_id_prefix == "com.example"
        assert options.build_settings["CODE_SIGNING_ALLOWED"] == "NO"

    def test_invalid_prefix(self) -> None:
        """A malformed bundle prefix should be rejected."""
        with pytest.raises(ValidationError):
            ManifestOptions(bundle_id_prefix="com..example")

    def test_invalid_deployment_target(self) -> None:
        """A non-version deployment target should be rejected."""
        with pytest.raises(ValidationError):
            ManifestOptions(deployment_target="latest")

    def test_unknown_field(self) -> None:
        """Unknown keys should be rejected."""
        with pytest.raises(ValidationError):
            ManifestOptions.model_validate({"bundle_prefix": "com.x"})


class TestBuildManifest:
    """Tests for build_manifest and render_manifest."""

    def test_structure(self) -> None:
        """The manifest should describe one application target."""
        manifest = build_manifest("Hello App")

        assert manifest["name"] == "HelloApp"
        assert manifest["options"]["bundleIdPrefix"] == "com.example"
        assert manifest["options"]["deploymentTarget"] == {"iOS": "16.0"}
        target = manifest["targets"]["HelloApp"]
        assert target["type"] == "application"
        assert target["sources"] == ["Sources"]
        base = target["settings"]["base"]
        assert base["PRODUCT_BUNDLE_IDENTIFIER"] == "com.example.HelloApp"
        assert base["CODE_SIGN_STYLE"] == "Automatic"
        assert "DEVELOPMENT_TEAM" not in base

    def test_team_and_custom_settings(self) -> None:
        """Team id and custom build settings should be embedded."""
        options = ManifestOptions(
            bundle_id_prefix="org.acme",
            team_id="ABCDE12345",
            signing_style="manual",
            build_settings={"SWIFT_VERSION": "5.9"},
        )
        base = build_manifest("Tool", options)["targets"]["Tool"]["settings"]["base"]

        assert base["PRODUCT_BUNDLE_IDENTIFIER"] == "org.acme.Tool"
        assert base["DEVELOPMENT_TEAM"] == "ABCDE12345"
        assert base["CODE_SIGN_STYLE"] == "Manual"
        assert base["SWIFT_VERSION"] == "5.9"

    def test_render_is_yaml(self) -> None:
        """Rendered text should parse back to the same document."""
        text = render_manifest("Hello App")

        assert text.startswith("name: HelloApp\n")
        assert yaml.safe_load(text) == build_manifest("Hello App")


class TestLoadManifestOptions:
    """Tests for load_manifest_options."""

    def test_yaml(self, tmp_path) -> None:
        """Should load a YAML options file."""
        path = tmp_path / "options.yaml"
        path.write_text("bundle_id_prefix: org.acme\nteam_id: T1\n")

        options = load_manifest_options(path)

        assert options.bundle_id_prefix == "org.acme"
        assert options.team_id == "T1"

    def test_json(self, tmp_path) -> None:
        """Should load a JSON options file."""
        path = tmp_path / "options.json"
        path.write_text(json.dumps({"platform": "macOS", "deployment_target": "13.0"}))

        options = load_manifest_options(path)

        assert options.platform == "macOS"

    def test_empty_file(self, tmp_path) -> None:
        """An empty file should give default options."""
        path = tmp_path / "options.yaml"
        path.write_text("")

        assert load_manifest_options(path) == ManifestOptions()

    def test_not_a_mapping(self, tmp_path) -> None:
        """A list document should be rejected."""
        path = tmp_path / "options.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            load_manifest_options(path)
