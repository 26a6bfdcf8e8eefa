"""Project manifest synthesis.

This module renders the project manifest uploaded before every build.
The manifest is a YAML project description (name, bundle prefix,
deployment target, one application target with signing and build
settings) consumed by the remote workflow to generate the project.

Bundle and signing identifiers come from ManifestOptions, which can be
loaded from a YAML or JSON options file.
"""

import json
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

BUNDLE_PREFIX_PATTERN = re.compile(r"^[A-Za-z0-9\-]+(\.[A-Za-z0-9\-]+)*$")
_APP_NAME_STRIP = re.compile(r"[^A-Za-z0-9_\-]")

DEFAULT_APP_NAME = "App"


def _default_build_settings() -> dict[str, str]:
    return {
        "SWIFT_VERSION": "5.0",
        "GENERATE_INFOPLIST_FILE": "YES",
        "CODE_SIGNING_ALLOWED": "NO",
        "CODE_SIGNING_REQUIRED": "NO",
    }


class ManifestOptions(BaseModel):
    """Static configuration block embedded in every manifest.

    Attributes:
        bundle_id_prefix: Reverse-DNS prefix for the bundle identifier.
        platform: Target platform name.
        deployment_target: Minimum platform version.
        team_id: Development team identifier (optional).
        signing_style: Code signing style.
        source_dir: Directory holding the uploaded source file.
        build_settings: Base build settings for the application target.
    """

    model_config = ConfigDict(extra="forbid")

    bundle_id_prefix: str = Field(default="com.example")
    platform: str = Field(default="iOS")
    deployment_target: str = Field(default="16.0")
    team_id: str | None = Field(default=None)
    signing_style: Literal["automatic", "manual"] = Field(default="automatic")
    source_dir: str = Field(default="Sources")
    build_settings: dict[str, str] = Field(default_factory=_default_build_settings)

    @field_validator("bundle_id_prefix")
    @classmethod
    def validate_bundle_id_prefix(cls, v: str) -> str:
        """Validate the prefix is dot-separated alphanumeric segments."""
        if not BUNDLE_PREFIX_PATTERN.match(v):
            raise ValueError(
                f"bundle_id_prefix must look like 'com.example', got '{v}'"
            )
        return v

    @field_validator("deployment_target")
    @classmethod
    def validate_deployment_target(cls, v: str) -> str:
        """Validate the deployment target is a dotted version."""
        if not re.match(r"^\d+(\.\d+){0,2}$", v):
            raise ValueError(f"deployment_target must be a version, got '{v}'")
        return v


def sanitize_app_name(app_name: str) -> str:
    """Reduce an application name to characters valid in a target name."""
    cleaned = _APP_NAME_STRIP.sub("", app_name.strip().replace(" ", ""))
    return cleaned or DEFAULT_APP_NAME


def build_manifest(app_name: str, options: ManifestOptions | None = None) -> dict[str, Any]:
    """Build the manifest document as a dictionary.

    Args:
        app_name: User-supplied application name.
        options: Manifest options; defaults are used if not provided.

    Returns:
        Manifest mapping ready to be serialized.
    """
    if options is None:
        options = ManifestOptions()

    name = sanitize_app_name(app_name)

    settings: dict[str, str] = {
        "PRODUCT_BUNDLE_IDENTIFIER": f"{options.bundle_id_prefix}.{name}",
        "CODE_SIGN_STYLE": options.signing_style.capitalize(),
    }
    if options.team_id:
        settings["DEVELOPMENT_TEAM"] = options.team_id
    settings.update(options.build_settings)

    return {
        "name": name,
        "options": {
            "bundleIdPrefix": options.bundle_id_prefix,
            "deploymentTarget": {options.platform: options.deployment_target},
        },
        "targets": {
            name: {
                "type": "application",
                "platform": options.platform,
                "sources": [options.source_dir],
                "settings": {"base": settings},
            }
        },
    }


def render_manifest(app_name: str, options: ManifestOptions | None = None) -> str:
    """Render the manifest document as YAML text."""
    return yaml.safe_dump(
        build_manifest(app_name, options),
        sort_keys=False,
        default_flow_style=False,
    )


def load_manifest_options(path: Path) -> ManifestOptions:
    """Load manifest options from a YAML or JSON file.

    Args:
        path: Path to the options file (.json, otherwise parsed as YAML).

    Returns:
        Validated ManifestOptions.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not hold a mapping.
        pydantic.ValidationError: If the data does not match the schema.
    """
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping, got {type(data).__name__}")
    return ManifestOptions.model_validate(data)


__all__ = [
    "ManifestOptions",
    "build_manifest",
    "load_manifest_options",
    "render_manifest",
    "sanitize_app_name",
]
