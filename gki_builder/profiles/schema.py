"""Pydantic models for build configuration and build profiles.

BuildConfig is the immutable per-run configuration threaded through every
pipeline stage. BuildProfile is a named, file-backed preset that produces
a BuildConfig.
"""

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEVICE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.\-]+$")
PROFILE_ID_PATTERN = DEVICE_NAME_PATTERN

DEFAULT_MANIFEST_URL = "https://github.com/OnePlusOSS/kernel_manifest.git"
DEFAULT_MANIFEST_BRANCH = "refs/heads/oneplus/sm8650"
DEFAULT_PACKAGE_TAG = "SuKiSu"

# Placeholder in kernel_suffix replaced with the computed version number
VERSION_PLACEHOLDER = "{version}"


class BuildConfig(BaseModel):
    """Immutable configuration of a single build run.

    Attributes:
        device_name: Device identifier, used in paths and the archive name.
        repo_manifest: Manifest filename inside the manifest repository.
        kernel_suffix: Literal version suffix; may contain '{version}'.
        enable_kpm: Enable the KPM runtime-patch feature.
        enable_lz4kd: Enable the LZ4/ZSTD compression patch set.
        manifest_url: Manifest repository URL.
        manifest_branch: Manifest branch.
        package_tag: Trailing tag of the archive name.
        ksu_version_label: When set, the KernelSU manager shows the version
            as `v<version>@<label>`.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    device_name: Annotated[str, Field(min_length=1, max_length=100)]
    repo_manifest: Annotated[str, Field(min_length=1, max_length=255)]
    kernel_suffix: Annotated[str, Field(min_length=1, max_length=255)]
    enable_kpm: bool = False
    enable_lz4kd: bool = False
    manifest_url: str = DEFAULT_MANIFEST_URL
    manifest_branch: str = DEFAULT_MANIFEST_BRANCH
    package_tag: Annotated[str, Field(min_length=1, max_length=50)] = (
        DEFAULT_PACKAGE_TAG
    )
    ksu_version_label: Annotated[str, Field(min_length=1, max_length=64)] | None = None

    @field_validator("device_name", "package_tag")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate names are safe for paths and archive names."""
        if not DEVICE_NAME_PATTERN.match(v):
            raise ValueError(
                f"must match pattern {DEVICE_NAME_PATTERN.pattern}, got '{v}'"
            )
        return v

    @field_validator("repo_manifest")
    @classmethod
    def validate_manifest(cls, v: str) -> str:
        """Validate the manifest is a bare XML filename."""
        if "/" in v or not v.endswith(".xml"):
            raise ValueError(f"repo_manifest must be an .xml filename, got '{v}'")
        return v

    @field_validator("kernel_suffix", "ksu_version_label")
    @classmethod
    def validate_suffix(cls, v: str | None) -> str | None:
        """Reject characters that would break a generated shell or C string."""
        if v is None:
            return v
        for ch in ('"', "\\", "`", "$", "\n"):
            if ch in v:
                raise ValueError(f"must not contain {ch!r}")
        return v

    @property
    def features(self) -> frozenset[str]:
        """Names of the enabled optional features."""
        enabled = set()
        if self.enable_kpm:
            enabled.add("kpm")
        if self.enable_lz4kd:
            enabled.add("lz4kd")
        return frozenset(enabled)

    def render_suffix(self, version: int) -> str:
        """Return the kernel suffix with the version placeholder filled in."""
        return self.kernel_suffix.replace(VERSION_PLACEHOLDER, str(version))


class BuildProfile(BaseModel):
    """A named build preset loaded from YAML/JSON.

    Attributes:
        profile_id: Unique stable identifier.
        name: Human-readable name.
        description: Optional longer description.
        tags: Optional tags for filtering.
        build: The build configuration.
    """

    model_config = ConfigDict(extra="forbid")

    profile_id: Annotated[
        str, Field(description="Unique stable identifier", min_length=1, max_length=255)
    ]
    name: Annotated[
        str, Field(description="Human-readable name", min_length=1, max_length=255)
    ]
    description: str | None = Field(default=None, description="Longer description")
    tags: list[str] | None = Field(default=None, description="Tags for filtering")
    build: BuildConfig

    @field_validator("profile_id")
    @classmethod
    def validate_profile_id(cls, v: str) -> str:
        """Validate profile_id matches safe pattern."""
        if not PROFILE_ID_PATTERN.match(v):
            raise ValueError(
                f"profile_id must match pattern {PROFILE_ID_PATTERN.pattern}, got '{v}'"
            )
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str] | None) -> list[str] | None:
        """Validate tags are non-empty strings."""
        if v is None:
            return v
        for tag in v:
            if not tag or not tag.strip():
                raise ValueError("tags must be non-empty strings")
        return v


__all__ = [
    "DEFAULT_MANIFEST_BRANCH",
    "DEFAULT_MANIFEST_URL",
    "DEFAULT_PACKAGE_TAG",
    "VERSION_PLACEHOLDER",
    "BuildConfig",
    "BuildProfile",
]
