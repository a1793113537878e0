"""Shared type definitions for gki_builder.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Stage(str, Enum):
    """Pipeline stages, in execution order."""

    ENVIRONMENT = "environment"
    SYNC = "sync"
    KERNELSU = "kernelsu"
    VERSION_STRINGS = "version_strings"
    PATCHES = "patches"
    DEFCONFIG = "defconfig"
    BUILD = "build"
    POST_PATCH = "post_patch"
    PACKAGE = "package"


class StageStatus(str, Enum):
    """Outcome of a pipeline stage."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


class ApplyMode(str, Enum):
    """Failure policy of a patch step."""

    FATAL = "fatal"
    BEST_EFFORT = "best-effort"


class StepAction(str, Enum):
    """What a patch step does."""

    COPY = "copy"
    APPLY = "apply"


class PatchTool(str, Enum):
    """External tool used to apply a patch file."""

    PATCH = "patch"
    GIT_APPLY = "git-apply"


class CleanupPolicy(str, Enum):
    """What to do with the workspace after a successful build."""

    KEEP = "keep"
    REMOVE = "remove"


@dataclass
class StageResult:
    """Result of a single pipeline stage."""

    stage: Stage
    status: StageStatus
    message: str = ""
    details: dict[str, object] = field(default_factory=dict)


@dataclass
class ArtifactInfo:
    """Information about a build output file."""

    filename: str
    path: str
    size_bytes: int
    sha256: str
    kind: str | None = None


@dataclass
class BuildOutcome:
    """Summary of a completed pipeline run."""

    version: int
    package_path: Path
    image_path: Path
    manifest_path: Path
    stages: list[StageResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


__all__ = [
    "ApplyMode",
    "ArtifactInfo",
    "BuildOutcome",
    "CleanupPolicy",
    "PatchTool",
    "Stage",
    "StageResult",
    "StageStatus",
    "StepAction",
]
