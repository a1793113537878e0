"""AnyKernel3 packaging and artifact publishing.

This module handles:
- Preparing the AnyKernel3 template (clone, strip metadata and helpers)
- Zipping the template plus the kernel image into a flashable archive
- Copying the archive and image to the output directory
- Writing a JSON manifest of the published artifacts
"""

from __future__ import annotations

import json
import logging
import shutil
import zipfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from gki_builder.errors import PackagingError, ToolExecutionError
from gki_builder.fetch import compute_file_sha256
from gki_builder.process import run_tool
from gki_builder.types import ArtifactInfo

logger = logging.getLogger(__name__)

# Entries removed from the template before packaging
EXCLUDED_TEMPLATE_ENTRIES = (".git", "push.sh")

MANIFEST_NAME = "manifest.json"


@dataclass
class PackageResult:
    """Result of packaging and publishing.

    Attributes:
        archive_path: Archive in the output directory.
        image_path: Image copy in the output directory.
        manifest_path: JSON manifest in the output directory.
        artifacts: Published artifacts.
    """

    archive_path: Path
    image_path: Path
    manifest_path: Path
    artifacts: list[ArtifactInfo]


def archive_name(version: int, device_name: str, tag: str) -> str:
    """Return the archive filename: AnyKernel3_<version>_<device>_<tag>.zip."""
    return f"AnyKernel3_{version}_{device_name}_{tag}.zip"


def clone_template(repo_url: str, template_dir: Path, log_path: Path | None = None) -> None:
    """Shallow-clone the AnyKernel3 template.

    A failed clone is tolerated when the directory already exists.

    Raises:
        PackagingError: If the clone fails and no template is present.
    """
    template_dir.parent.mkdir(parents=True, exist_ok=True)
    try:
        run_tool(
            ["git", "clone", "-q", repo_url, "--depth=1", str(template_dir)],
            cwd=template_dir.parent,
            log_path=log_path,
        )
    except ToolExecutionError as e:
        if not template_dir.is_dir():
            raise PackagingError(
                f"Failed to clone AnyKernel3 template: {e}",
                code="template_clone_failed",
            ) from e
        logger.info("AnyKernel3 already exists")


def strip_template(template_dir: Path) -> list[str]:
    """Remove version-control metadata and helper scripts from the template.

    Returns:
        Names of the entries that were removed.
    """
    removed: list[str] = []
    for name in EXCLUDED_TEMPLATE_ENTRIES:
        entry = template_dir / name
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        elif entry.exists() or entry.is_symlink():
            entry.unlink()
        else:
            continue
        removed.append(name)
    return removed


def _iter_archive_members(template_dir: Path, skip: Path | None) -> list[Path]:
    members: list[Path] = []
    for top in sorted(template_dir.iterdir()):
        # Matches shell globbing of ./*: hidden top-level entries are left out
        if top.name.startswith("."):
            continue
        candidates = [top] if not top.is_dir() else [top, *sorted(top.rglob("*"))]
        for path in candidates:
            if skip is not None and path.resolve() == skip:
                continue
            members.append(path)
    return members


def create_archive(template_dir: Path, archive_path: Path) -> Path:
    """Zip the template directory contents into archive_path.

    Archive entries are relative to the template directory.

    Raises:
        PackagingError: If the archive cannot be written.
    """
    logger.info("Creating %s", archive_path.name)
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    skip = archive_path.resolve()

    try:
        with zipfile.ZipFile(
            archive_path, "w", zipfile.ZIP_DEFLATED, compresslevel=9
        ) as zf:
            for path in _iter_archive_members(template_dir, skip):
                zf.write(path, path.relative_to(template_dir).as_posix())
    except OSError as e:
        archive_path.unlink(missing_ok=True)
        raise PackagingError(
            f"Failed to create archive {archive_path}: {e}",
            code="archive_failed",
        ) from e

    return archive_path


def describe_artifact(path: Path, kind: str) -> ArtifactInfo:
    """Return size and checksum information for a file."""
    return ArtifactInfo(
        filename=path.name,
        path=str(path),
        size_bytes=path.stat().st_size,
        sha256=compute_file_sha256(path),
        kind=kind,
    )


def generate_manifest(
    artifacts: list[ArtifactInfo],
    build_inputs: dict[str, Any] | None = None,
    version: int | None = None,
) -> dict[str, Any]:
    """Generate a build manifest suitable for JSON serialization."""
    manifest: dict[str, Any] = {
        "version": "1.0",
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "artifacts": [asdict(a) for a in artifacts],
    }
    if version is not None:
        manifest["kernel_version"] = version
    if build_inputs:
        manifest["build_inputs"] = build_inputs

    manifest["summary"] = {
        "total_artifacts": len(artifacts),
        "total_size_bytes": sum(a.size_bytes for a in artifacts),
    }
    return manifest


def write_manifest(manifest: dict[str, Any], output_path: Path) -> Path:
    """Write manifest to a JSON file."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)
    logger.info("Wrote manifest to %s", output_path)
    return output_path


def publish(files: list[Path], output_dir: Path) -> list[Path]:
    """Copy files into the output directory.

    Raises:
        PackagingError: If the directory cannot be created or a copy fails.
    """
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        published = []
        for path in files:
            target = output_dir / path.name
            shutil.copy2(path, target)
            published.append(target)
    except OSError as e:
        raise PackagingError(
            f"Failed to publish artifacts to {output_dir}: {e}",
            code="publish_failed",
        ) from e
    return published


def package_kernel(
    image: Path,
    template_dir: Path,
    template_url: str,
    archive_path: Path,
    output_dir: Path,
    build_inputs: dict[str, Any] | None = None,
    version: int | None = None,
    log_path: Path | None = None,
) -> PackageResult:
    """Build the flashable archive and publish it with the image.

    Raises:
        PackagingError: If any packaging step fails.
    """
    if not image.is_file():
        raise PackagingError(f"Kernel image not found: {image}", code="image_missing")

    logger.info("Creating AnyKernel3 package...")
    clone_template(template_url, template_dir, log_path=log_path)
    strip_template(template_dir)

    try:
        shutil.copy2(image, template_dir / image.name)
    except OSError as e:
        raise PackagingError(f"Failed to copy Image: {e}", code="image_copy_failed") from e

    create_archive(template_dir, archive_path)
    archive_out, image_out = publish([archive_path, image], output_dir)

    artifacts = [
        describe_artifact(archive_out, "anykernel3"),
        describe_artifact(image_out, "kernel"),
    ]
    manifest = generate_manifest(artifacts, build_inputs=build_inputs, version=version)
    manifest_path = write_manifest(manifest, output_dir / MANIFEST_NAME)

    logger.info("Kernel package path: %s", archive_out)
    logger.info("Image path: %s", image_out)

    return PackageResult(
        archive_path=archive_out,
        image_path=image_out,
        manifest_path=manifest_path,
        artifacts=artifacts,
    )


__all__ = [
    "EXCLUDED_TEMPLATE_ENTRIES",
    "MANIFEST_NAME",
    "PackageResult",
    "archive_name",
    "clone_template",
    "create_archive",
    "describe_artifact",
    "generate_manifest",
    "package_kernel",
    "publish",
    "strip_template",
    "write_manifest",
]
