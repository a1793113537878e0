"""SukiSU (KernelSU) setup and version computation.

The version number is the commit count of the KernelSU `main` branch plus
a fixed offset. It names the output archive, is written into the KernelSU
Makefile, and may be embedded in the kernel suffix.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import httpx

from gki_builder.errors import AnchorNotFoundError, GkiBuildError, ToolExecutionError
from gki_builder.fetch import download_file
from gki_builder.process import run_tool

logger = logging.getLogger(__name__)

VERSION_OFFSET = 10700
VERSION_BRANCH = "main"

KSU_VERSION_PATTERN = re.compile(r"DKSU_VERSION=\d+")

# Header the manager app reads its display version from, relative to KernelSU
VERSION_NAME_HEADER = "include/version_name.h"
VERSION_NAME_INCLUDE = f"-include {VERSION_NAME_HEADER}"


def version_from_commit_count(commit_count: int, offset: int = VERSION_OFFSET) -> int:
    """Return the build version for a commit count.

    Raises:
        ValueError: If commit_count is negative.
    """
    if commit_count < 0:
        raise ValueError(f"commit count must be nonnegative, got {commit_count}")
    return commit_count + offset


def count_commits(repo_dir: Path, branch: str = VERSION_BRANCH) -> int:
    """Return `git rev-list --count <branch>` for a repository.

    Raises:
        ToolExecutionError: If git fails or prints something unexpected.
    """
    result = run_tool(
        ["git", "rev-list", "--count", branch],
        cwd=repo_dir,
        capture=True,
    )
    output = result.stdout.strip()
    try:
        return int(output)
    except ValueError:
        raise ToolExecutionError(
            f"Unexpected output from git rev-list in {repo_dir}: {output!r}",
            code="invalid_commit_count",
        ) from None


def compute_version(kernelsu_dir: Path, branch: str = VERSION_BRANCH) -> int:
    """Compute the build version from the KernelSU checkout."""
    version = version_from_commit_count(count_commits(kernelsu_dir, branch))
    logger.info("KernelSU version: %d", version)
    return version


def set_makefile_version(makefile: Path, version: int) -> None:
    """Rewrite -DKSU_VERSION=<n> in the KernelSU Makefile.

    Raises:
        AnchorNotFoundError: If the Makefile has no DKSU_VERSION definition.
    """
    text = makefile.read_text(encoding="utf-8") if makefile.is_file() else ""
    updated, count = KSU_VERSION_PATTERN.subn(f"DKSU_VERSION={version}", text)
    if count == 0:
        raise AnchorNotFoundError(makefile, "DKSU_VERSION=<n>")
    if updated != text:
        makefile.write_text(updated, encoding="utf-8")


def render_version_name(version: int, label: str) -> str:
    """Return the version_name.h contents, e.g. `v12345@label`."""
    return f'#define VERSION_NAME "v{version}@{label}"\n'


def inject_version_name(kernelsu_dir: Path, version: int, label: str) -> Path:
    """Write include/version_name.h and force-include it from the Makefile.

    The header is rewritten on every call; the `-include` line is prepended
    to kernel/Makefile only when the Makefile does not mention the header
    yet, so repeated runs leave a single include.

    Returns:
        Path of the header.

    Raises:
        GkiBuildError: If the KernelSU Makefile does not exist.
    """
    makefile = kernelsu_dir / "kernel" / "Makefile"
    if not makefile.is_file():
        raise GkiBuildError(
            f"KernelSU Makefile not found: {makefile}", code="file_not_found"
        )

    header = kernelsu_dir / VERSION_NAME_HEADER
    header.parent.mkdir(parents=True, exist_ok=True)
    header.write_text(render_version_name(version, label), encoding="utf-8")
    logger.info("Version name set to v%d@%s", version, label)

    text = makefile.read_text(encoding="utf-8")
    if Path(VERSION_NAME_HEADER).name not in text:
        makefile.write_text(f"{VERSION_NAME_INCLUDE}\n{text}", encoding="utf-8")
    return header


def run_setup_script(
    client: httpx.Client,
    url: str,
    argument: str,
    kernel_platform: Path,
    log_path: Path | None = None,
) -> None:
    """Download and run the SukiSU setup script in kernel_platform.

    Raises:
        DownloadError: If the script cannot be downloaded.
        ToolExecutionError: If the script fails.
    """
    logger.info("Setting up SukiSU...")
    script = kernel_platform / ".sukisu-setup.sh"
    download_file(client, url, script)
    try:
        run_tool(
            ["bash", str(script), argument],
            cwd=kernel_platform,
            log_path=log_path,
        )
    finally:
        script.unlink(missing_ok=True)


__all__ = [
    "VERSION_BRANCH",
    "VERSION_NAME_HEADER",
    "VERSION_NAME_INCLUDE",
    "VERSION_OFFSET",
    "compute_version",
    "count_commits",
    "inject_version_name",
    "render_version_name",
    "run_setup_script",
    "set_makefile_version",
    "version_from_commit_count",
]
