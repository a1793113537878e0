"""Manifest-driven source synchronization with repo.

This module handles:
- Composing `repo init` and `repo sync` commands
- Running them in the kernel workspace
- Removing the ABI protected export lists from the synced trees
"""

from __future__ import annotations

import logging
from pathlib import Path

from gki_builder.environment.workspace import ABI_PROTECTED_TREES, Workspace
from gki_builder.process import run_tool
from gki_builder.profiles.schema import BuildConfig

logger = logging.getLogger(__name__)

SYNC_DEPTH = 1

# Launcher used when no installed path is known
REPO_COMMAND = "repo"


def compose_repo_init_command(
    manifest_url: str,
    branch: str,
    manifest_file: str,
    depth: int = SYNC_DEPTH,
    repo_tool: str | Path = REPO_COMMAND,
) -> list[str]:
    """Compose the `repo init` command."""
    return [
        str(repo_tool),
        "init",
        "-u",
        manifest_url,
        "-b",
        branch,
        "-m",
        manifest_file,
        f"--depth={depth}",
    ]


def compose_repo_sync_command(
    jobs: int,
    no_tags: bool = True,
    repo_tool: str | Path = REPO_COMMAND,
) -> list[str]:
    """Compose the `repo sync` command."""
    cmd = [str(repo_tool), "--trace", "sync", "-c", f"-j{jobs}"]
    if no_tags:
        cmd.append("--no-tags")
    return cmd


def sync_source(
    config: BuildConfig,
    workspace: Workspace,
    jobs: int,
    repo_tool: str | Path = REPO_COMMAND,
) -> None:
    """Initialize and sync the kernel source tree.

    Args:
        config: Build configuration (manifest selection).
        workspace: Workspace layout.
        jobs: Parallel fetch jobs.
        repo_tool: The repo launcher to run.

    Raises:
        ToolExecutionError: If `repo init` or `repo sync` fails.
    """
    logger.info("Initializing repo and syncing source code...")
    workspace.kernel_workspace.mkdir(parents=True, exist_ok=True)

    run_tool(
        compose_repo_init_command(
            config.manifest_url,
            config.manifest_branch,
            config.repo_manifest,
            repo_tool=repo_tool,
        ),
        cwd=workspace.kernel_workspace,
        log_path=workspace.log_path("repo_init"),
    )
    run_tool(
        compose_repo_sync_command(jobs, repo_tool=repo_tool),
        cwd=workspace.kernel_workspace,
        log_path=workspace.log_path("repo_sync"),
    )


def remove_abi_protected_exports(kernel_platform: Path) -> list[Path]:
    """Delete android/abi_gki_protected_exports_* from the kernel trees.

    Returns:
        The files that were removed.
    """
    removed: list[Path] = []
    for tree in ABI_PROTECTED_TREES:
        android_dir = kernel_platform / tree / "android"
        matches = sorted(android_dir.glob("abi_gki_protected_exports_*"))
        if not matches:
            logger.info("No protected exports in %s", kernel_platform / tree)
            continue
        for path in matches:
            path.unlink()
            removed.append(path)
            logger.debug("Removed %s", path)
    return removed


__all__ = [
    "REPO_COMMAND",
    "SYNC_DEPTH",
    "compose_repo_init_command",
    "compose_repo_sync_command",
    "remove_abi_protected_exports",
    "sync_source",
]
