"""Companion repositories that supply patch and support files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from gki_builder.errors import ToolExecutionError
from gki_builder.process import run_tool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompanionRepo:
    """A git repository cloned next to the kernel tree."""

    name: str
    url: str
    branch: str | None = None
    quiet: bool = False
    depth: int | None = None

    def clone_command(self, dest: Path) -> list[str]:
        """Return the `git clone` command for this repository."""
        cmd = ["git", "clone"]
        if self.quiet:
            cmd.append("-q")
        cmd.append(self.url)
        if self.branch:
            cmd.extend(["-b", self.branch])
        if self.depth is not None:
            cmd.append(f"--depth={self.depth}")
        cmd.append(str(dest))
        return cmd


COMPANION_REPOS: tuple[CompanionRepo, ...] = (
    CompanionRepo(
        name="susfs4ksu",
        url="https://gitlab.com/simonpunk/susfs4ksu.git",
        branch="gki-android14-6.1",
    ),
    CompanionRepo(
        name="kernel_patches",
        url="https://github.com/Xiaomichael/kernel_patches.git",
    ),
    CompanionRepo(
        name="SukiSU_patch",
        url="https://github.com/SukiSU-Ultra/SukiSU_patch.git",
        quiet=True,
    ),
)


def clone_repo(repo: CompanionRepo, parent: Path, log_path: Path | None = None) -> str | None:
    """Clone a repository, tolerating failure.

    A failed clone is treated as "already present"; whatever later step
    needs the repository fails if it really is missing.

    Returns:
        A warning message if the clone failed, else None.
    """
    dest = parent / repo.name
    try:
        run_tool(repo.clone_command(dest), cwd=parent, log_path=log_path)
    except ToolExecutionError as e:
        message = f"{repo.name} already exists or clone failed: {e}"
        logger.warning(message)
        return message
    return None


def clone_companions(
    parent: Path,
    repos: tuple[CompanionRepo, ...] = COMPANION_REPOS,
    log_path: Path | None = None,
) -> list[str]:
    """Clone every companion repository into parent.

    Returns:
        Warnings for clones that failed.
    """
    logger.info("Cloning patch repositories...")
    warnings: list[str] = []
    for repo in repos:
        warning = clone_repo(repo, parent, log_path=log_path)
        if warning:
            warnings.append(warning)
    return warnings


__all__ = [
    "COMPANION_REPOS",
    "CompanionRepo",
    "clone_companions",
    "clone_repo",
]
