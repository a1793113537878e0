"""Execution of the patch plan.

This module handles:
- Copying patch and support files (globs allowed) into the kernel tree
- Applying patch files with patch or git apply
- Enforcing each step's failure policy

Steps run strictly in plan order. A fatal step failure raises
PatchStepError immediately and leaves the tree as it is; a best-effort
failure is logged as a warning and recorded in the outcome list.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from gki_builder.errors import GkiBuildError, PatchStepError
from gki_builder.patches.steps import PatchStep
from gki_builder.process import run_tool
from gki_builder.types import ApplyMode, StepAction

logger = logging.getLogger(__name__)

GLOB_CHARS = "*?["


class StepFailure(Exception):
    """Internal signal that a single step did not complete."""


@dataclass
class StepOutcome:
    """Result of one executed step."""

    step: PatchStep
    success: bool
    message: str = ""


def resolve_sources(base: Path, pattern: str) -> list[Path]:
    """Resolve a step source (file or glob) under base.

    Raises:
        StepFailure: If nothing matches.
    """
    if any(ch in pattern for ch in GLOB_CHARS):
        matches = sorted(base.glob(pattern))
        if not matches:
            raise StepFailure(f"No files match {base / pattern}")
        return matches

    path = base / pattern
    if not path.exists():
        raise StepFailure(f"Source not found: {path}")
    return [path]


def copy_sources(sources: list[Path], dest_dir: Path) -> list[Path]:
    """Copy files and directories into an existing directory.

    Returns:
        Paths of the copied entries.

    Raises:
        StepFailure: If the destination is missing or a copy fails.
    """
    if not dest_dir.is_dir():
        raise StepFailure(f"Destination directory not found: {dest_dir}")

    copied: list[Path] = []
    for source in sources:
        target = dest_dir / source.name
        try:
            if source.is_dir():
                shutil.copytree(source, target, dirs_exist_ok=True)
            else:
                shutil.copy2(source, target)
        except OSError as e:
            raise StepFailure(f"Failed to copy {source} -> {target}: {e}") from e
        copied.append(target)
    return copied


def apply_patch(step: PatchStep, base: Path, log_path: Path | None = None) -> None:
    """Apply a patch file to its tree.

    Raises:
        StepFailure: If the patch file or tree is missing, or the tool fails.
    """
    patch_file = base / step.source
    tree = base / step.destination
    if not patch_file.is_file():
        raise StepFailure(f"Patch file not found: {patch_file}")
    if not tree.is_dir():
        raise StepFailure(f"Tree not found: {tree}")

    try:
        run_tool(
            step.patch_command(),
            cwd=tree,
            stdin_path=patch_file,
            log_path=log_path,
        )
    except GkiBuildError as e:
        raise StepFailure(str(e)) from e


def execute_step(step: PatchStep, base: Path, log_path: Path | None = None) -> None:
    """Run one step without applying its failure policy.

    Raises:
        StepFailure: If the step fails.
    """
    if step.action is StepAction.COPY:
        sources = resolve_sources(base, step.source)
        copied = copy_sources(sources, base / step.destination)
        logger.debug("Copied %d entries for %s", len(copied), step.name)
    else:
        apply_patch(step, base, log_path=log_path)


def execute_plan(
    plan: tuple[PatchStep, ...],
    base: Path,
    log_path: Path | None = None,
) -> list[StepOutcome]:
    """Execute a patch plan in order.

    Args:
        plan: Ordered steps.
        base: Kernel workspace all step paths are relative to.
        log_path: Log file for patch tool output.

    Returns:
        One outcome per executed step.

    Raises:
        PatchStepError: On the first failing fatal step.
    """
    outcomes: list[StepOutcome] = []
    for index, step in enumerate(plan, start=1):
        logger.info("[%d/%d] %s", index, len(plan), step.name)
        try:
            execute_step(step, base, log_path=log_path)
        except StepFailure as e:
            if step.mode is ApplyMode.FATAL:
                raise PatchStepError(step.name, str(e)) from e
            logger.warning("Best-effort step %s failed: %s", step.name, e)
            outcomes.append(StepOutcome(step=step, success=False, message=str(e)))
            continue
        outcomes.append(StepOutcome(step=step, success=True))
    return outcomes


__all__ = [
    "StepFailure",
    "StepOutcome",
    "apply_patch",
    "copy_sources",
    "execute_plan",
    "execute_step",
    "resolve_sources",
]
