"""Execution of external tools.

This module handles:
- Running commands with subprocess (never through a shell)
- Capturing stdout/stderr to per-step log files
- Mapping nonzero exits and start failures to ToolExecutionError

Every external call blocks until the child exits; there are no timeouts.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Sequence
from contextlib import ExitStack
from datetime import datetime, timezone
from pathlib import Path

from gki_builder.errors import ToolExecutionError

logger = logging.getLogger(__name__)


def _prepare_env(env_override: dict[str, str] | None) -> dict[str, str] | None:
    if not env_override:
        return None
    env = dict(os.environ)
    env.update(env_override)
    return env


def run_tool(
    cmd: Sequence[str],
    cwd: Path | None = None,
    env_override: dict[str, str] | None = None,
    log_path: Path | None = None,
    stdin_path: Path | None = None,
    capture: bool = False,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run an external command.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env_override: Variables merged over the current environment.
        log_path: If set, stdout and stderr are written to this file.
        stdin_path: If set, the file is fed to the command's stdin.
        capture: Capture stdout/stderr as text (ignored when log_path is set).
        check: Raise ToolExecutionError on nonzero exit.

    Returns:
        The completed process.

    Raises:
        ToolExecutionError: If the command fails to start, or exits nonzero
            while check is True.
    """
    cmd_list = [str(c) for c in cmd]
    cmd_str = shlex.join(cmd_list)
    logger.debug("Executing: %s (cwd=%s)", cmd_str, cwd)

    started_at = datetime.now(timezone.utc)

    try:
        with ExitStack() as stack:
            stdin = (
                stack.enter_context(stdin_path.open("rb")) if stdin_path else None
            )
            if log_path is not None:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                log_file = stack.enter_context(log_path.open("a"))
                log_file.write(f"# Command: {cmd_str}\n")
                log_file.write(f"# Started: {started_at.isoformat()}\n")
                log_file.write(f"# CWD: {cwd}\n")
                log_file.write("# " + "=" * 70 + "\n\n")
                log_file.flush()
                result = subprocess.run(
                    cmd_list,
                    cwd=cwd,
                    stdin=stdin,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    env=_prepare_env(env_override),
                    check=False,
                )
                log_file.write(f"\n# Exit code: {result.returncode}\n\n")
            else:
                result = subprocess.run(
                    cmd_list,
                    cwd=cwd,
                    stdin=stdin,
                    capture_output=capture,
                    text=True,
                    env=_prepare_env(env_override),
                    check=False,
                )
    except OSError as e:
        raise ToolExecutionError(
            f"Failed to execute {cmd_list[0]}: {e}",
            code="execution_error",
        ) from e

    if check and result.returncode != 0:
        message = f"{cmd_list[0]} exited with code {result.returncode}: {cmd_str}"
        if log_path is not None:
            message += f". See log: {log_path}"
        elif capture and result.stderr:
            message += f": {result.stderr.strip()}"
        raise ToolExecutionError(
            message,
            exit_code=result.returncode,
            log_path=log_path,
        )

    return result


__all__ = ["run_tool"]
