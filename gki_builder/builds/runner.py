"""Kernel build runner.

This module handles:
- Resolving the prebuilt clang/rust/pahole toolchain inside the source tree
- Composing the `make` configure and compile commands
- Executing both with subprocess, output captured to a log file

Parallelism is delegated to make via -j; this module itself runs one
child process at a time.
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from gki_builder.errors import ToolExecutionError
from gki_builder.process import run_tool

logger = logging.getLogger(__name__)

CLANG_VERSION = "clang-r487747c"
RUST_VERSION = "1.73.0b"

DEFCONFIG_TARGET = "gki_defconfig"
IMAGE_TARGET = "Image"
OUT_DIR = "out"

LTO_FLAGS = (
    "CONFIG_LTO_CLANG=y",
    "CONFIG_LTO_CLANG_THIN=y",
    "CONFIG_LTO_CLANG_FULL=n",
    "CONFIG_LTO_NONE=n",
)

CCACHE_BIN_DIR = "/usr/lib/ccache"


@dataclass(frozen=True)
class Toolchain:
    """Paths of the prebuilt toolchain.

    Attributes:
        clang_bin: Directory containing clang and lld.
        rustc: rustc binary.
        pahole: pahole binary.
    """

    clang_bin: Path
    rustc: Path
    pahole: Path

    @classmethod
    def from_kernel_platform(cls, kernel_platform: Path) -> Toolchain:
        """Locate the toolchain in the synced prebuilts."""
        prebuilts = kernel_platform / "prebuilts"
        return cls(
            clang_bin=prebuilts / "clang" / "host" / "linux-x86" / CLANG_VERSION / "bin",
            rustc=prebuilts / "rust" / "linux-x86" / RUST_VERSION / "bin" / "rustc",
            pahole=prebuilts / "kernel-build-tools" / "linux-x86" / "bin" / "pahole",
        )


@dataclass
class BuildResult:
    """Result of a kernel build.

    Attributes:
        image_path: The built kernel image.
        log_path: Path to the build log file.
        started_at: Build start time.
        finished_at: Build finish time.
        commands: The commands that were executed.
    """

    image_path: Path
    log_path: Path
    started_at: datetime
    finished_at: datetime
    commands: list[str]


def compose_make_flags(toolchain: Toolchain) -> list[str]:
    """Return the flags shared by the configure and compile steps."""
    return [
        "LLVM=1",
        "ARCH=arm64",
        "CROSS_COMPILE=aarch64-linux-gnu-",
        "CC=clang",
        f"RUSTC={toolchain.rustc}",
        f"PAHOLE={toolchain.pahole}",
        "LD=ld.lld",
        "HOSTLD=ld.lld",
        f"O={OUT_DIR}",
        "KCFLAGS+=-O2",
    ]


def compose_configure_command(toolchain: Toolchain) -> list[str]:
    """Compose the `make gki_defconfig` command."""
    return ["make", *compose_make_flags(toolchain), *LTO_FLAGS, DEFCONFIG_TARGET]


def compose_compile_command(toolchain: Toolchain, jobs: int) -> list[str]:
    """Compose the `make Image` command."""
    return ["make", f"-j{jobs}", *compose_make_flags(toolchain), IMAGE_TARGET]


def build_environment(
    toolchain: Toolchain,
    extra: dict[str, str] | None = None,
    base_path: str | None = None,
) -> dict[str, str]:
    """Return environment overrides for make.

    PATH gets the clang bin directory and the ccache wrapper directory
    prepended, in that order.
    """
    if base_path is None:
        base_path = os.environ.get("PATH", "")
    env = {
        "PATH": os.pathsep.join(
            p for p in (str(toolchain.clang_bin), CCACHE_BIN_DIR, base_path) if p
        ),
    }
    if extra:
        env.update(extra)
    return env


def validate_kernel_tree(common: Path) -> bool:
    """Check that a directory looks like a GKI kernel tree."""
    if not common.is_dir():
        return False
    if not (common / "Makefile").is_file():
        return False
    return (common / "arch" / "arm64" / "configs").is_dir()


def run_build(
    common: Path,
    toolchain: Toolchain,
    jobs: int,
    log_path: Path,
    env_extra: dict[str, str] | None = None,
) -> BuildResult:
    """Configure and compile the kernel.

    Args:
        common: Kernel tree root.
        toolchain: Prebuilt toolchain.
        jobs: Parallel make jobs.
        log_path: Log file for both make invocations.
        env_extra: Additional environment (ccache variables).

    Returns:
        BuildResult describing the run.

    Raises:
        ToolExecutionError: If the tree is invalid, make fails, or no image
            is produced.
    """
    if not validate_kernel_tree(common):
        raise ToolExecutionError(
            f"Invalid kernel tree: {common}",
            code="invalid_kernel_tree",
        )

    env = build_environment(toolchain, env_extra)
    configure_cmd = compose_configure_command(toolchain)
    compile_cmd = compose_compile_command(toolchain, jobs)

    logger.info("Starting kernel build...")
    logger.info("Working directory: %s", common)
    logger.info("Build log: %s", log_path)

    started_at = datetime.now(timezone.utc)

    logger.info("Configuring: %s", shlex.join(configure_cmd))
    run_tool(configure_cmd, cwd=common, env_override=env, log_path=log_path)

    logger.info("Compiling: %s", shlex.join(compile_cmd))
    run_tool(compile_cmd, cwd=common, env_override=env, log_path=log_path)

    finished_at = datetime.now(timezone.utc)
    duration = (finished_at - started_at).total_seconds()

    image_path = common / OUT_DIR / "arch" / "arm64" / "boot" / IMAGE_TARGET
    if not image_path.is_file():
        raise ToolExecutionError(
            f"Build finished but no image at {image_path}",
            log_path=log_path,
            code="image_missing",
        )

    logger.info("Kernel built in %.1fs: %s", duration, image_path)

    return BuildResult(
        image_path=image_path,
        log_path=log_path,
        started_at=started_at,
        finished_at=finished_at,
        commands=[shlex.join(configure_cmd), shlex.join(compile_cmd)],
    )


__all__ = [
    "BuildResult",
    "LTO_FLAGS",
    "Toolchain",
    "build_environment",
    "compose_compile_command",
    "compose_configure_command",
    "compose_make_flags",
    "run_build",
    "validate_kernel_tree",
]
