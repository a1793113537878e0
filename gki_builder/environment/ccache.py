"""Per-device ccache setup.

The cache directory is reused across runs for the same device. A sentinel
file marks it as initialized; there is no locking, so concurrent runs
against the same device are unsupported.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from gki_builder.errors import EnvironmentSetupError
from gki_builder.process import run_tool

logger = logging.getLogger(__name__)

SENTINEL_NAME = ".ccache_initialized"


def ccache_dir_for(ccache_root: Path, device_name: str) -> Path:
    """Return the ccache directory for a device."""
    return ccache_root / f".ccache_{device_name}"


def ccache_environment(cache_dir: Path, max_size: str) -> dict[str, str]:
    """Return the CCACHE_* variables for the build subprocess."""
    return {
        "CCACHE_COMPILERCHECK": "%compiler% -dumpmachine; %compiler% -dumpversion",
        "CCACHE_NOHASHDIR": "true",
        "CCACHE_HARDLINK": "true",
        "CCACHE_DIR": str(cache_dir),
        "CCACHE_MAXSIZE": max_size,
    }


def ensure_ccache(cache_dir: Path, max_size: str) -> bool:
    """Initialize the ccache directory once.

    Args:
        cache_dir: Device cache directory.
        max_size: Size limit passed to `ccache -M`.

    Returns:
        True if initialization ran in this call.

    Raises:
        EnvironmentSetupError: If the cache directory cannot be created.
    """
    if shutil.which("ccache") is None:
        logger.info("ccache not installed, skipping initialization")
        return False

    sentinel = cache_dir / SENTINEL_NAME
    if sentinel.is_file():
        logger.info("ccache (%s) already initialized, skipping...", cache_dir)
        return False

    logger.info("Initializing ccache in %s for the first time...", cache_dir)
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise EnvironmentSetupError(
            f"Failed to create ccache directory {cache_dir}: {e}",
            code="ccache_error",
        ) from e

    run_tool(
        ["ccache", "-M", max_size],
        env_override=ccache_environment(cache_dir, max_size),
        capture=True,
    )
    sentinel.touch()
    return True


__all__ = [
    "SENTINEL_NAME",
    "ccache_dir_for",
    "ccache_environment",
    "ensure_ccache",
]
