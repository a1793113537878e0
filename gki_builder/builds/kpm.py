"""KPM binary post-patch of the built kernel image.

The patcher is a closed-source binary that reads `Image` from its working
directory and writes the patched kernel to `oImage`.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from gki_builder.errors import GkiBuildError, ToolExecutionError
from gki_builder.fetch import download_file
from gki_builder.process import run_tool

logger = logging.getLogger(__name__)

PATCHER_NAME = "patch_linux"
PATCHED_IMAGE_NAME = "oImage"


def apply_kpm_patch(
    client: httpx.Client,
    boot_dir: Path,
    patcher_url: str,
    expected_sha256: str | None = None,
    log_path: Path | None = None,
) -> Path:
    """Patch `Image` in place with the KPM patcher.

    Args:
        client: HTTPX client instance.
        boot_dir: Directory holding the built Image.
        patcher_url: Download URL of the patcher.
        expected_sha256: Optional checksum of the patcher.
        log_path: Log file for the patcher output.

    Returns:
        Path of the patched Image.

    Raises:
        DownloadError: If the patcher cannot be downloaded or verified.
        ToolExecutionError: If the patcher fails or produces no output.
        GkiBuildError: If Image is missing or cannot be replaced.
    """
    image = boot_dir / "Image"
    if not image.is_file():
        raise GkiBuildError(f"Kernel image not found: {image}", code="image_missing")

    logger.info("Applying KPM patch...")
    patcher = boot_dir / PATCHER_NAME
    download_file(
        client,
        patcher_url,
        patcher,
        expected_checksum=expected_sha256,
        executable=True,
    )

    run_tool([f"./{PATCHER_NAME}"], cwd=boot_dir, log_path=log_path)

    patched = boot_dir / PATCHED_IMAGE_NAME
    if not patched.is_file():
        raise ToolExecutionError(
            f"{PATCHER_NAME} did not produce {patched}",
            log_path=log_path,
            code="patched_image_missing",
        )

    try:
        image.unlink()
        patched.rename(image)
    except OSError as e:
        raise GkiBuildError(
            f"Failed to replace Image: {e}", code="image_replace_failed"
        ) from e

    logger.info("KPM patch applied to %s", image)
    return image


__all__ = ["PATCHED_IMAGE_NAME", "PATCHER_NAME", "apply_kpm_patch"]
