"""HTTP retrieval of the helper tools the build depends on.

The repo launcher, the SukiSU setup script and the KPM patcher are all
single files fetched over HTTPS. Each is written to a `.part` sibling first
and moved into place only once the body is complete (and, when a digest is
configured, verified), so a half-downloaded binary is never executed.
"""

from __future__ import annotations

import hashlib
import logging
import stat
from dataclasses import dataclass
from pathlib import Path

import httpx

from gki_builder.errors import DownloadError

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 600
DOWNLOAD_CHUNK_SIZE = 1 << 16

PARTIAL_SUFFIX = ".part"


@dataclass
class DownloadResult:
    """A file that was fetched and moved into place."""

    path: Path
    checksum: str
    size_bytes: int


def compute_file_sha256(file_path: Path, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> str:
    """Return the hex SHA-256 of a file on disk."""
    digest = hashlib.sha256()
    with file_path.open("rb") as handle:
        for block in iter(lambda: handle.read(chunk_size), b""):
            digest.update(block)
    return digest.hexdigest()


def create_client(timeout: float = DOWNLOAD_TIMEOUT) -> httpx.Client:
    """Create an HTTPX client that follows redirects (GitHub release assets)."""
    return httpx.Client(follow_redirects=True, timeout=timeout)


def make_executable(path: Path) -> None:
    """chmod a+x."""
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _partial_path(dest_path: Path) -> Path:
    return dest_path.with_name(dest_path.name + PARTIAL_SUFFIX)


def _fetch_to(
    client: httpx.Client,
    url: str,
    target: Path,
    timeout: float,
    chunk_size: int,
) -> tuple[str, int]:
    """Stream url into target; return (sha256, size)."""
    digest = hashlib.sha256()
    size = 0
    try:
        with client.stream("GET", url, timeout=timeout) as response:
            response.raise_for_status()
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("wb") as out:
                for block in response.iter_bytes(chunk_size):
                    out.write(block)
                    digest.update(block)
                    size += len(block)
    except httpx.HTTPStatusError as e:
        status = e.response
        raise DownloadError(
            f"{url} returned {status.status_code} {status.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(f"Timed out fetching {url}", code="timeout") from e
    except httpx.RequestError as e:
        raise DownloadError(f"Could not reach {url}: {e}", code="network_error") from e
    except OSError as e:
        raise DownloadError(f"Cannot write {target}: {e}", code="os_error") from e
    return digest.hexdigest(), size


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    expected_checksum: str | None = None,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    executable: bool = False,
) -> DownloadResult:
    """Fetch url to dest_path.

    Args:
        client: HTTPX client instance.
        url: Source URL.
        dest_path: Final location; any existing file is replaced.
        expected_checksum: SHA-256 hex digest to enforce, if any
            (compared case-insensitively).
        timeout: Per-request timeout in seconds.
        chunk_size: Streaming block size.
        executable: chmod a+x the file once it is in place.

    Returns:
        DownloadResult for the file at dest_path.

    Raises:
        DownloadError: On HTTP, network or filesystem failure, or when the
            digest does not match. Nothing is left at dest_path in that case.
    """
    logger.info("Fetching %s", url)
    partial = _partial_path(dest_path)

    try:
        checksum, size = _fetch_to(client, url, partial, timeout, chunk_size)
    except DownloadError:
        partial.unlink(missing_ok=True)
        raise

    if expected_checksum and checksum != expected_checksum.lower():
        partial.unlink(missing_ok=True)
        raise DownloadError(
            f"Checksum mismatch for {url}: expected {expected_checksum.lower()}, "
            f"got {checksum}",
            code="checksum_mismatch",
        )

    try:
        partial.replace(dest_path)
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise DownloadError(f"Cannot move {partial} into place: {e}", code="os_error") from e

    if executable:
        make_executable(dest_path)

    logger.info("Saved %s (%d bytes, sha256 %s)", dest_path, size, checksum[:12])
    return DownloadResult(path=dest_path, checksum=checksum, size_bytes=size)


__all__ = [
    "DOWNLOAD_CHUNK_SIZE",
    "DOWNLOAD_TIMEOUT",
    "DownloadResult",
    "compute_file_sha256",
    "create_client",
    "download_file",
    "make_executable",
]
