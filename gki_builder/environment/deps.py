"""Host dependency preparation.

This module handles:
- Checking system packages with dpkg and installing missing ones with apt-get
- Configuring a global git identity when none is set
- Installing the repo launcher when it is not on PATH
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

import httpx

from gki_builder.errors import EnvironmentSetupError, GkiBuildError
from gki_builder.fetch import download_file
from gki_builder.process import run_tool

logger = logging.getLogger(__name__)


def is_package_installed(package: str) -> bool:
    """Return True if dpkg reports the package as installed."""
    result = run_tool(["dpkg", "-s", package], capture=True, check=False)
    return result.returncode == 0


def find_missing_packages(packages: list[str]) -> list[str]:
    """Return the packages that are not installed, in input order."""
    return [pkg for pkg in packages if not is_package_installed(pkg)]


def install_packages(packages: list[str], use_sudo: bool = False) -> None:
    """Install packages with apt-get.

    Args:
        packages: Packages to install.
        use_sudo: Prefix commands with sudo.

    Raises:
        EnvironmentSetupError: If apt-get fails.
    """
    if not packages:
        return

    prefix = ["sudo"] if use_sudo else []
    logger.info("Missing dependencies: %s, installing...", " ".join(packages))

    try:
        run_tool([*prefix, "apt-get", "update"])
        run_tool([*prefix, "apt-get", "install", "-y", *packages])
    except GkiBuildError as e:
        raise EnvironmentSetupError(
            f"Dependency installation failed: {e}",
            code="dependency_install_failed",
        ) from e


def ensure_packages(packages: list[str], use_sudo: bool = False) -> list[str]:
    """Install any missing packages.

    Returns:
        The packages that were installed.
    """
    logger.info("Checking and installing dependencies...")
    missing = find_missing_packages(packages)
    if not missing:
        logger.info("All dependencies are installed, skipping installation.")
        return []
    install_packages(missing, use_sudo=use_sudo)
    return missing


def _git_config_get(key: str) -> str:
    result = run_tool(
        ["git", "config", "--global", key], capture=True, check=False
    )
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def ensure_git_identity(name: str, email: str) -> bool:
    """Configure the global git identity if name or email is missing.

    Returns:
        True if the identity was written.
    """
    logger.info("Checking Git configuration...")
    if _git_config_get("user.name") and _git_config_get("user.email"):
        logger.info("Git is already configured.")
        return False

    logger.info("Git not configured, setting up...")
    run_tool(["git", "config", "--global", "user.name", name])
    run_tool(["git", "config", "--global", "user.email", email])
    return True


def _is_executable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def ensure_repo_tool(
    client: httpx.Client,
    install_path: Path,
    url: str,
    use_sudo: bool = False,
) -> Path:
    """Install the repo launcher if it is not available.

    A launcher already at install_path wins over one found on PATH; only
    when neither exists is it downloaded. With use_sudo the download is
    staged in a temporary directory and moved into place with
    `sudo install`, for destinations such as /usr/local/bin.

    Args:
        client: HTTPX client instance.
        install_path: Destination of the launcher.
        url: Download URL of the launcher.
        use_sudo: Install with sudo.

    Returns:
        Path of the repo executable in use.

    Raises:
        EnvironmentSetupError: If the download or install fails.
    """
    if _is_executable_file(install_path):
        logger.info("Repo tool already installed at %s, skipping", install_path)
        return install_path

    existing = shutil.which("repo")
    if existing:
        logger.info("Repo tool already installed, skipping")
        return Path(existing)

    logger.info("Installing repo tool to %s...", install_path)
    try:
        if use_sudo:
            with tempfile.TemporaryDirectory(prefix="gki-repo-") as staging:
                staged = download_file(
                    client, url, Path(staging) / "repo", executable=True
                ).path
                run_tool(
                    ["sudo", "install", "-D", "-m", "0755", str(staged), str(install_path)]
                )
        else:
            download_file(client, url, install_path, executable=True)
    except GkiBuildError as e:
        raise EnvironmentSetupError(
            f"Failed to install repo: {e}",
            code="repo_install_failed",
        ) from e
    return install_path


__all__ = [
    "ensure_git_identity",
    "ensure_packages",
    "ensure_repo_tool",
    "find_missing_packages",
    "install_packages",
    "is_package_installed",
]
