"""Host and tooling settings.

Values come from GKI_BUILD_* environment variables (or a .env file) on top
of the defaults below; the CLI may replace a few of them per run.

Per-build parameters (device, manifest, suffix, feature flags) are not
here; they live in BuildConfig, see gki_builder.profiles.schema.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gki_builder.types import CleanupPolicy

DEFAULT_PACKAGES = [
    "python3",
    "git",
    "curl",
    "ccache",
    "flex",
    "bison",
    "libssl-dev",
    "libelf-dev",
    "bc",
    "zip",
]


def _default_workspace_root() -> Path:
    """Return the default workspace root (CI workspace or home)."""
    github_workspace = os.environ.get("GITHUB_WORKSPACE")
    if github_workspace:
        return Path(github_workspace)
    return Path.home()


def _default_jobs() -> int:
    """Return the default make parallelism (all CPUs)."""
    return os.cpu_count() or 1


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the GKI_BUILD_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="GKI_BUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    workspace_root: Path = Field(
        default_factory=_default_workspace_root,
        description="Root under which per-device workspaces are created",
    )
    output_dir: Path | None = Field(
        default=None,
        description="Directory for final artifacts (default: <workspace_root>/output)",
    )
    ccache_root: Path = Field(
        default_factory=Path.home,
        description="Parent directory of the per-device ccache directories",
    )
    repo_install_path: Path = Field(
        default=Path("/usr/local/bin/repo"),
        description="Where to install the repo launcher when missing",
    )

    # Host preparation
    install_dependencies: bool = Field(
        default=True,
        description="Check and install missing system packages",
    )
    packages: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PACKAGES),
        description="System packages required on the build host",
    )
    use_sudo: bool = Field(
        default=False,
        description="Prefix package installation with sudo",
    )
    git_user_name: str = Field(default="Builder")
    git_user_email: str = Field(default="builder@example.com")

    # Build
    jobs: int = Field(
        default_factory=_default_jobs,
        ge=1,
        description="Parallel jobs for repo sync and make",
    )
    ccache_max_size: str = Field(default="8G", description="ccache size limit")
    cleanup: CleanupPolicy = Field(
        default=CleanupPolicy.KEEP,
        description="Workspace cleanup policy after a successful build",
    )

    # External resources
    repo_tool_url: str = Field(
        default="https://storage.googleapis.com/git-repo-downloads/repo"
    )
    kernelsu_setup_url: str = Field(
        default="https://raw.githubusercontent.com/SukiSU-Ultra/SukiSU-Ultra/main/kernel/setup.sh"
    )
    kernelsu_setup_arg: str = Field(default="susfs-main")
    kpm_patcher_url: str = Field(
        default="https://github.com/SukiSU-Ultra/SukiSU_KernelPatch_patch/releases/download/0.12.0/patch_linux"
    )
    kpm_patcher_sha256: str | None = Field(
        default=None,
        description="Expected SHA-256 of the KPM patcher (not verified if unset)",
    )
    anykernel_url: str = Field(default="https://github.com/thaihong339/AnyKernel3.git")

    # Operational
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    download_timeout: int = Field(
        default=600,
        ge=10,
        description="Timeout for HTTP downloads (seconds)",
    )

    def resolved_output_dir(self) -> Path:
        """Return the effective output directory."""
        if self.output_dir is not None:
            return self.output_dir
        return self.workspace_root / "output"


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["DEFAULT_PACKAGES", "Settings", "get_settings", "print_settings_json"]
