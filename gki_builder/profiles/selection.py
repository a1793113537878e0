"""Selection of the BuildConfig for a run.

A run's configuration comes from one of three sources, layered in this order
(later wins):

1. a profile (built-in preset or YAML/JSON file),
2. GKI_BUILD_* environment variables (CI runs),
3. explicit CLI flags,

followed by optional interactive prompts for the fields the CLI did not set.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from gki_builder.profiles.io import load_profile
from gki_builder.profiles.presets import DEFAULT_PROFILE_ID, get_builtin_profile
from gki_builder.profiles.schema import BuildConfig, BuildProfile

logger = logging.getLogger(__name__)

PromptFn = Callable[[str, str], str]
ConfirmFn = Callable[[str, bool], bool]


class ProfileNotFoundError(Exception):
    """Raised when a profile reference matches no preset or file."""

    def __init__(self, reference: str, code: str = "profile_not_found") -> None:
        super().__init__(f"Profile not found: {reference}")
        self.reference = reference
        self.code = code


class BuildOverrides(BaseSettings):
    """BuildConfig fields overridable from GKI_BUILD_* variables (environment or .env)."""

    model_config = SettingsConfigDict(
        env_prefix="GKI_BUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    device_name: str | None = None
    repo_manifest: str | None = None
    kernel_suffix: str | None = None
    enable_kpm: bool | None = None
    enable_lz4kd: bool | None = None
    manifest_url: str | None = None
    manifest_branch: str | None = None
    package_tag: str | None = None
    ksu_version_label: str | None = None

    def as_updates(self) -> dict[str, Any]:
        """Return only the fields that were set."""
        return self.model_dump(exclude_none=True)


def resolve_profile(reference: str | None) -> BuildProfile:
    """Resolve a profile reference to a BuildProfile.

    Args:
        reference: Built-in profile ID, or path to a YAML/JSON file.
            None selects the default built-in profile.

    Returns:
        The resolved profile.

    Raises:
        ProfileNotFoundError: If nothing matches the reference.
    """
    ref = reference or DEFAULT_PROFILE_ID
    builtin = get_builtin_profile(ref)
    if builtin is not None:
        return builtin

    path = Path(ref)
    if path.is_file():
        return load_profile(path)

    raise ProfileNotFoundError(ref)


def _prompt_fields(
    config: BuildConfig,
    locked: set[str],
    prompt: PromptFn,
    confirm: ConfirmFn,
) -> dict[str, Any]:
    updates: dict[str, Any] = {}

    if "kernel_suffix" not in locked:
        answer = prompt(
            "Kernel name suffix (press Enter for default)", config.kernel_suffix
        ).strip()
        if answer:
            updates["kernel_suffix"] = answer

    if "enable_kpm" not in locked:
        updates["enable_kpm"] = confirm("Enable KPM?", config.enable_kpm)

    if "enable_lz4kd" not in locked:
        updates["enable_lz4kd"] = confirm("Enable LZ4KD?", config.enable_lz4kd)

    return updates


def select_build_config(
    profile: BuildProfile,
    cli_overrides: dict[str, Any] | None = None,
    env_overrides: BuildOverrides | None = None,
    prompt: PromptFn | None = None,
    confirm: ConfirmFn | None = None,
) -> BuildConfig:
    """Produce the final BuildConfig for a run.

    Args:
        profile: Base profile.
        cli_overrides: Fields set explicitly on the command line (None values
            are ignored).
        env_overrides: Environment overrides; loaded from the environment
            if not provided.
        prompt: Text prompt for interactive mode (prompt, default) -> answer.
        confirm: Yes/no prompt for interactive mode (question, default) -> bool.

    Returns:
        A validated, immutable BuildConfig.

    Raises:
        pydantic.ValidationError: If the merged values are invalid.
    """
    if env_overrides is None:
        env_overrides = BuildOverrides()

    data = profile.build.model_dump()
    data.update(env_overrides.as_updates())

    cli_updates = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    data.update(cli_updates)

    config = BuildConfig.model_validate(data)

    if prompt is not None and confirm is not None:
        updates = _prompt_fields(config, set(cli_updates), prompt, confirm)
        if updates:
            config = BuildConfig.model_validate({**config.model_dump(), **updates})

    logger.debug("Selected build configuration: %s", config.model_dump())
    return config


__all__ = [
    "BuildOverrides",
    "ProfileNotFoundError",
    "resolve_profile",
    "select_build_config",
]
