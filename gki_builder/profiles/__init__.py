"""Build profile management.

This module handles:
- The immutable BuildConfig threaded through the pipeline
- Built-in and file-backed profiles (YAML/JSON)
- Layered selection of the configuration for a run
"""

from gki_builder.profiles.io import (
    load_profile,
    load_profiles_from_directory,
    profile_to_json_string,
    profile_to_yaml_string,
)
from gki_builder.profiles.presets import BUILTIN_PROFILES, DEFAULT_PROFILE_ID
from gki_builder.profiles.schema import BuildConfig, BuildProfile
from gki_builder.profiles.selection import (
    BuildOverrides,
    ProfileNotFoundError,
    resolve_profile,
    select_build_config,
)

__all__ = [
    "BUILTIN_PROFILES",
    "DEFAULT_PROFILE_ID",
    "BuildConfig",
    "BuildOverrides",
    "BuildProfile",
    "ProfileNotFoundError",
    "load_profile",
    "load_profiles_from_directory",
    "profile_to_json_string",
    "profile_to_yaml_string",
    "resolve_profile",
    "select_build_config",
]
