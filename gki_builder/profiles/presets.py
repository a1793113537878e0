"""Built-in build profiles."""

from gki_builder.profiles.schema import BuildConfig, BuildProfile

ONEPLUS_ACE5 = BuildProfile(
    profile_id="oneplus_ace5",
    name="OnePlus Ace 5 (SM8650)",
    description="SukiSU + SUSFS GKI kernel with KPM and LZ4KD",
    tags=["oneplus", "sm8650", "android14-6.1"],
    build=BuildConfig(
        device_name="oneplus_ace5",
        repo_manifest="oneplus_ace5.xml",
        kernel_suffix="-android14-@hipuu",
        enable_kpm=True,
        enable_lz4kd=True,
    ),
)

BUILTIN_PROFILES: dict[str, BuildProfile] = {
    ONEPLUS_ACE5.profile_id: ONEPLUS_ACE5,
}

DEFAULT_PROFILE_ID = ONEPLUS_ACE5.profile_id


def get_builtin_profile(profile_id: str) -> BuildProfile | None:
    """Return a built-in profile by ID, or None."""
    return BUILTIN_PROFILES.get(profile_id)


__all__ = [
    "BUILTIN_PROFILES",
    "DEFAULT_PROFILE_ID",
    "ONEPLUS_ACE5",
    "get_builtin_profile",
]
