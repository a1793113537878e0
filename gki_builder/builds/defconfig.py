"""Defconfig injection.

The fixed block is appended as-is; there is no merge with existing keys.
When a key appears twice the build tool's own parsing decides (the later
line wins in Kconfig).
"""

from __future__ import annotations

import logging
from pathlib import Path

from gki_builder.errors import GkiBuildError
from gki_builder.profiles.schema import BuildConfig

logger = logging.getLogger(__name__)

DEFCONFIG_RELATIVE = Path("arch/arm64/configs/gki_defconfig")
BUILD_CONFIG_RELATIVE = Path("build.config.gki")
DEFCONFIG_CHECK_TOKEN = "check_defconfig"

BASE_CONFIG_LINES: tuple[str, ...] = (
    "CONFIG_KSU=y",
    "CONFIG_KSU_SUSFS_SUS_SU=n",
    "CONFIG_KSU_MANUAL_HOOK=y",
    "CONFIG_KSU_SUSFS=y",
    "CONFIG_KSU_SUSFS_HAS_MAGIC_MOUNT=y",
    "CONFIG_KSU_SUSFS_SUS_PATH=y",
    "CONFIG_KSU_SUSFS_SUS_MOUNT=y",
    "CONFIG_KSU_SUSFS_AUTO_ADD_SUS_KSU_DEFAULT_MOUNT=y",
    "CONFIG_KSU_SUSFS_AUTO_ADD_SUS_BIND_MOUNT=y",
    "CONFIG_KSU_SUSFS_SUS_KSTAT=y",
    "CONFIG_KSU_SUSFS_SUS_OVERLAYFS=n",
    "CONFIG_KSU_SUSFS_TRY_UMOUNT=y",
    "CONFIG_KSU_SUSFS_AUTO_ADD_TRY_UMOUNT_FOR_BIND_MOUNT=y",
    "CONFIG_KSU_SUSFS_SPOOF_UNAME=y",
    "CONFIG_KSU_SUSFS_ENABLE_LOG=y",
    "CONFIG_KSU_SUSFS_HIDE_KSU_SUSFS_SYMBOLS=y",
    "CONFIG_KSU_SUSFS_SPOOF_CMDLINE_OR_BOOTCONFIG=y",
    "CONFIG_KSU_SUSFS_OPEN_REDIRECT=y",
    "CONFIG_TCP_CONG_ADVANCED=y",
    "CONFIG_TCP_CONG_BBR=y",
    "CONFIG_NET_SCH_FQ=y",
    "CONFIG_TCP_CONG_BIC=n",
    "CONFIG_TCP_CONG_WESTWOOD=n",
    "CONFIG_TCP_CONG_HTCP=n",
)

# Extra lines appended only when the feature is enabled
FEATURE_CONFIG_LINES: dict[str, tuple[str, ...]] = {
    "kpm": ("CONFIG_KPM=y",),
}


def render_defconfig_lines(config: BuildConfig) -> list[str]:
    """Return the config lines to append, in order."""
    lines = list(BASE_CONFIG_LINES)
    for feature, feature_lines in FEATURE_CONFIG_LINES.items():
        if feature in config.features:
            lines.extend(feature_lines)
    return lines


def render_defconfig_block(config: BuildConfig) -> str:
    """Return the block appended to gki_defconfig."""
    return "\n".join(render_defconfig_lines(config)) + "\n"


def inject_defconfig(common: Path, config: BuildConfig) -> Path:
    """Append the configuration block to gki_defconfig.

    Args:
        common: Kernel tree root.
        config: Build configuration.

    Returns:
        Path of the defconfig.

    Raises:
        GkiBuildError: If the defconfig does not exist.
    """
    defconfig = common / DEFCONFIG_RELATIVE
    if not defconfig.is_file():
        raise GkiBuildError(f"Defconfig not found: {defconfig}", code="file_not_found")

    logger.info("Adding SUSFS config to %s", defconfig)
    existing = defconfig.read_text(encoding="utf-8")
    block = render_defconfig_block(config)
    # Keep the first appended key on its own line
    if existing and not existing.endswith("\n"):
        block = "\n" + block
    with defconfig.open("a", encoding="utf-8") as f:
        f.write(block)
    return defconfig


def disable_defconfig_check(common: Path) -> bool:
    """Remove the check_defconfig step from build.config.gki.

    Returns:
        True if the token was found and removed.

    Raises:
        GkiBuildError: If build.config.gki does not exist.
    """
    build_config = common / BUILD_CONFIG_RELATIVE
    if not build_config.is_file():
        raise GkiBuildError(
            f"Build config not found: {build_config}", code="file_not_found"
        )

    text = build_config.read_text(encoding="utf-8")
    if DEFCONFIG_CHECK_TOKEN not in text:
        logger.warning(
            "%s not present in %s; defconfig check already disabled?",
            DEFCONFIG_CHECK_TOKEN,
            build_config,
        )
        return False

    build_config.write_text(text.replace(DEFCONFIG_CHECK_TOKEN, ""), encoding="utf-8")
    return True


__all__ = [
    "BASE_CONFIG_LINES",
    "FEATURE_CONFIG_LINES",
    "disable_defconfig_check",
    "inject_defconfig",
    "render_defconfig_block",
    "render_defconfig_lines",
]
