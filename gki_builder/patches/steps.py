"""Declarative patch plan.

The plan is a fixed, ordered tuple of PatchStep records. Later patches
assume the tree state left by earlier ones (the hide patch is applied with
fuzz after the SUSFS patch), so the order must never change between runs.
Steps gated on a disabled feature are left out of the plan.

All paths are relative to the kernel workspace (the repo sync root).
"""

from __future__ import annotations

from dataclasses import dataclass

from gki_builder.profiles.schema import BuildConfig
from gki_builder.types import ApplyMode, PatchTool, StepAction

SUSFS_REPO = "susfs4ksu"
PATCHES_REPO = "kernel_patches"
COMMON = "kernel_platform/common"

SUSFS_PATCH = "50_add_susfs_in_gki-android14-6.1.patch"
SYSCALL_HOOKS_PATCH = "syscall_hooks.patch"
HIDE_PATCH = "69_hide_stuff.patch"
LZ4_PATCH = "001-lz4.patch"
ZSTD_PATCH = "002-zstd.patch"
LZ4_ASM = "lz4armv8.S"


@dataclass(frozen=True)
class PatchStep:
    """A single copy or apply step.

    Attributes:
        name: Short unique step name.
        action: Copy files into the tree, or apply a patch to it.
        source: Copy: file or glob to copy. Apply: patch file.
        destination: Copy: target directory. Apply: tree to patch.
        mode: Whether a failure aborts the run or only warns.
        tool: Patch tool for apply steps.
        strip: Leading path components to strip (-p).
        fuzz: Context fuzz factor for `patch -F`, if any.
        feature: Optional feature flag gating this step.
    """

    name: str
    action: StepAction
    source: str
    destination: str
    mode: ApplyMode = ApplyMode.FATAL
    tool: PatchTool = PatchTool.PATCH
    strip: int = 1
    fuzz: int | None = None
    feature: str | None = None

    def patch_command(self) -> list[str]:
        """Return the tool command for an apply step (patch read from stdin)."""
        if self.action is not StepAction.APPLY:
            raise ValueError(f"Step '{self.name}' is not an apply step")
        if self.tool is PatchTool.GIT_APPLY:
            return ["git", "apply", f"-p{self.strip}"]
        cmd = ["patch", f"-p{self.strip}"]
        if self.fuzz is not None:
            cmd.extend(["-F", str(self.fuzz)])
        return cmd


def _copy(name: str, source: str, destination: str, feature: str | None = None) -> PatchStep:
    return PatchStep(
        name=name,
        action=StepAction.COPY,
        source=source,
        destination=destination,
        feature=feature,
    )


def _apply(
    name: str,
    patch_file: str,
    mode: ApplyMode,
    tool: PatchTool = PatchTool.PATCH,
    fuzz: int | None = None,
    feature: str | None = None,
) -> PatchStep:
    return PatchStep(
        name=name,
        action=StepAction.APPLY,
        source=f"{COMMON}/{patch_file}",
        destination=COMMON,
        mode=mode,
        tool=tool,
        fuzz=fuzz,
        feature=feature,
    )


FULL_PATCH_PLAN: tuple[PatchStep, ...] = (
    _copy("copy-susfs-patch", f"{SUSFS_REPO}/kernel_patches/{SUSFS_PATCH}", COMMON),
    _copy(
        "copy-syscall-hooks-patch",
        f"{PATCHES_REPO}/next/{SYSCALL_HOOKS_PATCH}",
        COMMON,
    ),
    _copy("copy-susfs-fs", f"{SUSFS_REPO}/kernel_patches/fs/*", f"{COMMON}/fs"),
    _copy(
        "copy-susfs-include",
        f"{SUSFS_REPO}/kernel_patches/include/linux/*",
        f"{COMMON}/include/linux",
    ),
    _copy("copy-lz4-patch", f"{PATCHES_REPO}/{LZ4_PATCH}", COMMON, feature="lz4kd"),
    _copy("copy-lz4-asm", f"{PATCHES_REPO}/{LZ4_ASM}", f"{COMMON}/lib", feature="lz4kd"),
    _copy("copy-zstd-patch", f"{PATCHES_REPO}/{ZSTD_PATCH}", COMMON, feature="lz4kd"),
    _apply("apply-susfs", SUSFS_PATCH, ApplyMode.BEST_EFFORT),
    _copy("copy-hide-patch", f"{PATCHES_REPO}/{HIDE_PATCH}", COMMON),
    _apply("apply-hide", HIDE_PATCH, ApplyMode.FATAL, fuzz=3),
    _apply("apply-syscall-hooks", SYSCALL_HOOKS_PATCH, ApplyMode.FATAL, fuzz=3),
    _apply(
        "apply-lz4",
        LZ4_PATCH,
        ApplyMode.BEST_EFFORT,
        tool=PatchTool.GIT_APPLY,
        feature="lz4kd",
    ),
    _apply("apply-zstd", ZSTD_PATCH, ApplyMode.BEST_EFFORT, feature="lz4kd"),
)


def build_patch_plan(config: BuildConfig) -> tuple[PatchStep, ...]:
    """Return the ordered steps for a configuration.

    Args:
        config: Build configuration; its enabled features select the
            feature-gated steps.

    Returns:
        The plan in execution order.
    """
    enabled = config.features
    return tuple(
        step
        for step in FULL_PATCH_PLAN
        if step.feature is None or step.feature in enabled
    )


__all__ = [
    "FULL_PATCH_PLAN",
    "PatchStep",
    "build_patch_plan",
]
