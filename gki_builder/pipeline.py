"""Build pipeline.

The pipeline is a forward-only sequence of stages. Each stage is a plain
function taking the BuildContext; there is no re-entry and no rollback.
A GkiBuildError from any stage aborts the run: the failing stage is recorded
and the error propagates to the caller.

Stage order:
    environment -> sync -> kernelsu -> version_strings -> patches
    -> defconfig -> build -> post_patch -> package
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from gki_builder.builds.defconfig import disable_defconfig_check, inject_defconfig
from gki_builder.builds.kpm import apply_kpm_patch
from gki_builder.builds.package import archive_name, package_kernel
from gki_builder.builds.runner import Toolchain, run_build
from gki_builder.config import Settings
from gki_builder.environment.ccache import (
    ccache_dir_for,
    ccache_environment,
    ensure_ccache,
)
from gki_builder.environment.deps import (
    ensure_git_identity,
    ensure_packages,
    ensure_repo_tool,
)
from gki_builder.environment.workspace import Workspace
from gki_builder.errors import GkiBuildError
from gki_builder.fetch import create_client
from gki_builder.patches.companions import clone_companions
from gki_builder.patches.executor import execute_plan
from gki_builder.patches.steps import build_patch_plan
from gki_builder.profiles.schema import BuildConfig
from gki_builder.source.kernelsu import (
    compute_version,
    inject_version_name,
    run_setup_script,
    set_makefile_version,
)
from gki_builder.source.localversion import mutate_version_scripts
from gki_builder.source.sync import (
    REPO_COMMAND,
    remove_abi_protected_exports,
    sync_source,
)
from gki_builder.types import (
    BuildOutcome,
    CleanupPolicy,
    Stage,
    StageResult,
    StageStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class BuildContext:
    """Explicit state threaded through the stages.

    Attributes:
        config: Immutable build configuration.
        settings: Host/tooling settings.
        workspace: Directory layout.
        client: HTTP client for downloads.
        version: Build version, set by the kernelsu stage.
        image_path: Built image, set by the build stage.
        package_path: Published archive, set by the package stage.
        manifest_path: Published manifest, set by the package stage.
        warnings: Messages from best-effort steps that failed.
        repo_tool: The repo launcher, set by the environment stage.
    """

    config: BuildConfig
    settings: Settings
    workspace: Workspace
    client: httpx.Client
    version: int | None = None
    image_path: Path | None = None
    package_path: Path | None = None
    manifest_path: Path | None = None
    warnings: list[str] = field(default_factory=list)
    repo_tool: Path | str = REPO_COMMAND

    def require_version(self) -> int:
        if self.version is None:
            raise GkiBuildError("Version has not been computed", code="stage_order")
        return self.version

    @property
    def ccache_dir(self) -> Path:
        return ccache_dir_for(self.settings.ccache_root, self.config.device_name)


StageFn = Callable[[BuildContext], StageResult]


def _done(stage: Stage, message: str = "", **details: object) -> StageResult:
    return StageResult(stage=stage, status=StageStatus.SUCCEEDED, message=message, details=dict(details))


def prepare_environment(ctx: BuildContext) -> StageResult:
    """Create the workspace and prepare host tools."""
    ctx.workspace.ensure()
    installed: list[str] = []
    if ctx.settings.install_dependencies:
        installed = ensure_packages(ctx.settings.packages, use_sudo=ctx.settings.use_sudo)
    ensure_git_identity(ctx.settings.git_user_name, ctx.settings.git_user_email)
    ctx.repo_tool = ensure_repo_tool(
        ctx.client,
        ctx.settings.repo_install_path,
        ctx.settings.repo_tool_url,
        use_sudo=ctx.settings.use_sudo,
    )
    ensure_ccache(ctx.ccache_dir, ctx.settings.ccache_max_size)
    return _done(Stage.ENVIRONMENT, installed=installed)


def synchronize_source(ctx: BuildContext) -> StageResult:
    """Sync the source tree and drop ABI protection lists."""
    sync_source(ctx.config, ctx.workspace, ctx.settings.jobs, repo_tool=ctx.repo_tool)
    removed = remove_abi_protected_exports(ctx.workspace.kernel_platform)
    return _done(Stage.SYNC, removed_exports=len(removed))


def setup_kernelsu(ctx: BuildContext) -> StageResult:
    """Run the SukiSU setup script and compute the version."""
    ws = ctx.workspace
    run_setup_script(
        ctx.client,
        ctx.settings.kernelsu_setup_url,
        ctx.settings.kernelsu_setup_arg,
        ws.kernel_platform,
        log_path=ws.log_path("kernelsu_setup"),
    )
    ctx.version = compute_version(ws.kernelsu)
    set_makefile_version(ws.kernelsu / "kernel" / "Makefile", ctx.version)
    if ctx.config.ksu_version_label:
        inject_version_name(ws.kernelsu, ctx.version, ctx.config.ksu_version_label)
    return _done(Stage.KERNELSU, f"version {ctx.version}", version=ctx.version)


def mutate_version_strings(ctx: BuildContext) -> StageResult:
    """Strip -dirty markers and set the kernel suffix."""
    suffix = ctx.config.render_suffix(ctx.require_version())
    mutate_version_scripts(ctx.workspace.localversion_scripts(), suffix)
    return _done(Stage.VERSION_STRINGS, suffix, suffix=suffix)


def apply_patches(ctx: BuildContext) -> StageResult:
    """Clone companion repositories and execute the patch plan."""
    ws = ctx.workspace
    log_path = ws.log_path("patches")
    ctx.warnings.extend(clone_companions(ws.kernel_workspace, log_path=log_path))

    plan = build_patch_plan(ctx.config)
    outcomes = execute_plan(plan, ws.kernel_workspace, log_path=log_path)
    failed = [o for o in outcomes if not o.success]
    for outcome in failed:
        ctx.warnings.append(f"{outcome.step.name}: {outcome.message}")
    return _done(
        Stage.PATCHES,
        f"{len(outcomes) - len(failed)}/{len(outcomes)} steps succeeded",
        failed_steps=[o.step.name for o in failed],
    )


def inject_configuration(ctx: BuildContext) -> StageResult:
    """Append defconfig lines and disable the defconfig check."""
    common = ctx.workspace.common
    inject_defconfig(common, ctx.config)
    if not disable_defconfig_check(common):
        ctx.warnings.append("check_defconfig was not present in build.config.gki")
    return _done(Stage.DEFCONFIG)


def build_kernel(ctx: BuildContext) -> StageResult:
    """Configure and compile the kernel."""
    ws = ctx.workspace
    result = run_build(
        ws.common,
        Toolchain.from_kernel_platform(ws.kernel_platform),
        ctx.settings.jobs,
        ws.log_path("build"),
        env_extra=ccache_environment(ctx.ccache_dir, ctx.settings.ccache_max_size),
    )
    ctx.image_path = result.image_path
    duration = (result.finished_at - result.started_at).total_seconds()
    return _done(Stage.BUILD, f"{duration:.0f}s", log_path=str(result.log_path))


def post_patch_image(ctx: BuildContext) -> StageResult:
    """Run the KPM patcher when KPM is enabled."""
    if not ctx.config.enable_kpm:
        return StageResult(
            stage=Stage.POST_PATCH, status=StageStatus.SKIPPED, message="KPM disabled"
        )
    ws = ctx.workspace
    ctx.image_path = apply_kpm_patch(
        ctx.client,
        ws.boot_dir,
        ctx.settings.kpm_patcher_url,
        expected_sha256=ctx.settings.kpm_patcher_sha256,
        log_path=ws.log_path("kpm"),
    )
    return _done(Stage.POST_PATCH)


def package_outputs(ctx: BuildContext) -> StageResult:
    """Produce the AnyKernel3 archive and publish outputs."""
    ws = ctx.workspace
    version = ctx.require_version()
    name = archive_name(version, ctx.config.device_name, ctx.config.package_tag)
    result = package_kernel(
        image=ctx.image_path or ws.image,
        template_dir=ws.anykernel_dir,
        template_url=ctx.settings.anykernel_url,
        archive_path=ws.root / name,
        output_dir=ws.output_dir,
        build_inputs=ctx.config.model_dump(),
        version=version,
        log_path=ws.log_path("package"),
    )
    ctx.package_path = result.archive_path
    ctx.image_path = result.image_path
    ctx.manifest_path = result.manifest_path
    return _done(Stage.PACKAGE, name, archive=str(result.archive_path))


PIPELINE_STAGES: tuple[tuple[Stage, StageFn], ...] = (
    (Stage.ENVIRONMENT, prepare_environment),
    (Stage.SYNC, synchronize_source),
    (Stage.KERNELSU, setup_kernelsu),
    (Stage.VERSION_STRINGS, mutate_version_strings),
    (Stage.PATCHES, apply_patches),
    (Stage.DEFCONFIG, inject_configuration),
    (Stage.BUILD, build_kernel),
    (Stage.POST_PATCH, post_patch_image),
    (Stage.PACKAGE, package_outputs),
)


class PipelineError(GkiBuildError):
    """Raised when a stage aborts the run."""

    def __init__(self, stage: Stage, cause: GkiBuildError, results: list[StageResult]) -> None:
        super().__init__(f"Stage '{stage.value}' failed: {cause}", cause.code)
        self.stage = stage
        self.cause = cause
        self.results = results


class BuildPipeline:
    """Runs the stages for one configuration."""

    def __init__(
        self,
        config: BuildConfig,
        settings: Settings,
        stages: tuple[tuple[Stage, StageFn], ...] = PIPELINE_STAGES,
        on_stage: Callable[[StageResult], None] | None = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.stages = stages
        self.on_stage = on_stage
        self.workspace = Workspace.for_device(
            settings.workspace_root,
            config.device_name,
            settings.resolved_output_dir(),
        )

    def run(self, client: httpx.Client | None = None) -> BuildOutcome:
        """Run every stage in order.

        Args:
            client: HTTP client; one is created and closed if not given.

        Returns:
            BuildOutcome for the run.

        Raises:
            PipelineError: If a stage fails.
        """
        if client is None:
            with create_client(self.settings.download_timeout) as own_client:
                return self._run(own_client)
        return self._run(client)

    def _run(self, client: httpx.Client) -> BuildOutcome:
        ctx = BuildContext(
            config=self.config,
            settings=self.settings,
            workspace=self.workspace,
            client=client,
        )
        results: list[StageResult] = []

        for stage, fn in self.stages:
            logger.info("==> Stage: %s", stage.value)
            try:
                result = fn(ctx)
            except GkiBuildError as e:
                logger.error("Stage %s failed: %s", stage.value, e)
                failed = StageResult(stage=stage, status=StageStatus.FAILED, message=str(e))
                results.append(failed)
                self._notify(failed)
                raise PipelineError(stage, e, results) from e
            results.append(result)
            self._notify(result)

        for warning in ctx.warnings:
            logger.warning("Completed with warning: %s", warning)

        if self.settings.cleanup is CleanupPolicy.REMOVE:
            self.workspace.remove()

        logger.info("Build complete. Artifacts are in %s", self.workspace.output_dir)
        return BuildOutcome(
            version=ctx.require_version(),
            package_path=ctx.package_path or self.workspace.output_dir,
            image_path=ctx.image_path or self.workspace.image,
            manifest_path=ctx.manifest_path or self.workspace.output_dir,
            stages=results,
            warnings=list(ctx.warnings),
        )

    def _notify(self, result: StageResult) -> None:
        if self.on_stage is not None:
            self.on_stage(result)


__all__ = [
    "PIPELINE_STAGES",
    "BuildContext",
    "BuildPipeline",
    "PipelineError",
    "apply_patches",
    "build_kernel",
    "inject_configuration",
    "mutate_version_strings",
    "package_outputs",
    "post_patch_image",
    "prepare_environment",
    "setup_kernelsu",
    "synchronize_source",
]
