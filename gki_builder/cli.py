"""`gkibuild` command line.

Commands parse options, pick the configuration and render results; the
work itself happens in gki_builder.pipeline and the modules it drives.
"""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gki_builder import __version__
from gki_builder.config import get_settings, print_settings_json
from gki_builder.errors import GkiBuildError
from gki_builder.log import setup_logging
from gki_builder.profiles.selection import ProfileNotFoundError
from gki_builder.types import CleanupPolicy, StageResult, StageStatus

app = typer.Typer(
    name="gkibuild",
    help="GKI Kernel Builder - build SukiSU/SUSFS GKI kernels into AnyKernel3 packages",
    no_args_is_help=True,
)
console = Console()

_STATUS_STYLE = {
    StageStatus.SUCCEEDED: "green",
    StageStatus.SKIPPED: "yellow",
    StageStatus.FAILED: "red",
}


def _print_json(data: Any) -> None:
    # No wrapping or markup so the output stays parseable
    console.print(json.dumps(data, indent=2), soft_wrap=True, markup=False, highlight=False)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"gki-kernel-builder version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """GKI Kernel Builder - build SukiSU/SUSFS GKI kernels into AnyKernel3 packages."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), soft_wrap=True, markup=False, highlight=False)
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Workspace root:      {settings.workspace_root}")
        console.print(f"  Output directory:    {settings.resolved_output_dir()}")
        console.print(f"  ccache root:         {settings.ccache_root}")
        console.print(f"  repo tool:           {settings.repo_install_path}")
        console.print()
        console.print("[bold]Host:[/bold]")
        console.print(f"  Install packages:    {settings.install_dependencies}")
        console.print(f"  Use sudo:            {settings.use_sudo}")
        console.print(f"  Git identity:        {settings.git_user_name} <{settings.git_user_email}>")
        console.print()
        console.print("[bold]Build:[/bold]")
        console.print(f"  Jobs:                {settings.jobs}")
        console.print(f"  ccache max size:     {settings.ccache_max_size}")
        console.print(f"  Cleanup policy:      {settings.cleanup.value}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Download timeout:    {settings.download_timeout}")


profiles_app = typer.Typer(help="Manage build profiles")
app.add_typer(profiles_app, name="profiles")


@profiles_app.command("list")
def profiles_list(
    directory: Annotated[
        str | None,
        typer.Option("--dir", "-d", help="Also list profiles from this directory"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List built-in profiles and, optionally, profiles from a directory."""
    from gki_builder.profiles.io import load_profiles_from_directory
    from gki_builder.profiles.presets import BUILTIN_PROFILES

    profiles = list(BUILTIN_PROFILES.values())
    if directory:
        dir_path = Path(directory)
        if not dir_path.is_dir():
            console.print(f"[red]Directory not found: {directory}[/red]")
            raise typer.Exit(code=1)
        profiles.extend(load_profiles_from_directory(dir_path))

    if json_output:
        output = [
            {
                "profile_id": p.profile_id,
                "name": p.name,
                "device_name": p.build.device_name,
                "features": sorted(p.build.features),
                "tags": p.tags or [],
            }
            for p in profiles
        ]
        _print_json(output)
        return

    table = Table(title="Build Profiles")
    table.add_column("Profile ID", style="cyan")
    table.add_column("Name")
    table.add_column("Device")
    table.add_column("Manifest")
    table.add_column("Features")
    for p in profiles:
        table.add_row(
            p.profile_id,
            p.name,
            p.build.device_name,
            p.build.repo_manifest,
            ", ".join(sorted(p.build.features)) or "-",
        )
    console.print(table)


@profiles_app.command("show")
def profiles_show(
    reference: Annotated[
        str, typer.Argument(help="Built-in profile ID or path to a profile file")
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a profile."""
    from gki_builder.profiles.io import profile_to_json_string, profile_to_yaml_string
    from gki_builder.profiles.selection import resolve_profile

    try:
        profile = resolve_profile(reference)
    except ProfileNotFoundError as e:
        console.print(f"[red]Profile not found: {e.reference}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print(profile_to_json_string(profile), soft_wrap=True, markup=False, highlight=False)
    else:
        console.print(profile_to_yaml_string(profile), soft_wrap=True, markup=False)


@profiles_app.command("validate")
def profiles_validate(
    path: Annotated[str, typer.Argument(help="Path to profile file to validate")],
) -> None:
    """Validate a profile file."""
    import yaml
    from pydantic import ValidationError

    from gki_builder.profiles.io import load_profile

    file_path = Path(path)
    if not file_path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(code=1)

    try:
        profile = load_profile(file_path)
        console.print(f"[green]✓ Valid profile: {profile.profile_id}[/green]")
        console.print(f"  Name: {profile.name}")
        console.print(f"  Device: {profile.build.device_name}")
        console.print(f"  Manifest: {profile.build.repo_manifest}")
    except ValidationError as e:
        console.print("[red]Validation failed:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None
    except (ValueError, yaml.YAMLError) as e:
        console.print("[red]Validation failed:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None


def _cli_overrides(
    device: str | None,
    manifest: str | None,
    suffix: str | None,
    kpm: bool | None,
    lz4kd: bool | None,
    tag: str | None,
    version_label: str | None = None,
) -> dict[str, Any]:
    return {
        "device_name": device,
        "repo_manifest": manifest,
        "kernel_suffix": suffix,
        "enable_kpm": kpm,
        "enable_lz4kd": lz4kd,
        "package_tag": tag,
        "ksu_version_label": version_label,
    }


def _prompt(text: str, default: str) -> str:
    return typer.prompt(text, default=default, show_default=True)


def _confirm(text: str, default: bool) -> bool:
    return typer.confirm(text, default=default)


@app.command()
def plan(
    profile: Annotated[
        str | None,
        typer.Option("--profile", "-p", help="Built-in profile ID or profile file"),
    ] = None,
    kpm: Annotated[
        bool | None,
        typer.Option("--kpm/--no-kpm", help="Enable KPM"),
    ] = None,
    lz4kd: Annotated[
        bool | None,
        typer.Option("--lz4kd/--no-lz4kd", help="Enable LZ4KD"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the patch plan and defconfig lines for a configuration."""
    from pydantic import ValidationError

    from gki_builder.builds.defconfig import render_defconfig_lines
    from gki_builder.patches.steps import build_patch_plan
    from gki_builder.profiles.selection import resolve_profile, select_build_config

    try:
        build_config = select_build_config(
            resolve_profile(profile),
            cli_overrides={"enable_kpm": kpm, "enable_lz4kd": lz4kd},
        )
    except ProfileNotFoundError as e:
        console.print(f"[red]Profile not found: {e.reference}[/red]")
        raise typer.Exit(code=1) from None
    except ValidationError as e:
        console.print("[red]Invalid configuration:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None

    steps = build_patch_plan(build_config)
    if json_output:
        output = {
            "config": build_config.model_dump(),
            "steps": [
                {
                    "name": s.name,
                    "action": s.action.value,
                    "source": s.source,
                    "destination": s.destination,
                    "mode": s.mode.value,
                }
                for s in steps
            ],
            "defconfig": render_defconfig_lines(build_config),
        }
        _print_json(output)
        return

    table = Table(title=f"Patch plan for {build_config.device_name}")
    table.add_column("#", justify="right")
    table.add_column("Step", style="cyan")
    table.add_column("Action")
    table.add_column("Mode")
    table.add_column("Source")
    for i, s in enumerate(steps, 1):
        table.add_row(str(i), s.name, s.action.value, s.mode.value, s.source)
    console.print(table)
    console.print()
    console.print("[bold]Defconfig lines:[/bold]")
    for line in render_defconfig_lines(build_config):
        console.print(f"  {line}")


def _print_stage(result: StageResult) -> None:
    style = _STATUS_STYLE[result.status]
    message = f" - {result.message}" if result.message else ""
    console.print(
        f"[{style}]{result.status.value:>9}[/{style}] {result.stage.value}{message}"
    )


@app.command()
def build(
    profile: Annotated[
        str | None,
        typer.Option("--profile", "-p", help="Built-in profile ID or profile file"),
    ] = None,
    device: Annotated[
        str | None,
        typer.Option("--device", "-d", help="Device name"),
    ] = None,
    manifest: Annotated[
        str | None,
        typer.Option("--manifest", "-m", help="Repo manifest filename"),
    ] = None,
    suffix: Annotated[
        str | None,
        typer.Option("--suffix", "-s", help="Kernel suffix ({version} is expanded)"),
    ] = None,
    kpm: Annotated[
        bool | None,
        typer.Option("--kpm/--no-kpm", help="Enable KPM"),
    ] = None,
    lz4kd: Annotated[
        bool | None,
        typer.Option("--lz4kd/--no-lz4kd", help="Enable LZ4KD"),
    ] = None,
    tag: Annotated[
        str | None,
        typer.Option("--tag", help="Archive name tag"),
    ] = None,
    version_label: Annotated[
        str | None,
        typer.Option("--version-label", help="Label shown after the KernelSU version"),
    ] = None,
    interactive: Annotated[
        bool,
        typer.Option("--interactive", "-i", help="Prompt for suffix and features"),
    ] = False,
    cleanup: Annotated[
        CleanupPolicy | None,
        typer.Option("--cleanup", help="Workspace cleanup after success"),
    ] = None,
    output_dir: Annotated[
        str | None,
        typer.Option("--output-dir", "-o", help="Directory for final artifacts"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build a kernel and package it for flashing."""
    from pydantic import ValidationError

    from gki_builder.pipeline import BuildPipeline, PipelineError
    from gki_builder.profiles.selection import resolve_profile, select_build_config

    settings = get_settings()
    updates: dict[str, Any] = {}
    if output_dir:
        updates["output_dir"] = Path(output_dir)
    if cleanup is not None:
        updates["cleanup"] = cleanup
    if updates:
        settings = settings.model_copy(update=updates)

    setup_logging(settings.log_level)

    try:
        build_config = select_build_config(
            resolve_profile(profile),
            cli_overrides=_cli_overrides(
                device, manifest, suffix, kpm, lz4kd, tag, version_label
            ),
            prompt=_prompt if interactive else None,
            confirm=_confirm if interactive else None,
        )
    except ProfileNotFoundError as e:
        console.print(f"[red]Profile not found: {e.reference}[/red]")
        raise typer.Exit(code=1) from None
    except ValidationError as e:
        console.print("[red]Invalid configuration:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None

    pipeline = BuildPipeline(
        build_config,
        settings,
        on_stage=None if json_output else _print_stage,
    )

    try:
        outcome = pipeline.run()
    except PipelineError as e:
        if json_output:
            output = {
                "success": False,
                "stage": e.stage.value,
                "code": e.code,
                "error": str(e.cause),
            }
            _print_json(output)
        else:
            console.print(f"[red]Build failed in stage {e.stage.value}: {escape(str(e.cause))}[/red]")
        raise typer.Exit(code=1) from None
    except GkiBuildError as e:
        console.print(f"[red]Build failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        output = {
            "success": True,
            "version": outcome.version,
            "package_path": str(outcome.package_path),
            "image_path": str(outcome.image_path),
            "manifest_path": str(outcome.manifest_path),
            "stages": [
                {"stage": r.stage.value, "status": r.status.value, "message": r.message}
                for r in outcome.stages
            ],
            "warnings": outcome.warnings,
        }
        _print_json(output)
        return

    console.print()
    console.print(f"[green]✓ Build complete (version {outcome.version})[/green]")
    console.print(f"  Package: {outcome.package_path}")
    console.print(f"  Image:   {outcome.image_path}")
    for warning in outcome.warnings:
        console.print(f"  [yellow]Warning:[/yellow] {warning}")


if __name__ == "__main__":
    app()
