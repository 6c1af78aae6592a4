"""Thin CLI wrapper for kernel_pkgbuild.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
import time
from pathlib import Path
from typing import Annotated

import httpx
import typer
from rich.console import Console

from kernel_pkgbuild import __version__
from kernel_pkgbuild.config import Settings, load_settings, print_settings_json
from kernel_pkgbuild.errors import PipelineError
from kernel_pkgbuild.kconfig.diff import diff_config_files
from kernel_pkgbuild.kconfig.report import render_report
from kernel_pkgbuild.notify import configure_logging
from kernel_pkgbuild.pipeline import Pipeline, cleanup, format_elapsed
from kernel_pkgbuild.process import CommandRunner
from kernel_pkgbuild.source.fetch import detect_latest_version
from kernel_pkgbuild.types import BuildRequest, Flavor, Toolchain

app = typer.Typer(
    name="kernel-pkgbuild",
    help="Kernel package builder - build, package and publish Debian kernel flavors",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)

BUILD_LOG_NAME = "build.log"

SettingsOption = Annotated[
    Path | None,
    typer.Option("--settings", "-s", help="Settings file (JSON or YAML)"),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"kernel-pkgbuild version {__version__}")
        raise typer.Exit()


def fatal(error: PipelineError) -> typer.Exit:
    """Report a fatal pipeline error and return the exit to raise."""
    logger.error("%s (%s)", error, error.code)
    err_console.print(f"[FATAL] {error}", markup=False, style="bold red")
    return typer.Exit(code=1)


def _settings(path: Path | None) -> Settings:
    try:
        return load_settings(path)
    except PipelineError as e:
        raise fatal(e) from None


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
    """Kernel package builder - build, package and publish Debian kernel flavors."""


@app.command()
def config(
    settings_path: SettingsOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = _settings(settings_path)
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Build path:          {settings.build_path}")
    console.print(f"  Config directory:    {settings.config_dir}")
    console.print(f"  Release directory:   {settings.release_dir}")
    console.print(f"  Patch directory:     {settings.patch_dir}")
    console.print()
    console.print("[bold]Toolchain:[/bold]")
    console.print(f"  Compiler:            {settings.ccopts or '(system default)'}")
    console.print(f"  Linker:              {settings.ld or '(system default)'}")
    console.print(f"  LLVM by default:     {settings.llvm}")
    console.print(f"  Parallel jobs:       {settings.effective_jobs}")
    console.print()
    console.print("[bold]Packaging:[/bold]")
    console.print(f"  Maintainer:          {settings.maintainer}", markup=False)
    console.print(f"  Homepage:            {settings.homepage}")
    console.print(f"  Default suffix:      {settings.default_suffix}")
    console.print()
    console.print("[bold]Publishing:[/bold]")
    console.print(f"  Packagecloud:        {settings.packagecloud_repo or '(disabled)'}")
    console.print(f"  Nexus:               {settings.nexus_repo or '(disabled)'}")
    console.print(f"  Release repository:  {settings.github_repository or '(not set)'}")
    console.print(f"  Notifications:       {settings.ntfy_url or '(disabled)'}")


@app.command()
def build(
    version: Annotated[
        str | None,
        typer.Argument(help="Kernel version (major.minor[.patch]); latest if omitted"),
    ] = None,
    flavor: Annotated[
        Flavor,
        typer.Option("--flavor", "-f", case_sensitive=False, help="Kernel flavor"),
    ] = Flavor.VANILLA,
    vm: Annotated[bool, typer.Option("--vm", help="Shortcut for --flavor vm")] = False,
    rt: Annotated[bool, typer.Option("--rt", help="Shortcut for --flavor rt")] = False,
    llvm: Annotated[bool, typer.Option("--llvm", help="Build with LLVM/Clang")] = False,
    arch: Annotated[str, typer.Option("--arch", help="Kernel ARCH value")] = "x86",
    cross_compile: Annotated[
        str,
        typer.Option("--cross-compile", help="Cross-toolchain prefix (e.g. aarch64-linux-gnu-)"),
    ] = "",
    add_patches: Annotated[
        bool, typer.Option("--add-patches", help="Apply patches from the patch directory")
    ] = False,
    upload_packagecloud: Annotated[
        bool, typer.Option("--upload-packagecloud", help="Upload packages to packagecloud")
    ] = False,
    upload_nexus: Annotated[
        bool, typer.Option("--upload-nexus", help="Upload packages to Nexus")
    ] = False,
    publish: Annotated[
        bool, typer.Option("--publish", help="Publish a release from existing artifacts")
    ] = False,
    clean: Annotated[
        bool, typer.Option("--clean", "--cleanup", help="Remove transient build state")
    ] = False,
    menuconfig: Annotated[
        bool, typer.Option("--menuconfig", help="Edit and archive the configuration")
    ] = False,
    suffix: Annotated[
        str | None, typer.Option("--suffix", help="Custom local-version suffix")
    ] = None,
    settings_path: SettingsOption = None,
) -> None:
    """Build, package and optionally publish a kernel flavor."""
    if vm and rt:
        raise typer.BadParameter("--vm and --rt are mutually exclusive")
    if rt:
        flavor = Flavor.RT
    elif vm:
        flavor = Flavor.VM

    settings = _settings(settings_path)
    configure_logging(settings.log_level, settings.ntfy_url, settings.notify_level)
    started = time.monotonic()

    try:
        if clean and version is None:
            cleanup(settings.build_path)
        else:
            with httpx.Client() as client:
                if version is None:
                    version = detect_latest_version(client, settings.releases_url)
                request = BuildRequest(
                    version=version,
                    flavor=flavor,
                    arch=arch,
                    cross_compile=cross_compile,
                    toolchain=Toolchain.LLVM if llvm or settings.llvm else Toolchain.NATIVE,
                    suffix=suffix,
                    add_patches=add_patches,
                    upload_packagecloud=upload_packagecloud,
                    upload_nexus=upload_nexus,
                    publish_only=publish,
                    clean_only=clean,
                    interactive_configure=menuconfig,
                )
                runner = CommandRunner(log_path=settings.build_path / BUILD_LOG_NAME)
                result = Pipeline(settings, request, runner, client).run()

                if result.bundle is not None:
                    console.print(f"[green]✓ Archive: {result.bundle.archive.name}[/green]")
                if failed := result.failed_uploads:
                    console.print(f"[yellow]{len(failed)} upload(s) failed[/yellow]")
                if result.release is not None:
                    console.print(f"[green]✓ Release: {result.release.tag}[/green]")
    except PipelineError as e:
        raise fatal(e) from None

    elapsed = format_elapsed(time.monotonic() - started)
    logger.info("Total elapsed time: %s", elapsed)
    console.print(f"[green]✓ Completed in {elapsed}[/green]")


@app.command()
def diff(
    baseline: Annotated[Path, typer.Argument(help="Baseline .config", exists=True)],
    resolved: Annotated[Path, typer.Argument(help="Resolved .config", exists=True)],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the Markdown report to a file"),
    ] = None,
) -> None:
    """Print a categorized Markdown report of configuration changes."""
    report = render_report(diff_config_files(baseline, resolved))
    if output is not None:
        output.write_text(report, encoding="utf-8")
        console.print(f"[green]✓ Report written to {output}[/green]")
    else:
        typer.echo(report, nl=False)


@app.command()
def latest(settings_path: SettingsOption = None) -> None:
    """Print the latest stable kernel version from kernel.org."""
    settings = _settings(settings_path)
    try:
        with httpx.Client() as client:
            typer.echo(detect_latest_version(client, settings.releases_url))
    except PipelineError as e:
        raise fatal(e) from None


if __name__ == "__main__":
    app()
