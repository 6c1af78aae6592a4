"""Configuration materializer.

This module handles:
- Selecting the baseline configuration for a flavor and architecture
- Applying the automated tweaks (LLVM LTO, real-time preemption, signing)
- Resolving the configuration against the source tree (olddefconfig)
- Archiving the resolved configuration back as the new baseline
- Interactive menuconfig sessions
"""

from __future__ import annotations

import logging
import shutil
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from kernel_pkgbuild.errors import BASELINE_MISSING, ConfigError, PipelineError
from kernel_pkgbuild.kconfig.dotconfig import KernelConfig
from kernel_pkgbuild.types import Flavor, Toolchain

if TYPE_CHECKING:
    from kernel_pkgbuild.process import CommandRunner, MakeCommand
    from kernel_pkgbuild.types import BuildRequest

logger = logging.getLogger(__name__)

# Preemption level written for real-time builds
RT_PREEMPT_LEVEL = 3


class BaselineMissingError(PipelineError):
    """Raised when no usable baseline configuration exists."""

    def __init__(self, message: str, code: str = BASELINE_MISSING) -> None:
        super().__init__(message, code)


def baseline_candidates(config_dir: Path, flavor: Flavor, arch: str) -> list[Path]:
    """Return baseline paths in preference order (arch-specific first)."""
    return [
        config_dir / f"{flavor.value}-{arch}.config",
        config_dir / f"{flavor.value}.config",
    ]


def select_baseline(
    config_dir: Path,
    flavor: Flavor,
    arch: str,
    cross: bool,
) -> Path:
    """Select the baseline configuration for a build.

    The architecture-specific baseline is preferred. The generic one is
    only acceptable for native builds; a cross build has no safe fallback.

    Raises:
        BaselineMissingError: If no acceptable baseline exists.
    """
    specific, generic = baseline_candidates(config_dir, flavor, arch)
    if specific.is_file():
        return specific
    if cross:
        raise BaselineMissingError(
            f"Missing baseline kernel config for cross build: {specific}"
        )
    if generic.is_file():
        return generic
    raise BaselineMissingError(f"Missing baseline kernel config: {generic}")


def apply_toolchain_tweaks(config: KernelConfig, toolchain: Toolchain) -> None:
    """Enable thin LTO when building with LLVM/Clang."""
    if toolchain is not Toolchain.LLVM:
        return
    logger.info("Applying LLVM-specific kernel config tweaks (LTO enabled)")
    config.enable("LTO_CLANG")
    config.enable("LTO_CLANG_THIN")
    config.disable("LTO_NONE")


def apply_rt_tweaks(config: KernelConfig, flavor: Flavor) -> None:
    """Enable full preemption for real-time builds."""
    if flavor is not Flavor.RT:
        return
    logger.info("Applying Real-Time kernel scheduler config tweaks")
    config.enable("PREEMPT_RT")
    config.enable("PREEMPT_LAZY")
    config.set_val("PREEMPT", RT_PREEMPT_LEVEL)
    config.disable("SCHED_DEBUG")


def disable_signing(config: KernelConfig) -> None:
    """Disable trusted and revocation key enforcement.

    Applied to every build: the signing keys referenced by distribution
    baselines are not available in the build environment.
    """
    logger.info("Disabling kernel signing to avoid build failures due to missing keys")
    config.disable("SYSTEM_TRUSTED_KEYS")
    config.disable("SYSTEM_REVOCATION_KEYS")
    config.set_str("SYSTEM_TRUSTED_KEYS", "")


def resolve_config(source_dir: Path, make: MakeCommand, runner: CommandRunner) -> None:
    """Resolve new and removed options for the exact source version."""
    argv = make.argv("olddefconfig")
    logger.info("Running make olddefconfig")
    runner.run(argv, cwd=source_dir)


def materialize(
    source_dir: Path,
    config_dir: Path,
    request: BuildRequest,
    make: MakeCommand,
    runner: CommandRunner,
) -> Path:
    """Produce the resolved .config for a build.

    Copies the baseline into the tree, applies the toolchain, real-time
    and signing tweaks in that order, then runs olddefconfig.

    Returns:
        Path of the baseline that was used.

    Raises:
        BaselineMissingError: If no baseline is available.
        CommandError: If olddefconfig fails.
    """
    baseline = select_baseline(config_dir, request.flavor, request.arch, request.is_cross)
    dotconfig = source_dir / ".config"

    logger.info("Copying baseline configuration from %s", baseline)
    shutil.copyfile(baseline, dotconfig)

    config = KernelConfig.load(dotconfig)
    apply_toolchain_tweaks(config, request.toolchain)
    apply_rt_tweaks(config, request.flavor)
    disable_signing(config)
    config.write(dotconfig)

    resolve_config(source_dir, make, runner)
    return baseline


def archive_config(source_dir: Path, baseline: Path) -> Path:
    """Store the resolved configuration as the new baseline.

    Raises:
        ConfigError: If the tree has no .config.
    """
    dotconfig = source_dir / ".config"
    if not dotconfig.is_file():
        raise ConfigError(f"Missing active kernel config: {dotconfig}")

    baseline.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Archiving .config to %s", baseline)
    shutil.copyfile(dotconfig, baseline)
    return baseline


def require_terminal(isatty: Callable[[], bool] | None = None) -> None:
    """Raise ConfigError unless stdin is an interactive terminal."""
    if not (isatty or sys.stdin.isatty)():
        raise ConfigError("Menuconfig requires interactive terminal")


def run_menuconfig(
    source_dir: Path,
    make: MakeCommand,
    runner: CommandRunner,
    isatty: Callable[[], bool] | None = None,
) -> None:
    """Hand the tree to the interactive configuration editor.

    Raises:
        ConfigError: If stdin is not a terminal.
    """
    require_terminal(isatty)
    logger.info(
        "Entering interactive menuconfig; adjust your kernel configuration "
        "and save changes when done."
    )
    runner.run_interactive(make.argv("menuconfig", parallel=False), cwd=source_dir)


__all__ = [
    "BaselineMissingError",
    "RT_PREEMPT_LEVEL",
    "apply_rt_tweaks",
    "apply_toolchain_tweaks",
    "archive_config",
    "baseline_candidates",
    "disable_signing",
    "materialize",
    "require_terminal",
    "resolve_config",
    "run_menuconfig",
    "select_baseline",
]
