"""Build runner for the kernel build system.

This module handles:
- Composing the compile, module and Debian packaging make targets
- Executing them in order with output captured to the build log
- Mapping failures to BuildError with the failing stage
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from kernel_pkgbuild.errors import BUILD_ERROR, PipelineError
from kernel_pkgbuild.process import CommandError

if TYPE_CHECKING:
    from kernel_pkgbuild.process import CommandRunner, MakeCommand

logger = logging.getLogger(__name__)


class BuildError(PipelineError):
    """Raised when a kernel build stage fails."""

    def __init__(
        self,
        message: str,
        stage: str,
        exit_code: int | None = None,
        code: str = BUILD_ERROR,
    ) -> None:
        super().__init__(message, code)
        self.stage = stage
        self.exit_code = exit_code


@dataclass
class BuildResult:
    """Result of a kernel build.

    Attributes:
        localversion: LOCALVERSION passed to bindeb-pkg.
        stages: Completed stages with their durations in seconds.
        commands: The commands that were executed.
    """

    localversion: str
    stages: dict[str, float] = field(default_factory=dict)
    commands: list[list[str]] = field(default_factory=list)

    @property
    def duration(self) -> float:
        return sum(self.stages.values())


def localversion_for(suffix: str) -> str:
    """Return the LOCALVERSION value for a suffix."""
    return f"-{suffix}"


def compose_build_commands(make: MakeCommand, suffix: str) -> list[tuple[str, list[str]]]:
    """Compose the build stages as (stage, argv) pairs.

    Args:
        make: Make builder carrying arch, cross prefix and toolchain.
        suffix: Local-version suffix.

    Returns:
        Stages in execution order.
    """
    return [
        ("compile", make.argv()),
        ("modules", make.argv("modules")),
        ("bindeb-pkg", make.argv("bindeb-pkg", LOCALVERSION=localversion_for(suffix))),
    ]


def build_kernel(
    source_dir: Path,
    make: MakeCommand,
    suffix: str,
    runner: CommandRunner,
) -> BuildResult:
    """Compile the kernel and produce Debian packages.

    Packages land in the parent of source_dir, as bindeb-pkg writes them.

    Args:
        source_dir: Configured kernel source tree.
        make: Make builder.
        suffix: Local-version suffix.
        runner: Command runner.

    Returns:
        BuildResult with per-stage timings.

    Raises:
        BuildError: If any stage fails.
    """
    result = BuildResult(localversion=localversion_for(suffix))

    for stage, argv in compose_build_commands(make, suffix):
        logger.info("Executing build stage '%s' in %s", stage, source_dir)
        started = time.monotonic()
        try:
            runner.run(argv, cwd=source_dir, capture=False)
        except CommandError as e:
            if runner.log_path is not None:
                logger.error("Build stage '%s' failed. See log: %s", stage, runner.log_path)
            raise BuildError(
                f"Kernel build stage '{stage}' failed: {e}",
                stage=stage,
                exit_code=e.exit_code,
            ) from e
        result.commands.append(argv)
        result.stages[stage] = time.monotonic() - started

    logger.info("Kernel build finished in %.1fs", result.duration)
    return result


__all__ = [
    "BuildError",
    "BuildResult",
    "build_kernel",
    "compose_build_commands",
    "localversion_for",
]
