"""Patch application.

Patches are applied in filename order. Each patch is first checked with a
dry run; a patch that does not apply cleanly (already applied, or not
relevant to this version) is skipped rather than treated as an error,
which keeps repeated runs against the same patch set idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from kernel_pkgbuild.errors import PATCH_ERROR, PipelineError
from kernel_pkgbuild.process import CommandError

if TYPE_CHECKING:
    from kernel_pkgbuild.process import CommandRunner

logger = logging.getLogger(__name__)

PATCH_GLOB = "*.patch"

# Shared options: skip reversed/already-applied hunks, strip a/ b/ prefixes
PATCH_OPTIONS = ["-N", "-p1"]


class PatchError(PipelineError):
    """Raised when a patch fails after passing its dry run."""

    def __init__(self, message: str, code: str = PATCH_ERROR) -> None:
        super().__init__(message, code)


@dataclass
class PatchReport:
    """Outcome of a patch run.

    Attributes:
        applied: Patches applied in this run.
        skipped: Patches whose dry run failed.
    """

    applied: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


def discover_patches(patch_dir: Path) -> list[Path]:
    """Return the patch files in application order.

    Raises:
        PatchError: If the directory does not exist.
    """
    if not patch_dir.is_dir():
        raise PatchError(f"Patch directory not found: {patch_dir}", code="patch_dir_missing")
    patches = sorted(p for p in patch_dir.glob(PATCH_GLOB) if p.is_file())
    if not patches:
        logger.info("No patches found in %s", patch_dir)
    return patches


def apply_patches(
    source_dir: Path,
    patches: list[Path],
    runner: CommandRunner,
) -> PatchReport:
    """Apply patches to a source tree.

    Args:
        source_dir: Kernel source tree.
        patches: Patch files, in order.
        runner: Command runner.

    Returns:
        PatchReport listing applied and skipped patches.

    Raises:
        PatchError: If a patch passes its dry run but then fails.
    """
    report = PatchReport()
    for patch in patches:
        logger.info("Checking patch %s", patch.name)
        dry_run = runner.run(
            ["patch", "--dry-run", *PATCH_OPTIONS],
            cwd=source_dir,
            check=False,
            stdin_path=patch,
        )
        if not dry_run.ok:
            logger.warning("Skipping patch %s (already applied or not applicable)", patch.name)
            report.skipped.append(patch)
            continue

        logger.info("Applying patch %s", patch.name)
        try:
            runner.run(["patch", *PATCH_OPTIONS], cwd=source_dir, stdin_path=patch)
        except CommandError as e:
            raise PatchError(f"Failed to apply patch {patch.name}: {e}") from e
        report.applied.append(patch)

    logger.info(
        "Patches: %d applied, %d skipped", len(report.applied), len(report.skipped)
    )
    return report


__all__ = [
    "PATCH_GLOB",
    "PatchError",
    "PatchReport",
    "apply_patches",
    "discover_patches",
]
