"""Baseline-versus-resolved configuration diff.

Produces the line-oriented diff consumed by the report renderer: one
``-NAME=old`` line for every option whose baseline value is gone or
changed, and one ``+NAME=new`` line for every option that is new or
changed. Names carry no CONFIG_ prefix; lines are ordered by option name
with removals before additions.
"""

from __future__ import annotations

import logging
from pathlib import Path

from kernel_pkgbuild.kconfig.dotconfig import KernelConfig

logger = logging.getLogger(__name__)


def diff_configs(baseline: KernelConfig, resolved: KernelConfig) -> list[str]:
    """Compute the diff lines between two configurations."""
    old = baseline.values()
    new = resolved.values()

    lines: list[str] = []
    for name in sorted(old.keys() | new.keys()):
        before = old.get(name)
        after = new.get(name)
        if before == after:
            continue
        if before is not None:
            lines.append(f"-{name}={before}")
        if after is not None:
            lines.append(f"+{name}={after}")
    return lines


def diff_config_files(baseline_path: Path, resolved_path: Path) -> list[str]:
    """Compute the diff lines between two .config files."""
    lines = diff_configs(KernelConfig.load(baseline_path), KernelConfig.load(resolved_path))
    logger.debug(
        "%d diff lines between %s and %s", len(lines), baseline_path.name, resolved_path.name
    )
    return lines


def write_diff(lines: list[str], path: Path) -> Path:
    """Write diff lines to a file (empty file for no changes)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return path


__all__ = ["diff_config_files", "diff_configs", "write_diff"]
