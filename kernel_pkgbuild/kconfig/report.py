"""Configuration diff analysis and Markdown reports.

This module handles:
- Parsing diff lines (``+NAME=value`` / ``-NAME=value``, and the
  kernel scripts/diffconfig format)
- Classifying changed options into overlapping categories by keyword
- Rendering a categorized Markdown report for release notes
- Falling back to the raw diff when analysis fails

Categories:
- debug/format: debug-info and BTF related options
- subsystem: major subsystems (security, networking, scheduler, ...)
- driver: driver/bus/peripheral class suffixes
- version/trivial: toolchain and version identifiers, excluded from the
  added/removed/changed tallies
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from kernel_pkgbuild.kconfig.diff import diff_config_files, write_diff
from kernel_pkgbuild.types import Flavor

logger = logging.getLogger(__name__)

DEBUG_PATTERN = re.compile(r"PAHOLE|BTF|DEBUG_INFO")
VERSION_PATTERN = re.compile(r"VERSION|RELEASE|GCC|CLANG|RUSTC|LLVM")
SUBSYSTEM_PATTERN = re.compile(
    r"KVM|SECURITY|SELINUX|APPARMOR|MODULE|DRM|NET|SCHED|PCI|USB|VIRTIO|MEMORY|CPU|ACPI|EFI"
)
DRIVER_PATTERN = re.compile(
    r"_DRIVER|_HCD|_UDC|_HID|_INPUT|_TOUCHSCREEN|_WATCHDOG|_PHY|_GPIO"
)

# Rendering thresholds
SUBSYSTEM_PREVIEW = 15
VERSION_COLLAPSE_OVER = 5
VERSION_PREVIEW = 3
MAJOR_JUMP_THRESHOLD = 500

NOT_SET = "(not set)"
NO_CHANGES = "* No configuration changes detected\n"

_DIFFCONFIG_CHANGE = re.compile(r"^\s+(?:CONFIG_)?([A-Za-z0-9_]+)\s+(\S.*?)\s+->\s+(\S.*)$")
_SIGNED = re.compile(r"^([+-])(?:CONFIG_)?([A-Za-z0-9_]+)(?:[=\s]\s*(.*))?$")


class DiffParseError(ValueError):
    """Raised when a diff line cannot be interpreted."""


@dataclass(frozen=True)
class DiffEntry:
    """One added or removed option line."""

    sign: str
    name: str
    value: str | None = None

    @property
    def added(self) -> bool:
        return self.sign == "+"

    @property
    def text(self) -> str:
        """The line without its sign (NAME=value)."""
        if self.value is None:
            return self.name
        return f"{self.name}={self.value}"


@dataclass(frozen=True)
class ChangedOption:
    """An option present on both sides of the diff with different values."""

    name: str
    old: str
    new: str


@dataclass
class ConfigDiff:
    """Classified configuration changes.

    Attributes:
        entries: All parsed entries, in diff order.
        total_lines: Number of changed lines in the diff.
        added: Additions not classified as version/trivial.
        removed: Removals not classified as version/trivial.
        changed: Options whose value flipped.
        debug: Debug/format entries.
        subsystem: Subsystem entries.
        driver: Driver entries.
        version: Version/trivial entries.
    """

    entries: list[DiffEntry] = field(default_factory=list)
    total_lines: int = 0
    added: list[DiffEntry] = field(default_factory=list)
    removed: list[DiffEntry] = field(default_factory=list)
    changed: list[ChangedOption] = field(default_factory=list)
    debug: list[DiffEntry] = field(default_factory=list)
    subsystem: list[DiffEntry] = field(default_factory=list)
    driver: list[DiffEntry] = field(default_factory=list)
    version: list[DiffEntry] = field(default_factory=list)

    @property
    def is_major_jump(self) -> bool:
        return self.total_lines > MAJOR_JUMP_THRESHOLD

    @property
    def is_empty(self) -> bool:
        return not self.entries


def parse_diff_lines(lines: list[str]) -> list[DiffEntry]:
    """Parse diff lines into entries.

    Accepts ``+NAME=value`` / ``-NAME=value`` lines as well as the
    scripts/diffconfig forms ``-NAME value``, ``+NAME value`` and
    `` NAME old -> new`` (expanded into a removal and an addition).
    Blank lines and ``+++``/``---`` headers are skipped.

    Raises:
        DiffParseError: For a line matching none of the forms.
    """
    entries: list[DiffEntry] = []
    for raw in lines:
        line = raw.rstrip("\n")
        if not line.strip() or line.startswith(("+++", "---")):
            continue

        if match := _DIFFCONFIG_CHANGE.match(line):
            name, old, new = match.groups()
            entries.append(DiffEntry("-", name, old))
            entries.append(DiffEntry("+", name, new))
            continue

        match = _SIGNED.match(line)
        if not match:
            raise DiffParseError(f"Unrecognized diff line: {line!r}")
        sign, name, value = match.groups()
        entries.append(DiffEntry(sign, name, value if value else None))
    return entries


def _changed_options(added: list[DiffEntry], removed: list[DiffEntry]) -> list[ChangedOption]:
    old_values: dict[str, str | None] = {}
    for entry in removed:
        old_values.setdefault(entry.name, entry.value)

    changed: list[ChangedOption] = []
    seen: set[str] = set()
    for entry in added:
        if entry.name in old_values and entry.name not in seen:
            seen.add(entry.name)
            changed.append(
                ChangedOption(
                    name=entry.name,
                    old=old_values[entry.name] or NOT_SET,
                    new=entry.value or NOT_SET,
                )
            )
    return sorted(changed, key=lambda c: c.name)


def analyze(lines: list[str]) -> ConfigDiff:
    """Classify diff lines into report categories."""
    entries = parse_diff_lines(lines)
    result = ConfigDiff(entries=entries, total_lines=len(entries))

    for entry in entries:
        if DEBUG_PATTERN.search(entry.name):
            result.debug.append(entry)
        if SUBSYSTEM_PATTERN.search(entry.name):
            result.subsystem.append(entry)
        if DRIVER_PATTERN.search(entry.name):
            result.driver.append(entry)

        if VERSION_PATTERN.search(entry.name):
            result.version.append(entry)
        elif entry.added:
            result.added.append(entry)
        else:
            result.removed.append(entry)

    result.changed = _changed_options(result.added, result.removed)
    return result


def _bullets(entries: list[DiffEntry]) -> list[str]:
    return [f"* [{entry.sign}] {entry.text}" for entry in entries]


def _version_bullets(entries: list[DiffEntry]) -> list[str]:
    return [f"* [↻] {entry.text}" for entry in entries]


def _details(summary: str, body: list[str]) -> list[str]:
    return ["<details>", f"<summary>{summary}</summary>", "", *body, "</details>"]


def render_markdown(diff: ConfigDiff) -> str:
    """Render a classified diff as Markdown."""
    if diff.is_empty:
        return NO_CHANGES

    out: list[str] = [
        "",
        "### Configuration Changes Analysis",
        "",
        f"* **Total changes:** {diff.total_lines}",
        f"  - (+) {len(diff.added)} added",
        f"  - (-) {len(diff.removed)} removed",
        f"  - (~) {len(diff.changed)} changed",
    ]
    if diff.debug:
        out.append(f"  - (⚙) {len(diff.debug)} debug/format changes")
    if diff.subsystem:
        out.append(f"  - (⚠) {len(diff.subsystem)} subsystem changes")
    if diff.driver:
        out.append(f"  - (🚗) {len(diff.driver)} driver changes")

    if diff.is_major_jump:
        out += [
            "",
            "> **Major Version Jump Detected**  ",
            "> This appears to be a significant version upgrade. "
            "Focus on subsystem changes below.",
        ]

    if diff.debug:
        out += ["", "#### Debug/Format Changes", "", *_bullets(diff.debug)]

    if diff.subsystem:
        count = len(diff.subsystem)
        out += ["", "#### Subsystem Changes", ""]
        if count > SUBSYSTEM_PREVIEW:
            out += [f"*Showing top {SUBSYSTEM_PREVIEW} of {count} changes*  ", ""]
            out += _bullets(diff.subsystem[:SUBSYSTEM_PREVIEW])
            out.append("")
            out += _details(f"Show all {count} changes", _bullets(diff.subsystem))
        else:
            out += _bullets(diff.subsystem)

    if diff.driver:
        count = len(diff.driver)
        out += ["", "#### Driver Changes", "", f"*{count} driver-related changes detected*  ", ""]
        out += _details("Driver change details", _bullets(diff.driver))

    if diff.changed:
        out += ["", "#### Changed Option Values", ""]
        out += [f"* [~] {c.name}={c.old} → {c.new}" for c in diff.changed]

    if diff.version:
        count = len(diff.version)
        out += ["", "#### Version/Trivial Changes", ""]
        if count > VERSION_COLLAPSE_OVER:
            out += [f"*Showing {VERSION_PREVIEW} of {count} changes*  ", ""]
            out += _version_bullets(diff.version[:VERSION_PREVIEW])
            out.append("")
            out += _details(f"Show all {count} changes", _version_bullets(diff.version))
        else:
            out += _version_bullets(diff.version)

    return "\n".join(out) + "\n"


def render_raw_fallback(lines: list[str], reason: str = "") -> str:
    """Wrap the raw diff in a warning block."""
    out = [
        "",
        "> **Warning:** The configuration diff could not be analyzed automatically.",
    ]
    if reason:
        out.append(f"> Reason: {reason}")
    out += ["", "```diff", *(line.rstrip("\n") for line in lines), "```"]
    return "\n".join(out) + "\n"


def render_report(lines: list[str]) -> str:
    """Analyze and render diff lines, never failing.

    Any error during classification or rendering yields the raw diff
    wrapped in a warning block instead.
    """
    try:
        return render_markdown(analyze(lines))
    except Exception as e:  # noqa: BLE001 - the report must always be produced
        logger.warning("Config diff analysis failed, embedding raw diff: %s", e, exc_info=True)
        return render_raw_fallback(lines, reason=str(e))


@dataclass
class ReportPaths:
    """Files written for one flavor's configuration report."""

    raw_diff: Path
    enriched: Path


def report_paths(release_dir: Path, flavor: Flavor) -> ReportPaths:
    """Return the raw and enriched report locations for a flavor."""
    return ReportPaths(
        raw_diff=release_dir / f"config_changes-{flavor.value}.diff",
        enriched=release_dir / f"config_changes-{flavor.value}-enriched.md",
    )


def write_reports(
    baseline_path: Path,
    resolved_path: Path,
    release_dir: Path,
    flavor: Flavor,
) -> ReportPaths:
    """Diff baseline against resolved config and write both report files."""
    paths = report_paths(release_dir, flavor)

    logger.info("Generating kernel config differences for '%s'", flavor.value)
    lines = diff_config_files(baseline_path, resolved_path)
    write_diff(lines, paths.raw_diff)
    logger.info("Config changes stored at %s", paths.raw_diff)

    paths.enriched.write_text(render_report(lines), encoding="utf-8")
    logger.info("Enriched config changes stored at %s", paths.enriched)
    return paths


__all__ = [
    "ChangedOption",
    "ConfigDiff",
    "DEBUG_PATTERN",
    "DRIVER_PATTERN",
    "DiffEntry",
    "DiffParseError",
    "MAJOR_JUMP_THRESHOLD",
    "NO_CHANGES",
    "ReportPaths",
    "SUBSYSTEM_PATTERN",
    "VERSION_PATTERN",
    "analyze",
    "parse_diff_lines",
    "render_markdown",
    "render_raw_fallback",
    "render_report",
    "report_paths",
    "write_reports",
]
