"""Kernel .config reader and editor.

Edits follow the textual conventions of the kernel's scripts/config:
enabled options are written as ``CONFIG_X=y``, disabled options as
``# CONFIG_X is not set``, and existing lines are replaced in place so
that option order is preserved. New options are appended.
"""

from __future__ import annotations

import re
from pathlib import Path

CONFIG_PREFIX = "CONFIG_"

_SET_RE = re.compile(r"^(CONFIG_[A-Za-z0-9_]+)=(.*)$")
_UNSET_RE = re.compile(r"^# (CONFIG_[A-Za-z0-9_]+) is not set$")


def option_key(name: str) -> str:
    """Return the CONFIG_-prefixed form of an option name."""
    return name if name.startswith(CONFIG_PREFIX) else f"{CONFIG_PREFIX}{name}"


def option_name(key: str) -> str:
    """Return an option name without the CONFIG_ prefix."""
    return key.removeprefix(CONFIG_PREFIX)


def parse_line(line: str) -> tuple[str, str] | None:
    """Parse one .config line.

    Returns:
        (CONFIG_NAME, value) with value 'n' for unset options, or None for
        comments and blank lines.
    """
    line = line.strip()
    if match := _SET_RE.match(line):
        return match.group(1), match.group(2)
    if match := _UNSET_RE.match(line):
        return match.group(1), "n"
    return None


class KernelConfig:
    """In-memory kernel configuration with scripts/config style edits."""

    def __init__(self, lines: list[str] | None = None) -> None:
        self._lines: list[str] = list(lines or [])
        self._index: dict[str, int] = {}
        self._reindex()

    @classmethod
    def from_text(cls, text: str) -> KernelConfig:
        return cls(text.splitlines())

    @classmethod
    def load(cls, path: Path) -> KernelConfig:
        """Read a .config file."""
        return cls.from_text(path.read_text(encoding="utf-8", errors="replace"))

    def _reindex(self) -> None:
        self._index = {}
        for i, line in enumerate(self._lines):
            parsed = parse_line(line)
            if parsed:
                self._index[parsed[0]] = i

    def _put(self, key: str, line: str) -> None:
        if key in self._index:
            self._lines[self._index[key]] = line
        else:
            self._index[key] = len(self._lines)
            self._lines.append(line)

    def enable(self, name: str) -> None:
        key = option_key(name)
        self._put(key, f"{key}=y")

    def disable(self, name: str) -> None:
        key = option_key(name)
        self._put(key, f"# {key} is not set")

    def set_val(self, name: str, value: str | int) -> None:
        key = option_key(name)
        self._put(key, f"{key}={value}")

    def set_str(self, name: str, value: str) -> None:
        key = option_key(name)
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        self._put(key, f'{key}="{escaped}"')

    def get(self, name: str) -> str | None:
        """Return the raw value of an option ('n' when unset, None when absent)."""
        key = option_key(name)
        if key not in self._index:
            return None
        parsed = parse_line(self._lines[self._index[key]])
        return parsed[1] if parsed else None

    def values(self) -> dict[str, str]:
        """Return option name (without CONFIG_) to raw value."""
        result: dict[str, str] = {}
        for key, i in self._index.items():
            parsed = parse_line(self._lines[i])
            if parsed:
                result[option_name(key)] = parsed[1]
        return result

    def to_text(self) -> str:
        return "\n".join(self._lines) + "\n"

    def write(self, path: Path) -> None:
        path.write_text(self.to_text(), encoding="utf-8")

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and option_key(name) in self._index

    def __len__(self) -> int:
        return len(self._index)


__all__ = [
    "CONFIG_PREFIX",
    "KernelConfig",
    "option_key",
    "option_name",
    "parse_line",
]
