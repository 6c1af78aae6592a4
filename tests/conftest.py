"""Shared fixtures.

FakeRunner stands in for CommandRunner so that no test invokes a real
compiler, packaging tool or git.
"""

import os
from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest

from kernel_pkgbuild.config import Settings
from kernel_pkgbuild.process import CommandError, CommandResult, CommandRunner

Effect = Callable[[list[str], Path | None], int | None]


class FakeRunner(CommandRunner):
    """Recording CommandRunner.

    Responses are registered with on(); a call matches when every given
    token appears in its argv. The most recently registered match wins.
    An effect may create files and may return an exit code override.
    """

    def __init__(self, missing: tuple[str, ...] = ()) -> None:
        super().__init__(log_path=None)
        self.calls: list[list[str]] = []
        self.cwds: list[Path | None] = []
        self.stdin_paths: list[Path | None] = []
        self.envs: list[dict[str, str] | None] = []
        self.interactive: list[list[str]] = []
        self.missing = set(missing)
        self._responses: list[tuple[tuple[str, ...], int, str, str, Effect | None]] = []

    def on(
        self,
        *tokens: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Effect | None = None,
    ) -> None:
        self._responses.append((tokens, returncode, stdout, stderr, effect))

    def which(self, name: str) -> str | None:
        return None if name in self.missing else f"/usr/bin/{name}"

    def run(
        self,
        argv: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        check: bool = True,
        capture: bool = True,
        stdin_path: Path | None = None,
    ) -> CommandResult:
        self.calls.append(list(argv))
        self.cwds.append(cwd)
        self.stdin_paths.append(stdin_path)
        self.envs.append(env)

        returncode, stdout, stderr = 0, "", ""
        for tokens, rc, out, err, effect in reversed(self._responses):
            if all(token in argv for token in tokens):
                returncode, stdout, stderr = rc, out, err
                if effect is not None:
                    override = effect(list(argv), cwd)
                    if override is not None:
                        returncode = override
                break

        result = CommandResult(
            argv=list(argv), returncode=returncode, stdout=stdout, stderr=stderr
        )
        if check and not result.ok:
            raise CommandError(
                f"Command failed with exit code {returncode}: {' '.join(argv)}",
                exit_code=returncode,
                stderr=stderr,
            )
        return result

    def run_interactive(self, argv: list[str], cwd: Path | None = None) -> None:
        self.interactive.append(list(argv))

    def called(self, *tokens: str) -> list[list[str]]:
        """Return recorded calls containing every token."""
        return [argv for argv in self.calls if all(t in argv for t in tokens)]


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Provide a recording command runner."""
    return FakeRunner()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with every path inside tmp_path, isolated from the environment."""
    with patch.dict(os.environ, {}, clear=True):
        return Settings(
            build_path=tmp_path / "build",
            config_dir=tmp_path / "config",
            release_dir=tmp_path / "release",
            patch_dir=tmp_path / "patches",
            git_repo_dir=tmp_path / "gitrepo",
            maintainer="Jane Builder <jane@example.com>",
            homepage="https://kernels.example.com",
            jobs=4,
            _env_file=None,
        )
