"""External process execution.

This module handles:
- Running external tools from explicit argument lists (no shell)
- Capturing output or streaming it to the terminal / a log file
- Composing kernel `make` invocations with toolchain variables

Every external call in the pipeline goes through CommandRunner so that
tests can substitute a recording fake.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from kernel_pkgbuild.errors import COMMAND_FAILED, COMMAND_NOT_FOUND, PipelineError
from kernel_pkgbuild.types import Toolchain

if TYPE_CHECKING:
    from kernel_pkgbuild.config import Settings
    from kernel_pkgbuild.types import BuildRequest

logger = logging.getLogger(__name__)

# Lines of stderr kept in CommandError messages
STDERR_TAIL_LINES = 20


class CommandError(PipelineError):
    """Raised when an external command exits non-zero."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
        code: str = COMMAND_FAILED,
    ) -> None:
        super().__init__(message, code)
        self.exit_code = exit_code
        self.stderr = stderr


class CommandNotFoundError(PipelineError):
    """Raised when a required executable is not installed."""

    def __init__(self, name: str, code: str = COMMAND_NOT_FOUND) -> None:
        super().__init__(f"{name} is required but not found in PATH", code)
        self.name = name


@dataclass
class CommandResult:
    """Result of an external command.

    Attributes:
        argv: The argument list that was executed.
        returncode: Process exit code.
        stdout: Captured stdout ('' when not captured).
        stderr: Captured stderr ('' when not captured).
        duration: Wall-clock seconds.
    """

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _tail(text: str, lines: int = STDERR_TAIL_LINES) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


class CommandRunner:
    """Execute external commands from argument lists.

    Args:
        log_path: Optional file receiving the output of uncaptured commands.
        timeout: Optional per-command timeout in seconds.
    """

    def __init__(self, log_path: Path | None = None, timeout: int | None = None) -> None:
        self.log_path = log_path
        self.timeout = timeout

    def which(self, name: str) -> str | None:
        """Locate an executable on PATH."""
        return shutil.which(name)

    def require(self, *names: str) -> None:
        """Ensure every named executable is installed.

        Raises:
            CommandNotFoundError: For the first missing executable.
        """
        for name in names:
            if self.which(name) is None:
                raise CommandNotFoundError(name)

    def run(
        self,
        argv: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        check: bool = True,
        capture: bool = True,
        stdin_path: Path | None = None,
    ) -> CommandResult:
        """Run a command.

        Args:
            argv: Command as list of strings.
            cwd: Working directory.
            env: Environment overrides merged over os.environ.
            check: Raise CommandError on non-zero exit.
            capture: Capture stdout/stderr; otherwise stream them to the
                log file (if configured) or the terminal.
            stdin_path: Optional file fed to stdin.

        Returns:
            CommandResult with exit code and captured output.

        Raises:
            CommandError: If check is set and the command fails or times out.
            CommandNotFoundError: If the executable does not exist.
        """
        cmd_str = shlex.join(argv)
        logger.debug("Running: %s (cwd=%s)", cmd_str, cwd or ".")

        full_env: dict[str, str] | None = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        started = time.monotonic()
        stdin = stdin_path.open("rb") if stdin_path else None
        log_file = None
        try:
            if capture:
                completed = subprocess.run(
                    argv,
                    cwd=cwd,
                    env=full_env,
                    stdin=stdin,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            else:
                if self.log_path is not None:
                    self.log_path.parent.mkdir(parents=True, exist_ok=True)
                    log_file = self.log_path.open("a")
                    log_file.write(f"# Command: {cmd_str}\n")
                    log_file.write(f"# Started: {datetime.now(timezone.utc).isoformat()}\n")
                    log_file.write(f"# CWD: {cwd or os.getcwd()}\n")
                    log_file.flush()
                completed = subprocess.run(
                    argv,
                    cwd=cwd,
                    env=full_env,
                    stdin=stdin,
                    stdout=log_file,
                    stderr=subprocess.STDOUT if log_file else None,
                    timeout=self.timeout,
                    check=False,
                )
        except FileNotFoundError as e:
            raise CommandNotFoundError(argv[0]) from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(
                f"Command timed out after {self.timeout} seconds: {cmd_str}",
                exit_code=-1,
                code="command_timeout",
            ) from e
        finally:
            if stdin is not None:
                stdin.close()
            if log_file is not None:
                log_file.close()

        result = CommandResult(
            argv=list(argv),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration=time.monotonic() - started,
        )

        if check and not result.ok:
            detail = _tail(result.stderr or result.stdout)
            message = f"Command failed with exit code {result.returncode}: {cmd_str}"
            if detail:
                message = f"{message}\n{detail}"
            raise CommandError(message, exit_code=result.returncode, stderr=result.stderr)

        return result

    def run_interactive(self, argv: list[str], cwd: Path | None = None) -> None:
        """Run a command attached to the controlling terminal.

        Raises:
            CommandError: If the command exits non-zero.
        """
        logger.info("Running interactively: %s", shlex.join(argv))
        try:
            returncode = subprocess.call(argv, cwd=cwd)
        except FileNotFoundError as e:
            raise CommandNotFoundError(argv[0]) from e
        if returncode != 0:
            raise CommandError(
                f"Command failed with exit code {returncode}: {shlex.join(argv)}",
                exit_code=returncode,
            )


@dataclass(frozen=True)
class MakeCommand:
    """Builder for kernel `make` invocations.

    Attributes:
        arch: Kernel ARCH value.
        cross_compile: Cross-toolchain prefix ('' for native).
        llvm: Substitute the LLVM toolchain (LLVM=1 LLVM_IAS=1).
        cc: Compiler command passed as CC and HOSTCC.
        ld: Custom linker passed as LD.
        jobs: Parallel job count (None = make default).
    """

    arch: str = "x86"
    cross_compile: str = ""
    llvm: bool = False
    cc: str = ""
    ld: str = ""
    jobs: int | None = None
    extra: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_request(cls, settings: Settings, request: BuildRequest) -> MakeCommand:
        """Compose the make builder for one pipeline run."""
        return cls(
            arch=request.arch,
            cross_compile=request.cross_compile,
            llvm=request.toolchain is Toolchain.LLVM,
            cc=settings.ccopts,
            ld=settings.ld,
            jobs=settings.effective_jobs,
        )

    def argv(self, *targets: str, parallel: bool = True, **variables: str) -> list[str]:
        """Compose a make command line.

        Args:
            targets: Make targets (none = default target).
            parallel: Pass -jN when jobs is set.
            variables: Additional VAR=value assignments.

        Returns:
            Command as list of strings suitable for subprocess.
        """
        cmd = ["make"]
        if parallel and self.jobs:
            cmd.append(f"-j{self.jobs}")

        cmd.append(f"ARCH={self.arch}")
        cmd.append(f"CROSS_COMPILE={self.cross_compile}")

        if self.llvm:
            cmd.extend(["LLVM=1", "LLVM_IAS=1"])
        if self.cc:
            cmd.extend([f"CC={self.cc}", f"HOSTCC={self.cc}"])
        if self.ld:
            cmd.append(f"LD={self.ld}")

        for key, value in {**self.extra, **variables}.items():
            cmd.append(f"{key}={value}")

        cmd.extend(targets)
        return cmd


__all__ = [
    "CommandError",
    "CommandNotFoundError",
    "CommandResult",
    "CommandRunner",
    "MakeCommand",
]
