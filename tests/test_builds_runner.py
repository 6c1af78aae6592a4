"""Tests for builds/runner.py module.

Tests build command composition and execution.
Uses a recording runner for build execution tests.
"""

import pytest

from kernel_pkgbuild.builds.runner import (
    BuildError,
    build_kernel,
    compose_build_commands,
    localversion_for,
)
from kernel_pkgbuild.process import MakeCommand


class TestComposeBuildCommands:
    """Tests for compose_build_commands function."""

    def test_stage_order(self):
        """Should compile, build modules, then package."""
        stages = compose_build_commands(MakeCommand(jobs=4), "toeirei")

        assert [name for name, _ in stages] == ["compile", "modules", "bindeb-pkg"]

    def test_default_target_first(self):
        """Should run the default target without explicit targets."""
        (_, argv), *_ = compose_build_commands(MakeCommand(jobs=4), "toeirei")

        assert argv == ["make", "-j4", "ARCH=x86", "CROSS_COMPILE="]

    def test_localversion_on_package_stage(self):
        """Should pass LOCALVERSION to bindeb-pkg only."""
        stages = dict(compose_build_commands(MakeCommand(), "lab"))

        assert stages["bindeb-pkg"][-2:] == ["LOCALVERSION=-lab", "bindeb-pkg"]
        assert not any(arg.startswith("LOCALVERSION") for arg in stages["modules"])

    def test_cross_llvm_variables(self):
        """Should carry cross prefix and LLVM on every stage."""
        make = MakeCommand(arch="arm64", cross_compile="aarch64-linux-gnu-", llvm=True)

        for _, argv in compose_build_commands(make, "toeirei"):
            assert "ARCH=arm64" in argv
            assert "CROSS_COMPILE=aarch64-linux-gnu-" in argv
            assert "LLVM=1" in argv

    def test_localversion_for(self):
        """Should prefix the suffix with a dash."""
        assert localversion_for("toeirei") == "-toeirei"


class TestBuildKernel:
    """Tests for build_kernel function."""

    def test_successful_build(self, tmp_path, fake_runner):
        """Should run all stages in the source tree."""
        result = build_kernel(tmp_path, MakeCommand(), "toeirei", fake_runner)

        assert result.localversion == "-toeirei"
        assert list(result.stages) == ["compile", "modules", "bindeb-pkg"]
        assert len(fake_runner.calls) == 3
        assert all(cwd == tmp_path for cwd in fake_runner.cwds)
        assert result.duration >= 0

    def test_stage_failure(self, tmp_path, fake_runner):
        """Should stop at the failing stage and report it."""
        fake_runner.on("modules", returncode=2)

        with pytest.raises(BuildError) as exc_info:
            build_kernel(tmp_path, MakeCommand(), "toeirei", fake_runner)

        assert exc_info.value.stage == "modules"
        assert exc_info.value.exit_code == 2
        assert exc_info.value.code == "build_failed"
        assert fake_runner.called("bindeb-pkg") == []
