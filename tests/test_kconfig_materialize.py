"""Tests for configuration materializer."""

import pytest

from kernel_pkgbuild.errors import ConfigError
from kernel_pkgbuild.kconfig.dotconfig import KernelConfig
from kernel_pkgbuild.kconfig.materialize import (
    BaselineMissingError,
    apply_rt_tweaks,
    apply_toolchain_tweaks,
    archive_config,
    disable_signing,
    materialize,
    run_menuconfig,
    select_baseline,
)
from kernel_pkgbuild.process import CommandError, MakeCommand
from kernel_pkgbuild.types import BuildRequest, Flavor, Toolchain

BASELINE = """\
CONFIG_64BIT=y
CONFIG_SYSTEM_TRUSTED_KEYS="debian/certs/debian-uefi-certs.pem"
CONFIG_SYSTEM_REVOCATION_KEYS="debian/certs/revoked.pem"
CONFIG_LTO_NONE=y
CONFIG_SCHED_DEBUG=y
"""


@pytest.fixture
def config_dir(tmp_path):
    path = tmp_path / "config"
    path.mkdir()
    return path


@pytest.fixture
def source_dir(tmp_path):
    path = tmp_path / "linux-6.9.3"
    path.mkdir()
    return path


class TestSelectBaseline:
    """Tests for select_baseline function."""

    def test_prefers_arch_specific(self, config_dir):
        """Should pick <flavor>-<arch>.config when present."""
        (config_dir / "vm.config").write_text(BASELINE)
        (config_dir / "vm-x86.config").write_text(BASELINE)

        assert select_baseline(config_dir, Flavor.VM, "x86", cross=False) == (
            config_dir / "vm-x86.config"
        )

    def test_generic_for_native(self, config_dir):
        """Should fall back to <flavor>.config for native builds."""
        (config_dir / "vm.config").write_text(BASELINE)

        assert select_baseline(config_dir, Flavor.VM, "x86", cross=False) == (
            config_dir / "vm.config"
        )

    def test_cross_requires_arch_specific(self, config_dir):
        """Should not use the generic baseline for cross builds."""
        (config_dir / "vm.config").write_text(BASELINE)

        with pytest.raises(BaselineMissingError) as exc_info:
            select_baseline(config_dir, Flavor.VM, "arm64", cross=True)

        assert "vm-arm64.config" in str(exc_info.value)

    def test_missing(self, config_dir):
        """Should fail when no baseline exists."""
        with pytest.raises(BaselineMissingError) as exc_info:
            select_baseline(config_dir, Flavor.RT, "x86", cross=False)

        assert exc_info.value.code == "baseline_missing"


class TestTweaks:
    """Tests for the automated configuration tweaks."""

    def test_llvm_enables_thin_lto(self):
        """Should switch to thin LTO for LLVM builds."""
        config = KernelConfig.from_text(BASELINE)
        apply_toolchain_tweaks(config, Toolchain.LLVM)

        assert config.get("LTO_CLANG") == "y"
        assert config.get("LTO_CLANG_THIN") == "y"
        assert config.get("LTO_NONE") == "n"

    def test_native_untouched(self):
        """Should leave native builds unchanged."""
        config = KernelConfig.from_text(BASELINE)
        apply_toolchain_tweaks(config, Toolchain.NATIVE)

        assert config.to_text() == BASELINE

    def test_rt_preemption(self):
        """Should enable full preemption for the rt flavor."""
        config = KernelConfig.from_text(BASELINE)
        apply_rt_tweaks(config, Flavor.RT)

        assert config.get("PREEMPT_RT") == "y"
        assert config.get("PREEMPT_LAZY") == "y"
        assert config.get("PREEMPT") == "3"
        assert config.get("SCHED_DEBUG") == "n"

    def test_rt_tweaks_only_for_rt(self):
        """Should ignore other flavors."""
        config = KernelConfig.from_text(BASELINE)
        apply_rt_tweaks(config, Flavor.VM)

        assert "PREEMPT_RT" not in config

    def test_disable_signing(self):
        """Should clear the trusted keys and disable revocation keys."""
        config = KernelConfig.from_text(BASELINE)
        disable_signing(config)

        text = config.to_text()
        assert 'CONFIG_SYSTEM_TRUSTED_KEYS=""' in text
        assert "# CONFIG_SYSTEM_REVOCATION_KEYS is not set" in text
        assert "debian-uefi-certs" not in text


class TestMaterialize:
    """Tests for materialize function."""

    def test_materialize_llvm_rt(self, config_dir, source_dir, fake_runner):
        """Should copy, tweak and resolve the configuration."""
        (config_dir / "rt.config").write_text(BASELINE)
        request = BuildRequest(version="6.9.3", flavor=Flavor.RT, toolchain=Toolchain.LLVM)
        make = MakeCommand(llvm=True, jobs=2)

        baseline = materialize(source_dir, config_dir, request, make, fake_runner)

        assert baseline == config_dir / "rt.config"
        config = KernelConfig.load(source_dir / ".config")
        assert config.get("LTO_CLANG_THIN") == "y"
        assert config.get("PREEMPT_RT") == "y"
        assert config.get("SYSTEM_TRUSTED_KEYS") == '""'
        # baseline itself is untouched
        assert (config_dir / "rt.config").read_text() == BASELINE

        olddefconfig = fake_runner.called("olddefconfig")
        assert len(olddefconfig) == 1
        assert "LLVM=1" in olddefconfig[0]
        assert fake_runner.cwds[0] == source_dir

    def test_olddefconfig_failure_propagates(self, config_dir, source_dir, fake_runner):
        """Should surface make failures."""
        (config_dir / "vanilla.config").write_text(BASELINE)
        fake_runner.on("olddefconfig", returncode=2)

        with pytest.raises(CommandError) as exc_info:
            materialize(
                source_dir, config_dir, BuildRequest(version="6.9.3"), MakeCommand(), fake_runner
            )

        assert exc_info.value.code == "command_failed"


class TestArchiveConfig:
    """Tests for archive_config function."""

    def test_archives_resolved_config(self, config_dir, source_dir):
        """Should overwrite the baseline with the resolved config."""
        baseline = config_dir / "vm.config"
        baseline.write_text("CONFIG_OLD=y\n")
        (source_dir / ".config").write_text("CONFIG_NEW=y\n")

        archive_config(source_dir, baseline)

        assert baseline.read_text() == "CONFIG_NEW=y\n"

    def test_missing_dotconfig(self, config_dir, source_dir):
        """Should fail when the tree has no .config."""
        with pytest.raises(ConfigError):
            archive_config(source_dir, config_dir / "vm.config")


class TestRunMenuconfig:
    """Tests for run_menuconfig function."""

    def test_requires_terminal(self, source_dir, fake_runner):
        """Should refuse to run without a terminal."""
        with pytest.raises(ConfigError) as exc_info:
            run_menuconfig(source_dir, MakeCommand(), fake_runner, isatty=lambda: False)

        assert "interactive terminal" in str(exc_info.value)
        assert fake_runner.interactive == []

    def test_runs_interactively(self, source_dir, fake_runner):
        """Should run menuconfig attached to the terminal."""
        run_menuconfig(source_dir, MakeCommand(jobs=8), fake_runner, isatty=lambda: True)

        assert fake_runner.interactive == [["make", "ARCH=x86", "CROSS_COMPILE=", "menuconfig"]]
