"""Tests for flavor metapackage generation."""

import pytest

from kernel_pkgbuild.builds.metapackage import (
    MetapackageError,
    build_metapackage,
    build_spec,
    compute_localversion,
    render_control,
)
from kernel_pkgbuild.types import Flavor

MAINTAINER = "Jane Builder <jane@example.com>"


class TestComputeLocalversion:
    """Tests for compute_localversion function."""

    @pytest.mark.parametrize(
        ("flavor", "expected"),
        [
            (Flavor.VANILLA, "-toeirei"),
            (Flavor.VM, "-vm-toeirei"),
            (Flavor.RT, "-rt-toeirei"),
        ],
    )
    def test_localversion(self, flavor, expected):
        """Should prefix vm and rt builds."""
        assert compute_localversion(flavor, "toeirei") == expected


class TestRenderControl:
    """Tests for render_control function."""

    def test_control_fields(self):
        """Should depend on the matching image, headers and libc."""
        spec = build_spec(Flavor.VM, "6.9", "toeirei", MAINTAINER, "https://k.example", "amd64")
        control = render_control(spec)

        assert spec.version == "6.9.0"
        assert "Package: vm-kernel\n" in control
        assert "Version: 6.9.0-vm-toeirei\n" in control
        assert (
            "Depends: linux-image-6.9.0-vm-toeirei, linux-headers-6.9.0-vm-toeirei, "
            "linux-libc-dev\n"
        ) in control
        assert "Provides: kernel-image\n" in control
        assert "Conflicts: kernel-image\n" in control
        assert "Architecture: amd64\n" in control
        assert "Homepage: https://k.example\n" in control
        assert "Description: Meta-Package for the vm-kernel built on kernel version 6.9.0\n" in (
            control
        )


class TestBuildMetapackage:
    """Tests for build_metapackage function."""

    def test_runs_equivs(self, tmp_path, fake_runner):
        """Should write the cfg and run equivs-build in the package dir."""
        spec = build_spec(Flavor.RT, "6.9.3", "toeirei", MAINTAINER, "https://k.example", "amd64")

        pkg_dir = build_metapackage(tmp_path, spec, fake_runner)

        cfg = pkg_dir / "rt-kernel.cfg"
        assert pkg_dir == tmp_path / "rt-kernel"
        assert cfg.read_text() == render_control(spec)
        assert fake_runner.calls == [["equivs-build", str(cfg)]]
        assert fake_runner.cwds == [pkg_dir]

    def test_equivs_failure(self, tmp_path, fake_runner):
        """Should wrap equivs-build failures."""
        fake_runner.on("equivs-build", returncode=1)
        spec = build_spec(Flavor.VM, "6.9.3", "toeirei", MAINTAINER, "https://k.example", "amd64")

        with pytest.raises(MetapackageError):
            build_metapackage(tmp_path, spec, fake_runner)
