"""Tests for quilt-format source package generation."""

import tarfile
import zipfile
from datetime import datetime, timezone

import pytest

from kernel_pkgbuild.builds.source_package import (
    SourcePackageError,
    create_orig_tarball,
    generate_source_package,
    render_changelog,
    render_control,
    write_debian_dir,
)
from kernel_pkgbuild.types import Flavor

MAINTAINER = "Jane Builder <jane@example.com>"


@pytest.fixture
def source_dir(tmp_path):
    path = tmp_path / "build" / "linux-6.9.3"
    path.mkdir(parents=True)
    (path / "Makefile").write_text("VERSION = 6\n")
    return path


def fake_dpkg_source(argv, cwd):
    """Write the files dpkg-source -b would leave next to the tree."""
    parent = cwd.parent
    (parent / "vm-kernel_6.9.3-toeirei.dsc").write_text("Format: 3.0 (quilt)\n")
    (parent / "vm-kernel_6.9.3-toeirei.debian.tar.xz").write_bytes(b"debian")
    return None


class TestRenderers:
    """Tests for debian/ metadata rendering."""

    def test_control(self):
        """Should declare the source and binary package."""
        control = render_control("vm-kernel", "6.9.3", "toeirei", MAINTAINER)

        assert control.startswith("Source: vm-kernel\n")
        assert f"Maintainer: {MAINTAINER}\n" in control
        assert "Build-Depends: debhelper-compat (= 13), bc, flex, bison, libssl-dev\n" in control
        assert "Package: vm-kernel\n" in control
        assert "6.9.3-toeirei" in control

    def test_changelog(self):
        """Should write one entry with an RFC 2822 date."""
        now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        changelog = render_changelog("vm-kernel", "6.9.3", "toeirei", MAINTAINER, now=now)

        assert changelog.startswith("vm-kernel (6.9.3-toeirei) unstable; urgency=low\n")
        assert f" -- {MAINTAINER}  Sat, 01 Jun 2024 12:00:00 +0000\n" in changelog

    def test_write_debian_dir(self, source_dir):
        """Should write the quilt metadata files."""
        debian = write_debian_dir(source_dir, "vm-kernel", "6.9.3", "toeirei", MAINTAINER)

        assert (debian / "compat").read_text() == "13\n"
        assert (debian / "source" / "format").read_text() == "3.0 (quilt)\n"
        assert (debian / "source" / "local-options").exists()
        assert (debian / "control").exists()
        assert (debian / "changelog").exists()


class TestCreateOrigTarball:
    """Tests for create_orig_tarball function."""

    def test_orig_next_to_tree(self, source_dir):
        """Should archive the tree under its own directory name."""
        orig = create_orig_tarball(source_dir, "vm-kernel", "6.9.3")

        assert orig == source_dir.parent / "vm-kernel_6.9.3.orig.tar.gz"
        with tarfile.open(orig) as tar:
            assert "linux-6.9.3/Makefile" in tar.getnames()


class TestGenerateSourcePackage:
    """Tests for generate_source_package function."""

    def test_generates_archive(self, source_dir, tmp_path, fake_runner):
        """Should zip dpkg-source outputs and clean them up."""
        fake_runner.on("dpkg-source", effect=fake_dpkg_source)
        release = tmp_path / "release"

        package = generate_source_package(
            source_dir, release, Flavor.VM, "6.9.3", "toeirei", MAINTAINER, fake_runner
        )

        assert package.archive == release / "vm-kernel_6.9.3_toeirei_source.zip"
        assert package.checksum.name == "vm-kernel_6.9.3_toeirei_source.zip.sha256sum"
        with zipfile.ZipFile(package.archive) as zf:
            assert sorted(zf.namelist()) == [
                "vm-kernel_6.9.3-toeirei.debian.tar.xz",
                "vm-kernel_6.9.3-toeirei.dsc",
                "vm-kernel_6.9.3.orig.tar.gz",
            ]

        assert fake_runner.calls == [["dpkg-source", "-b", "."]]
        assert fake_runner.cwds == [source_dir]
        assert list(source_dir.parent.glob("vm-kernel_6.9.3*")) == []

    def test_dpkg_source_failure(self, source_dir, tmp_path, fake_runner):
        """Should wrap dpkg-source failures."""
        fake_runner.on("dpkg-source", returncode=2)

        with pytest.raises(SourcePackageError) as exc_info:
            generate_source_package(
                source_dir, tmp_path / "release", Flavor.VM, "6.9.3", "toeirei",
                MAINTAINER, fake_runner,
            )

        assert "dpkg-source failed" in str(exc_info.value)
