"""Tests for shared types module."""

import pytest

from kernel_pkgbuild.errors import ConfigError
from kernel_pkgbuild.types import (
    ArtifactKind,
    BuildRequest,
    Flavor,
    RunMode,
    Toolchain,
    classify_package,
    debian_arch,
    is_debug_package,
    normalize_version,
)


class TestEnums:
    """Test enum definitions."""

    def test_flavor_values(self) -> None:
        """Flavor should have the three build profiles."""
        assert [f.value for f in Flavor] == ["vanilla", "vm", "rt"]

    def test_flavor_package_names(self) -> None:
        """Each flavor maps to its metapackage name."""
        assert Flavor.VANILLA.package_name == "vanilla-kernel"
        assert Flavor.VM.package_name == "vm-kernel"
        assert Flavor.RT.package_name == "rt-kernel"

    def test_flavor_localversion_prefix(self) -> None:
        """Only vm and rt carry a local-version prefix."""
        assert Flavor.VANILLA.localversion_prefix == ""
        assert Flavor.VM.localversion_prefix == "-vm"
        assert Flavor.RT.localversion_prefix == "-rt"

    def test_every_flavor_has_description(self) -> None:
        """Release notes need a description for every flavor."""
        for flavor in Flavor:
            assert flavor.description

    def test_toolchain_archive_tag(self) -> None:
        """Only LLVM builds are tagged in archive names."""
        assert Toolchain.NATIVE.archive_tag == ""
        assert Toolchain.LLVM.archive_tag == "_llvm"


class TestPackageClassification:
    """Test package filename helpers."""

    @pytest.mark.parametrize(
        ("filename", "kind"),
        [
            ("linux-image-6.9.3-toeirei_6.9.3-1_amd64.deb", ArtifactKind.IMAGE),
            ("linux-headers-6.9.3-toeirei_6.9.3-1_amd64.deb", ArtifactKind.HEADERS),
            ("linux-libc-dev_6.9.3-1_amd64.deb", ArtifactKind.LIBC),
            ("vm-kernel_6.9.3-vm-toeirei_amd64.deb", ArtifactKind.META),
            ("linux-image-6.9.3-toeirei-dbg_6.9.3-1_amd64.deb", ArtifactKind.DEBUG),
            ("something-else_1.0_all.deb", ArtifactKind.OTHER),
        ],
    )
    def test_classify_package(self, filename: str, kind: ArtifactKind) -> None:
        """Packages should be classified by filename."""
        assert classify_package(filename) == kind

    def test_debug_detection(self) -> None:
        """dbg and dbgsym both mark debug packages."""
        assert is_debug_package("linux-image-6.9.3-dbg_6.9.3-1_amd64.deb")
        assert is_debug_package("linux-image-6.9.3-dbgsym_6.9.3-1_amd64.deb")
        assert not is_debug_package("linux-image-6.9.3_6.9.3-1_amd64.deb")

    def test_debian_arch(self) -> None:
        """Kernel ARCH values map to Debian architecture names."""
        assert debian_arch("x86") == "amd64"
        assert debian_arch("x86_64") == "amd64"
        assert debian_arch("arm64") == "arm64"
        assert debian_arch("amd64") == "amd64"
        assert debian_arch("mips") == "mips"

    def test_normalize_version(self) -> None:
        """major.minor versions are padded to three fields."""
        assert normalize_version("6.10") == "6.10.0"
        assert normalize_version("6.9.3") == "6.9.3"


class TestBuildRequest:
    """Test BuildRequest validation and derived values."""

    def test_defaults(self) -> None:
        """A bare request is a native vanilla x86 build."""
        request = BuildRequest(version="6.9.3")
        assert request.flavor is Flavor.VANILLA
        assert request.toolchain is Toolchain.NATIVE
        assert request.deb_arch == "amd64"
        assert request.is_cross is False
        assert request.mode is RunMode.BUILD

    @pytest.mark.parametrize("version", ["6", "v6.9", "6.9.3-rc1", "", "6.9.3.1"])
    def test_invalid_version(self, version: str) -> None:
        """Versions must be major.minor[.patch]."""
        with pytest.raises(ConfigError):
            BuildRequest(version=version)

    def test_is_immutable(self) -> None:
        """Requests are frozen for the duration of a run."""
        request = BuildRequest(version="6.9.3")
        with pytest.raises(AttributeError):
            request.version = "6.10"  # type: ignore[misc]

    def test_modes_are_exclusive(self) -> None:
        """Only one alternate entry mode may be selected."""
        with pytest.raises(ConfigError):
            BuildRequest(version="6.9.3", publish_only=True, clean_only=True)

    @pytest.mark.parametrize(
        ("kwargs", "mode"),
        [
            ({"publish_only": True}, RunMode.PUBLISH),
            ({"clean_only": True}, RunMode.CLEAN),
            ({"interactive_configure": True}, RunMode.CONFIGURE),
        ],
    )
    def test_mode(self, kwargs: dict[str, bool], mode: RunMode) -> None:
        """Flags select the entry mode."""
        assert BuildRequest(version="6.9.3", **kwargs).mode is mode

    def test_invalid_suffix(self) -> None:
        """Suffixes must be valid in a Debian version."""
        with pytest.raises(ConfigError):
            BuildRequest(version="6.9.3", suffix="bad suffix")

    def test_effective_suffix(self) -> None:
        """The default suffix is used when none is given."""
        assert BuildRequest(version="6.9.3").effective_suffix("toeirei") == "toeirei"
        assert BuildRequest(version="6.9.3", suffix="lab").effective_suffix("toeirei") == "lab"

    def test_cross_request(self) -> None:
        """A cross prefix marks the request as cross."""
        request = BuildRequest(version="6.9", arch="arm64", cross_compile="aarch64-linux-gnu-")
        assert request.is_cross is True
        assert request.deb_arch == "arm64"
        assert request.normalized_version == "6.9.0"
