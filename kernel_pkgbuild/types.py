"""Shared type definitions for kernel_pkgbuild.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from kernel_pkgbuild.errors import ConfigError

VERSION_PATTERN = re.compile(r"^\d+\.\d+(\.\d+)?$")

# Kernel ARCH values mapped to Debian architecture names
DEBIAN_ARCH_MAP = {
    "x86": "amd64",
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "i386",
    "arm64": "arm64",
    "aarch64": "arm64",
    "arm": "armhf",
    "riscv": "riscv64",
    "riscv64": "riscv64",
    "powerpc": "ppc64el",
    "ppc64el": "ppc64el",
    "s390": "s390x",
    "loongarch": "loong64",
}


class Flavor(str, Enum):
    """Kernel build profile."""

    VANILLA = "vanilla"
    VM = "vm"
    RT = "rt"

    @property
    def package_name(self) -> str:
        """Name of the metapackage and source package for this flavor."""
        return f"{self.value}-kernel"

    @property
    def localversion_prefix(self) -> str:
        """Local-version fragment placed before the suffix."""
        return _LOCALVERSION_PREFIX[self]

    @property
    def description(self) -> str:
        """One-line description used in release notes."""
        return _FLAVOR_DESCRIPTION[self]


_LOCALVERSION_PREFIX = {
    Flavor.VANILLA: "",
    Flavor.VM: "-vm",
    Flavor.RT: "-rt",
}

_FLAVOR_DESCRIPTION = {
    Flavor.VANILLA: "full Debian-based config",
    Flavor.VM: "minimal driver footprint for virtual machines",
    Flavor.RT: "real-time configuration",
}


class Toolchain(str, Enum):
    """Compiler toolchain used for the build."""

    NATIVE = "native"
    LLVM = "llvm"

    @property
    def archive_tag(self) -> str:
        """Tag inserted into archive names."""
        return "_llvm" if self is Toolchain.LLVM else ""


class ArtifactKind(str, Enum):
    """Kind of a produced package file."""

    IMAGE = "image"
    HEADERS = "headers"
    LIBC = "libc"
    META = "meta"
    DEBUG = "debug"
    OTHER = "other"


class RunMode(str, Enum):
    """Entry mode of a pipeline invocation."""

    BUILD = "build"
    PUBLISH = "publish"
    CLEAN = "clean"
    CONFIGURE = "configure"


def is_debug_package(filename: str) -> bool:
    """Check whether a package name marks a debugging-symbol package."""
    name = filename.lower()
    return "dbgsym" in name or "dbg" in name


def classify_package(filename: str) -> ArtifactKind:
    """Classify a Debian package by its filename.

    Args:
        filename: Package filename (e.g. linux-image-6.9.3-custom_6.9.3-1_amd64.deb).

    Returns:
        ArtifactKind for the package.
    """
    name = filename.lower()

    # Debug check first since linux-image-*-dbg also matches linux-image
    if is_debug_package(name):
        return ArtifactKind.DEBUG
    if name.startswith("linux-image-"):
        return ArtifactKind.IMAGE
    if name.startswith("linux-headers-"):
        return ArtifactKind.HEADERS
    if name.startswith("linux-libc-dev"):
        return ArtifactKind.LIBC
    if any(name.startswith(f"{f.package_name}_") for f in Flavor):
        return ArtifactKind.META

    return ArtifactKind.OTHER


def debian_arch(arch: str) -> str:
    """Map a kernel ARCH value to its Debian architecture name."""
    return DEBIAN_ARCH_MAP.get(arch, arch)


def normalize_version(version: str) -> str:
    """Pad a major.minor version to major.minor.0."""
    if version.count(".") == 1:
        return f"{version}.0"
    return version


@dataclass(frozen=True)
class BuildRequest:
    """One pipeline invocation, fixed for the duration of the run.

    Attributes:
        version: Kernel version (major.minor[.patch]).
        flavor: Kernel build profile.
        arch: Kernel ARCH value (e.g. x86, arm64).
        cross_compile: Cross-toolchain prefix; empty for native builds.
        toolchain: Native GCC or LLVM/Clang.
        suffix: Custom local-version suffix; None uses the default.
        add_patches: Apply patches from the patch directory.
        upload_packagecloud: Push packages to packagecloud.
        upload_nexus: Push packages to the Nexus repository.
        publish_only: Skip the build and publish a release.
        clean_only: Skip the build and clean the work area.
        interactive_configure: Run menuconfig and archive the result.
    """

    version: str
    flavor: Flavor = Flavor.VANILLA
    arch: str = "x86"
    cross_compile: str = ""
    toolchain: Toolchain = Toolchain.NATIVE
    suffix: str | None = None
    add_patches: bool = False
    upload_packagecloud: bool = False
    upload_nexus: bool = False
    publish_only: bool = False
    clean_only: bool = False
    interactive_configure: bool = False

    def __post_init__(self) -> None:
        """Validate the request after initialization."""
        if not VERSION_PATTERN.match(self.version):
            raise ConfigError(
                f"Invalid kernel version '{self.version}': expected major.minor[.patch]"
            )
        modes = [self.publish_only, self.clean_only, self.interactive_configure]
        if sum(modes) > 1:
            raise ConfigError(
                "--publish, --clean and --menuconfig are mutually exclusive"
            )
        if self.suffix is not None and not re.match(r"^[A-Za-z0-9.+~]+$", self.suffix):
            raise ConfigError(f"Invalid suffix '{self.suffix}'")

    @property
    def is_cross(self) -> bool:
        """Whether a cross-compiler prefix is set."""
        return bool(self.cross_compile)

    @property
    def normalized_version(self) -> str:
        """Version padded to three fields."""
        return normalize_version(self.version)

    @property
    def deb_arch(self) -> str:
        """Debian architecture name for the target."""
        return debian_arch(self.arch)

    @property
    def mode(self) -> RunMode:
        """Entry mode selected by the request flags."""
        if self.interactive_configure:
            return RunMode.CONFIGURE
        if self.publish_only:
            return RunMode.PUBLISH
        if self.clean_only:
            return RunMode.CLEAN
        return RunMode.BUILD

    def effective_suffix(self, default: str) -> str:
        """Return the custom suffix, or the default when none was given."""
        return self.suffix or default


@dataclass
class ArtifactInfo:
    """Information about a produced package file."""

    path: Path
    kind: ArtifactKind
    flavor: Flavor
    version: str
    arch: str
    size_bytes: int
    sha256: str

    @property
    def filename(self) -> str:
        return self.path.name


__all__ = [
    "ArtifactInfo",
    "ArtifactKind",
    "BuildRequest",
    "DEBIAN_ARCH_MAP",
    "Flavor",
    "RunMode",
    "Toolchain",
    "VERSION_PATTERN",
    "classify_package",
    "debian_arch",
    "is_debug_package",
    "normalize_version",
]
