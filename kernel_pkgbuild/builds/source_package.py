"""Quilt-format source package generation.

This module handles:
- Creating the pristine <pkg>_<version>.orig.tar.gz next to the tree
- Writing the minimal debian/ packaging metadata
- Running dpkg-source and archiving the results into the release dir
"""

from __future__ import annotations

import logging
import tarfile
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import TYPE_CHECKING

from kernel_pkgbuild.builds.artifacts import write_checksum, zip_files
from kernel_pkgbuild.errors import PACKAGE_ERROR, PipelineError
from kernel_pkgbuild.process import CommandError

if TYPE_CHECKING:
    from kernel_pkgbuild.process import CommandRunner
    from kernel_pkgbuild.types import Flavor

logger = logging.getLogger(__name__)

DEBHELPER_COMPAT = 13
STANDARDS_VERSION = "4.6.2"
BUILD_DEPENDS = "debhelper-compat (= 13), bc, flex, bison, libssl-dev"
SOURCE_FORMAT = "3.0 (quilt)"


class SourcePackageError(PipelineError):
    """Raised when source package generation fails."""

    def __init__(self, message: str, code: str = PACKAGE_ERROR) -> None:
        super().__init__(message, code)


@dataclass
class SourcePackage:
    """Archived source package.

    Attributes:
        archive: Zip holding the .dsc, .orig and .debian tarballs.
        checksum: Its .sha256sum file.
    """

    archive: Path
    checksum: Path


def render_control(package: str, version: str, suffix: str, maintainer: str) -> str:
    """Render debian/control."""
    return (
        f"Source: {package}\n"
        "Section: kernel\n"
        "Priority: optional\n"
        f"Maintainer: {maintainer}\n"
        f"Build-Depends: {BUILD_DEPENDS}\n"
        f"Standards-Version: {STANDARDS_VERSION}\n"
        "\n"
        f"Package: {package}\n"
        "Architecture: any\n"
        f"Description: Custom built Linux kernel {version}-{suffix}\n"
        " Built from upstream sources with the kernel-pkgbuild pipeline\n"
    )


def render_changelog(
    package: str,
    version: str,
    suffix: str,
    maintainer: str,
    now: datetime | None = None,
) -> str:
    """Render a single-entry debian/changelog with an RFC 2822 date."""
    stamp = format_datetime(now or datetime.now(timezone.utc))
    return (
        f"{package} ({version}-{suffix}) unstable; urgency=low\n"
        "\n"
        f"  * Automated build of Linux {version}\n"
        "\n"
        f" -- {maintainer}  {stamp}\n"
    )


def write_debian_dir(
    source_dir: Path,
    package: str,
    version: str,
    suffix: str,
    maintainer: str,
) -> Path:
    """Write the debian/ directory into the source tree.

    Returns:
        Path to the debian directory.
    """
    debian = source_dir / "debian"
    (debian / "source").mkdir(parents=True, exist_ok=True)

    (debian / "control").write_text(
        render_control(package, version, suffix, maintainer), encoding="utf-8"
    )
    (debian / "compat").write_text(f"{DEBHELPER_COMPAT}\n", encoding="utf-8")
    (debian / "source" / "format").write_text(f"{SOURCE_FORMAT}\n", encoding="utf-8")
    (debian / "source" / "local-options").write_text("1.0\n", encoding="utf-8")
    (debian / "changelog").write_text(
        render_changelog(package, version, suffix, maintainer), encoding="utf-8"
    )
    return debian


def create_orig_tarball(source_dir: Path, package: str, version: str) -> Path:
    """Create <pkg>_<version>.orig.tar.gz next to the source tree.

    Raises:
        SourcePackageError: If the tarball cannot be written.
    """
    orig = source_dir.parent / f"{package}_{version}.orig.tar.gz"
    logger.info("Creating upstream tarball %s", orig.name)
    try:
        with tarfile.open(orig, "w:gz") as tar:
            tar.add(source_dir, arcname=source_dir.name)
    except (tarfile.TarError, OSError) as e:
        orig.unlink(missing_ok=True)
        raise SourcePackageError(f"Failed to create orig tarball: {e}") from e
    return orig


def generate_source_package(
    source_dir: Path,
    release_dir: Path,
    flavor: Flavor,
    version: str,
    suffix: str,
    maintainer: str,
    runner: CommandRunner,
) -> SourcePackage:
    """Assemble and archive a quilt-format source package.

    Args:
        source_dir: Patched, configured kernel source tree.
        release_dir: Destination for the archive.
        flavor: Build flavor (selects the package name).
        version: Kernel version.
        suffix: Local-version suffix.
        maintainer: Validated 'Name <email>' string.
        runner: Command runner.

    Returns:
        SourcePackage with the archive and checksum paths.

    Raises:
        SourcePackageError: If any step fails.
    """
    package = flavor.package_name
    parent = source_dir.parent

    create_orig_tarball(source_dir, package, version)
    write_debian_dir(source_dir, package, version, suffix, maintainer)

    logger.info("Building source package %s", package)
    try:
        runner.run(["dpkg-source", "-b", "."], cwd=source_dir, capture=False)
    except CommandError as e:
        raise SourcePackageError(f"dpkg-source failed: {e}") from e

    outputs = sorted(p for p in parent.glob(f"{package}_{version}*") if p.is_file())
    if not outputs:
        raise SourcePackageError(f"dpkg-source produced no files for {package}_{version}")

    archive = zip_files(release_dir / f"{package}_{version}_{suffix}_source.zip", outputs)
    checksum = write_checksum(archive)

    for path in outputs:
        if path.name.endswith(".dsc") or ".tar." in path.name:
            path.unlink(missing_ok=True)

    logger.info("Source package archive created: %s", archive.name)
    return SourcePackage(archive=archive, checksum=checksum)


__all__ = [
    "BUILD_DEPENDS",
    "SourcePackage",
    "SourcePackageError",
    "create_orig_tarball",
    "generate_source_package",
    "render_changelog",
    "render_control",
    "write_debian_dir",
]
