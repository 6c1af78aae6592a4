"""Artifact discovery and packaging.

This module handles:
- Discovering produced Debian packages for the target architecture
- Excluding debugging-symbol packages
- Deterministic archive naming
- Zipping packages and writing sha256sum checksum files
"""

from __future__ import annotations

import hashlib
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from kernel_pkgbuild.errors import NO_ARTIFACTS, PACKAGE_ERROR, PipelineError
from kernel_pkgbuild.types import (
    ArtifactInfo,
    Flavor,
    Toolchain,
    classify_package,
    is_debug_package,
)

logger = logging.getLogger(__name__)

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB

CHECKSUM_SUFFIX = ".sha256sum"


class PackagingError(PipelineError):
    """Raised when an archive or checksum cannot be written."""

    def __init__(self, message: str, code: str = PACKAGE_ERROR) -> None:
        super().__init__(message, code)


class NoArtifactsError(PackagingError):
    """Raised when no packageable files remain after filtering."""

    def __init__(self, message: str, code: str = NO_ARTIFACTS) -> None:
        super().__init__(message, code)


@dataclass
class PackageBundle:
    """A release archive and its contents.

    Attributes:
        archive: Path to the zip archive.
        checksum: Path to the .sha256sum file.
        artifacts: Packages inside the archive.
    """

    archive: Path
    checksum: Path
    artifacts: list[ArtifactInfo] = field(default_factory=list)

    @property
    def packages(self) -> list[Path]:
        return [a.path for a in self.artifacts]


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def matches_arch(filename: str, deb_arch: str) -> bool:
    """Check whether a package filename targets deb_arch (or is arch-independent)."""
    return filename.endswith((f"_{deb_arch}.deb", "_all.deb"))


def discover_packages(build_path: Path, deb_arch: str) -> list[Path]:
    """Find the non-debug packages for an architecture.

    Searches build_path recursively so that metapackages in their own
    subdirectory are included.

    Args:
        build_path: Build working directory.
        deb_arch: Debian architecture name (e.g. amd64).

    Returns:
        Sorted package paths.

    Raises:
        NoArtifactsError: If no package remains after filtering.
    """
    found = sorted(p for p in build_path.rglob("*.deb") if p.is_file())
    if not found:
        raise NoArtifactsError(f"No .deb packages found in {build_path}")

    packages: list[Path] = []
    for path in found:
        if is_debug_package(path.name):
            logger.info("Skipping debug symbols package: %s", path.name)
            continue
        if not matches_arch(path.name, deb_arch):
            logger.debug("Skipping package for another architecture: %s", path.name)
            continue
        packages.append(path)

    if not packages:
        raise NoArtifactsError(
            f"No non-debug .deb packages for {deb_arch} found in {build_path}"
        )

    logger.info("Discovered %d packages in %s", len(packages), build_path)
    return packages


def describe_package(path: Path, flavor: Flavor, version: str, deb_arch: str) -> ArtifactInfo:
    """Build the ArtifactInfo record for a package file."""
    return ArtifactInfo(
        path=path,
        kind=classify_package(path.name),
        flavor=flavor,
        version=version,
        arch=deb_arch,
        size_bytes=path.stat().st_size,
        sha256=compute_file_hash(path),
    )


def archive_name(
    flavor: Flavor,
    version: str,
    toolchain: Toolchain,
    suffix: str | None,
    default_suffix: str,
    arch: str,
) -> str:
    """Compose the release archive name.

    Pure function of its inputs:
    ``<flavor>-kernel_<version>_<arch>[_llvm]_<suffix>.zip``.
    """
    tag = suffix or default_suffix
    return f"{flavor.package_name}_{version}_{arch}{toolchain.archive_tag}_{tag}.zip"


def write_checksum(path: Path) -> Path:
    """Write a sha256sum-compatible checksum file next to path.

    Returns:
        Path of the checksum file (<path>.sha256sum).
    """
    checksum_path = path.with_name(f"{path.name}{CHECKSUM_SUFFIX}")
    digest = compute_file_hash(path)
    checksum_path.write_text(f"{digest}  {path.name}\n", encoding="utf-8")
    logger.info("Checksum generated at %s", checksum_path)
    return checksum_path


def zip_files(archive: Path, files: list[Path]) -> Path:
    """Zip files flat (no directory components) into archive.

    Raises:
        PackagingError: If the archive cannot be written.
    """
    archive.parent.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for path in files:
                zf.write(path, arcname=path.name)
    except OSError as e:
        archive.unlink(missing_ok=True)
        raise PackagingError(f"Zip packaging failed for {archive.name}: {e}") from e
    return archive


def package_artifacts(
    build_path: Path,
    release_dir: Path,
    flavor: Flavor,
    version: str,
    toolchain: Toolchain,
    suffix: str | None,
    default_suffix: str,
    deb_arch: str,
) -> PackageBundle:
    """Bundle the produced packages into a named, checksummed archive.

    Raises:
        NoArtifactsError: If no packages are found.
        PackagingError: If the archive cannot be written.
    """
    packages = discover_packages(build_path, deb_arch)
    artifacts = [describe_package(p, flavor, version, deb_arch) for p in packages]

    name = archive_name(flavor, version, toolchain, suffix, default_suffix, deb_arch)
    archive = release_dir / name
    logger.info("Packaging %d .deb files into %s", len(packages), name)
    zip_files(archive, packages)
    checksum = write_checksum(archive)

    return PackageBundle(archive=archive, checksum=checksum, artifacts=artifacts)


__all__ = [
    "CHECKSUM_SUFFIX",
    "HASH_CHUNK_SIZE",
    "NoArtifactsError",
    "PackageBundle",
    "PackagingError",
    "archive_name",
    "compute_file_hash",
    "describe_package",
    "discover_packages",
    "matches_arch",
    "package_artifacts",
    "write_checksum",
    "zip_files",
]
