"""Kernel source fetch module.

This module handles:
- URL discovery for upstream kernel tarballs
- Reuse of previously downloaded tarballs
- Download with format fallback (.tar.xz, then .tar.zst)
- Clean extraction with one corruption-recovery cycle
- Latest stable/mainline version detection from kernel.org
"""

from __future__ import annotations

import json
import logging
import shutil
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from kernel_pkgbuild.errors import DOWNLOAD_ERROR, EXTRACTION_ERROR, PipelineError
from kernel_pkgbuild.process import CommandError
from kernel_pkgbuild.types import VERSION_PATTERN

if TYPE_CHECKING:
    from kernel_pkgbuild.process import CommandRunner

logger = logging.getLogger(__name__)

KERNEL_DOWNLOAD_BASE = "https://cdn.kernel.org/pub/linux/kernel"
KERNEL_RELEASES_URL = "https://www.kernel.org/releases.json"

# Compression formats in preference order
TARBALL_FORMATS = ("xz", "zst")

# Timeout for metadata requests (seconds)
METADATA_TIMEOUT = 30

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB


class DownloadError(PipelineError):
    """Raised when a kernel tarball cannot be downloaded."""

    def __init__(self, message: str, code: str = DOWNLOAD_ERROR) -> None:
        super().__init__(message, code)


class ExtractionError(PipelineError):
    """Raised when tarball extraction fails."""

    def __init__(self, message: str, code: str = EXTRACTION_ERROR) -> None:
        super().__init__(message, code)


@dataclass
class SourceTree:
    """An extracted, pristine kernel source tree.

    Attributes:
        version: Kernel version.
        root: Path to the extracted tree (linux-<version>).
        tarball: Tarball it was extracted from.
    """

    version: str
    root: Path
    tarball: Path

    @property
    def dotconfig(self) -> Path:
        return self.root / ".config"


def tarball_name(version: str, fmt: str) -> str:
    """Return the upstream tarball filename for a version and format."""
    return f"linux-{version}.tar.{fmt}"


def source_dir_for(build_path: Path, version: str) -> Path:
    """Return the extraction path for a version."""
    return build_path / f"linux-{version}"


def kernel_tarball_urls(
    version: str,
    base_url: str = KERNEL_DOWNLOAD_BASE,
) -> list[tuple[str, str]]:
    """Build download URLs for a kernel version.

    Args:
        version: Kernel version (e.g. '6.9.3').
        base_url: Mirror base URL.

    Returns:
        List of (format, url) tuples in preference order.
    """
    major = version.split(".", 1)[0]
    prefix = f"{base_url.rstrip('/')}/v{major}.x"
    return [(fmt, f"{prefix}/{tarball_name(version, fmt)}") for fmt in TARBALL_FORMATS]


def find_cached_tarball(build_path: Path, version: str) -> Path | None:
    """Return a previously downloaded tarball for the version, if present."""
    for fmt in TARBALL_FORMATS:
        candidate = build_path / tarball_name(version, fmt)
        if candidate.is_file():
            logger.info("Found existing tarball: %s", candidate.name)
            return candidate
    return None


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> int:
    """Stream a URL to a file.

    A partially written file is removed on failure.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        Number of bytes written.

    Raises:
        DownloadError: If the download fails.
    """
    logger.info("Attempting download: %s", url)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with client.stream("GET", url, timeout=timeout, follow_redirects=True) as response:
            response.raise_for_status()
            total_bytes = 0
            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    total_bytes += len(chunk)
    except httpx.HTTPStatusError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(f"Timeout downloading {url}", code="timeout") from e
    except httpx.RequestError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e

    logger.info("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
    return total_bytes


def download_tarball(
    client: httpx.Client,
    version: str,
    build_path: Path,
    base_url: str = KERNEL_DOWNLOAD_BASE,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> Path:
    """Download the kernel tarball, trying each format in order.

    Returns:
        Path to the downloaded tarball.

    Raises:
        DownloadError: If no format could be downloaded.
    """
    for fmt, url in kernel_tarball_urls(version, base_url):
        dest = build_path / tarball_name(version, fmt)
        try:
            download_file(client, url, dest, timeout=timeout)
        except DownloadError as e:
            logger.warning("%s", e)
            continue
        return dest

    formats = " and ".join(f".{fmt}" for fmt in TARBALL_FORMATS)
    raise DownloadError(
        f"Could not fetch kernel sources for {version} (tried {formats} formats)"
    )


def extract_tarball(
    archive_path: Path,
    dest_dir: Path,
    runner: CommandRunner,
) -> None:
    """Extract a kernel tarball into dest_dir.

    .tar.xz is extracted with tarfile; .tar.zst goes through the system
    tar since the standard library has no zstd support.

    Raises:
        ExtractionError: If the archive is unreadable or unsafe.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    if archive_path.name.endswith(".tar.zst"):
        try:
            runner.run(["tar", "--zstd", "-xf", str(archive_path), "-C", str(dest_dir)])
        except CommandError as e:
            raise ExtractionError(f"Failed to extract {archive_path}: {e}", code="tar_error") from e
        return

    if not archive_path.name.endswith(".tar.xz"):
        raise ExtractionError(
            f"Unsupported archive format: {archive_path.name}",
            code="unsupported_format",
        )

    try:
        with tarfile.open(archive_path, "r:xz") as tar:
            members = tar.getmembers()
            if not members:
                raise ExtractionError(
                    f"Archive {archive_path} is empty",
                    code="empty_archive",
                )
            for member in members:
                # Security: prevent path traversal
                member_path = Path(member.name)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise ExtractionError(
                        f"Refusing to extract {member.name}: path traversal detected",
                        code="path_traversal",
                    )
            tar.extractall(dest_dir, filter="data")
    except (tarfile.TarError, EOFError, OSError) as e:
        raise ExtractionError(
            f"Failed to extract {archive_path}: {e}",
            code="tar_error",
        ) from e


def remove_tree(path: Path) -> None:
    """Remove an extracted tree if it exists."""
    if path.exists():
        logger.info("Removing existing source directory %s to ensure a clean extraction", path)
        shutil.rmtree(path)


def acquire_source(
    client: httpx.Client,
    version: str,
    build_path: Path,
    runner: CommandRunner,
    base_url: str = KERNEL_DOWNLOAD_BASE,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> SourceTree:
    """Obtain a pristine, freshly extracted source tree for a version.

    A cached tarball is reused when present; otherwise it is downloaded.
    Any existing extraction is deleted first. If extraction fails the
    tarball is treated as corrupt: it is deleted, downloaded once more
    and extracted once more.

    Raises:
        DownloadError: If no tarball can be obtained.
        ExtractionError: If the re-downloaded tarball also fails to extract.
    """
    build_path.mkdir(parents=True, exist_ok=True)
    srcdir = source_dir_for(build_path, version)
    logger.info("Preparing to fetch kernel sources for version: %s", version)

    tarball = find_cached_tarball(build_path, version)
    if tarball is None:
        tarball = download_tarball(client, version, build_path, base_url, timeout)

    remove_tree(srcdir)
    try:
        extract_tarball(tarball, build_path, runner)
    except ExtractionError as e:
        logger.warning("Extraction failed (%s); treating %s as corrupt", e, tarball.name)
        tarball.unlink(missing_ok=True)
        remove_tree(srcdir)
        tarball = download_tarball(client, version, build_path, base_url, timeout)
        extract_tarball(tarball, build_path, runner)

    if not srcdir.is_dir():
        raise ExtractionError(
            f"Extraction of {tarball.name} did not produce {srcdir.name}",
            code="unexpected_layout",
        )

    logger.info("Kernel sources ready at %s", srcdir)
    return SourceTree(version=version, root=srcdir, tarball=tarball)


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


def detect_latest_version(
    client: httpx.Client,
    releases_url: str = KERNEL_RELEASES_URL,
    timeout: float = METADATA_TIMEOUT,
) -> str:
    """Return the newest non-EOL stable or mainline kernel version.

    Raises:
        DownloadError: If the release list cannot be fetched or has no
            usable entry.
    """
    logger.info("No version specified, detecting latest stable version")
    try:
        response = client.get(releases_url, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as e:
        raise DownloadError(f"Failed to fetch releases from kernel.org: {e}") from e
    except json.JSONDecodeError as e:
        raise DownloadError(f"Invalid releases.json: {e}") from e

    candidates = [
        str(release.get("version", "")).removeprefix("v")
        for release in data.get("releases", [])
        if release.get("moniker") in ("stable", "mainline") and not release.get("iseol")
    ]
    # Mainline release candidates (6.10-rc3) do not have a tarball on the CDN
    candidates = [v for v in candidates if VERSION_PATTERN.match(v)]
    if not candidates:
        raise DownloadError("Could not determine latest kernel version", code="invalid_version")

    latest = max(candidates, key=_version_key)
    logger.info("Detected latest stable version: %s", latest)
    return latest


__all__ = [
    "DOWNLOAD_CHUNK_SIZE",
    "DownloadError",
    "ExtractionError",
    "KERNEL_DOWNLOAD_BASE",
    "KERNEL_RELEASES_URL",
    "SourceTree",
    "TARBALL_FORMATS",
    "acquire_source",
    "detect_latest_version",
    "download_file",
    "download_tarball",
    "extract_tarball",
    "find_cached_tarball",
    "kernel_tarball_urls",
    "source_dir_for",
    "tarball_name",
]
