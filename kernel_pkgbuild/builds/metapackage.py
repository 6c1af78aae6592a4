"""Flavor metapackage generation.

A dependency-only package named after the flavor (vm-kernel, ...) that
pulls in the matching image, headers and libc packages, built with
equivs-build from a generated control file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from kernel_pkgbuild.errors import PACKAGE_ERROR, PipelineError
from kernel_pkgbuild.process import CommandError
from kernel_pkgbuild.types import normalize_version

if TYPE_CHECKING:
    from kernel_pkgbuild.process import CommandRunner
    from kernel_pkgbuild.types import Flavor

logger = logging.getLogger(__name__)

STANDARDS_VERSION = "4.6.2"
VIRTUAL_PACKAGE = "kernel-image"


class MetapackageError(PipelineError):
    """Raised when the metapackage cannot be built."""

    def __init__(self, message: str, code: str = PACKAGE_ERROR) -> None:
        super().__init__(message, code)


@dataclass(frozen=True)
class MetapackageSpec:
    """Inputs of the equivs control file."""

    package: str
    version: str
    localversion: str
    maintainer: str
    homepage: str
    architecture: str

    @property
    def depends(self) -> list[str]:
        release = f"{self.version}{self.localversion}"
        return [f"linux-image-{release}", f"linux-headers-{release}", "linux-libc-dev"]

    @property
    def full_version(self) -> str:
        return f"{self.version}{self.localversion}"


def compute_localversion(flavor: Flavor, suffix: str) -> str:
    """Return the kernel release fragment for a flavor and suffix (e.g. -vm-toeirei)."""
    return f"{flavor.localversion_prefix}-{suffix}"


def build_spec(
    flavor: Flavor,
    version: str,
    suffix: str,
    maintainer: str,
    homepage: str,
    architecture: str,
) -> MetapackageSpec:
    return MetapackageSpec(
        package=flavor.package_name,
        version=normalize_version(version),
        localversion=compute_localversion(flavor, suffix),
        maintainer=maintainer,
        homepage=homepage,
        architecture=architecture,
    )


def render_control(spec: MetapackageSpec) -> str:
    """Render the equivs control file."""
    return (
        "Section: kernel\n"
        "Priority: optional\n"
        f"Homepage: {spec.homepage}\n"
        f"Standards-Version: {STANDARDS_VERSION}\n"
        "\n"
        f"Package: {spec.package}\n"
        f"Version: {spec.full_version}\n"
        f"Maintainer: {spec.maintainer}\n"
        "\n"
        f"Depends: {', '.join(spec.depends)}\n"
        f"Provides: {VIRTUAL_PACKAGE}\n"
        f"Replaces: {VIRTUAL_PACKAGE}\n"
        f"Conflicts: {VIRTUAL_PACKAGE}\n"
        f"Architecture: {spec.architecture}\n"
        f"Description: Meta-Package for the {spec.package} built on kernel version "
        f"{spec.version}\n"
    )


def build_metapackage(
    build_path: Path,
    spec: MetapackageSpec,
    runner: CommandRunner,
) -> Path:
    """Write the control file and run equivs-build.

    The package is written to <build_path>/<package>/.

    Returns:
        Path to the package directory.

    Raises:
        MetapackageError: If equivs-build fails.
    """
    pkg_dir = build_path / spec.package
    pkg_dir.mkdir(parents=True, exist_ok=True)
    cfg_file = pkg_dir / f"{spec.package}.cfg"

    logger.info("Generating Debian meta-package config at %s", cfg_file)
    cfg_file.write_text(render_control(spec), encoding="utf-8")

    logger.info("Assembling Debian meta-package using equivs-build")
    try:
        runner.run(["equivs-build", str(cfg_file)], cwd=pkg_dir)
    except CommandError as e:
        raise MetapackageError(f"Failed to build Debian meta-package: {e}") from e

    logger.info(
        "Debian meta-package generated: %s (version: %s)", spec.package, spec.full_version
    )
    return pkg_dir


__all__ = [
    "MetapackageError",
    "MetapackageSpec",
    "build_metapackage",
    "build_spec",
    "compute_localversion",
    "render_control",
]
