"""Pipeline orchestration.

This module handles:
- Running the build stages in their fixed order
- The alternate entry modes (publish-only, clean, interactive configure)
- Teardown of transient build state

Every stage before publishing is fatal on failure: the first
PipelineError aborts the run. Upload failures are per package and only
logged; configuration report failures degrade to the raw diff.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from kernel_pkgbuild.builds.artifacts import PackageBundle, package_artifacts
from kernel_pkgbuild.builds.metapackage import build_metapackage, build_spec
from kernel_pkgbuild.builds.patches import PatchReport, apply_patches, discover_patches
from kernel_pkgbuild.builds.runner import build_kernel
from kernel_pkgbuild.builds.source_package import SourcePackage, generate_source_package
from kernel_pkgbuild.config import parse_maintainer
from kernel_pkgbuild.kconfig.materialize import (
    archive_config,
    materialize,
    require_terminal,
    run_menuconfig,
)
from kernel_pkgbuild.kconfig.report import ReportPaths, write_reports
from kernel_pkgbuild.process import MakeCommand
from kernel_pkgbuild.publish.release import ReleaseRecord, publish_release
from kernel_pkgbuild.publish.upload import (
    RetryPolicy,
    UploadResult,
    UploadTarget,
    build_targets,
    upload_packages,
)
from kernel_pkgbuild.source.fetch import SourceTree, acquire_source, source_dir_for
from kernel_pkgbuild.types import RunMode

if TYPE_CHECKING:
    import httpx

    from kernel_pkgbuild.config import Settings
    from kernel_pkgbuild.process import CommandRunner
    from kernel_pkgbuild.types import BuildRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Executables needed by a full build
BUILD_TOOLS = ("make", "dpkg-source", "equivs-build")


def format_elapsed(seconds: float) -> str:
    """Format a duration as HH:MM:SS."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _remove(path: Path) -> None:
    try:
        if path.is_dir():
            logger.info("Removing directory: %s", path)
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)


def cleanup(build_path: Path, source_dir: Path | None = None) -> None:
    """Remove transient build state from the build path.

    Removes the source tree, top-level packages and build metadata,
    extracted linux-* trees and metapackage directories. Downloaded
    tarballs are kept for reuse. Removal failures are only logged.
    """
    logger.info("Starting cleanup of build artifacts...")
    if not build_path.is_dir():
        logger.info("Build path %s does not exist; nothing to clean", build_path)
        return

    if source_dir is not None:
        _remove(source_dir)

    for pattern in ("*.deb", "*.buildinfo", "*.changes"):
        for path in build_path.glob(pattern):
            if path.is_file():
                _remove(path)

    for path in build_path.glob("linux-*"):
        if path.is_dir():
            _remove(path)

    for path in build_path.glob("*kernel"):
        if path.is_dir():
            _remove(path)

    logger.info("Cleanup completed.")


@dataclass
class PipelineResult:
    """Outcome of a pipeline run.

    Attributes:
        mode: Entry mode that ran.
        version: Kernel version.
        elapsed: Wall-clock seconds.
        bundle: Release archive (build mode).
        source_package: Source package archive (build mode).
        patches: Patch run outcome, when patches were requested.
        uploads: Per-package upload records.
        reports: Configuration report files.
        release: Published release (publish mode).
    """

    mode: RunMode
    version: str
    elapsed: float = 0.0
    bundle: PackageBundle | None = None
    source_package: SourcePackage | None = None
    patches: PatchReport | None = None
    uploads: list[UploadResult] = field(default_factory=list)
    reports: ReportPaths | None = None
    release: ReleaseRecord | None = None

    @property
    def elapsed_text(self) -> str:
        return format_elapsed(self.elapsed)

    @property
    def failed_uploads(self) -> list[UploadResult]:
        return [u for u in self.uploads if not u.ok]


class Pipeline:
    """Run one BuildRequest to completion.

    Args:
        settings: Resolved settings.
        request: The build request.
        runner: Command runner for external tools.
        client: HTTPX client for downloads and remote services.
        retry: Upload retry policy (defaults from settings).
        clock: Monotonic clock (replaced in tests).
    """

    def __init__(
        self,
        settings: Settings,
        request: BuildRequest,
        runner: CommandRunner,
        client: httpx.Client,
        retry: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.request = request
        self.runner = runner
        self.client = client
        self.retry = retry or RetryPolicy.from_settings(settings)
        self.clock = clock
        self.make = MakeCommand.for_request(settings, request)
        self.suffix = request.effective_suffix(settings.default_suffix)

    def _stage(self, name: str, func: Callable[..., T], *args: object, **kwargs: object) -> T:
        logger.info("==> %s", name)
        started = self.clock()
        value = func(*args, **kwargs)
        logger.debug("Stage '%s' finished in %s", name, format_elapsed(self.clock() - started))
        return value

    def run(self) -> PipelineResult:
        """Run the request in its entry mode.

        Raises:
            PipelineError: On any fatal condition.
        """
        started = self.clock()
        mode = self.request.mode
        result = PipelineResult(mode=mode, version=self.request.version)

        if mode is RunMode.CLEAN:
            cleanup(self.settings.build_path, self.source_dir)
        elif mode is RunMode.PUBLISH:
            result.release = self._stage(
                "publish release",
                publish_release,
                self.settings,
                self.request.version,
                self.runner,
                self.client,
            )
        elif mode is RunMode.CONFIGURE:
            self.configure()
        else:
            self.build(result)

        result.elapsed = self.clock() - started
        return result

    @property
    def source_dir(self) -> Path:
        return source_dir_for(self.settings.build_path, self.request.version)

    def check_tools(self) -> None:
        """Fail early when a required executable is missing."""
        tools = list(BUILD_TOOLS)
        if self.request.add_patches:
            tools.append("patch")
        self.runner.require(*tools)

    def log_environment(self) -> None:
        request = self.request
        logger.info(
            "Build Environment: Kernel: %s | Flavor: %s | Arch: %s | CPUs: %s",
            request.version,
            request.flavor.value,
            request.arch,
            os.cpu_count(),
        )
        logger.info(
            "Toolchain: %s | CC: %s | Cross: %s",
            request.toolchain.value,
            self.settings.ccopts or "system default",
            request.cross_compile or "none",
        )
        logger.info(
            "Options: PATCHES=%s, UPLOAD_PACKAGECLOUD=%s, UPLOAD_NEXUS=%s, SUFFIX=%s",
            request.add_patches,
            request.upload_packagecloud,
            request.upload_nexus,
            self.suffix,
        )

    def acquire(self) -> SourceTree:
        return acquire_source(
            self.client,
            self.request.version,
            self.settings.build_path,
            self.runner,
            base_url=self.settings.download_base_url,
            timeout=self.settings.download_timeout,
        )

    def materialize(self, tree: SourceTree) -> Path:
        return materialize(
            tree.root, self.settings.config_dir, self.request, self.make, self.runner
        )

    def configure(self) -> None:
        """Interactive configure: edit, archive and stop before building."""
        require_terminal()
        self.runner.require("make")
        tree = self._stage("acquire source", self.acquire)
        baseline = self._stage("materialize configuration", self.materialize, tree)
        self._stage("menuconfig", run_menuconfig, tree.root, self.make, self.runner)
        self._stage("archive configuration", archive_config, tree.root, baseline)

        flags = [f"--flavor {self.request.flavor.value}", f"--arch {self.request.arch}"]
        logger.info(
            "Configuration archived. Build with: kernel-pkgbuild build %s %s",
            self.request.version,
            " ".join(flags),
        )

    def build(self, result: PipelineResult) -> None:
        """Run the full build sequence."""
        settings = self.settings
        request = self.request

        # Configuration errors surface before any slow stage runs
        parse_maintainer(settings.maintainer)
        targets: list[UploadTarget] = []
        if request.upload_packagecloud or request.upload_nexus:
            targets = build_targets(
                settings, self.client, request.upload_packagecloud, request.upload_nexus
            )
        self.check_tools()
        self.log_environment()

        tree = self._stage("acquire source", self.acquire)
        baseline = self._stage("materialize configuration", self.materialize, tree)

        if request.add_patches:
            patches = discover_patches(settings.patch_dir)
            result.patches = self._stage(
                "apply patches", apply_patches, tree.root, patches, self.runner
            )

        result.source_package = self._stage(
            "generate source package",
            generate_source_package,
            tree.root,
            settings.release_dir,
            request.flavor,
            request.version,
            self.suffix,
            settings.maintainer,
            self.runner,
        )
        self._stage("build kernel", build_kernel, tree.root, self.make, self.suffix, self.runner)

        spec = build_spec(
            request.flavor,
            request.version,
            self.suffix,
            settings.maintainer,
            settings.homepage,
            request.deb_arch,
        )
        self._stage(
            "generate metapackage", build_metapackage, settings.build_path, spec, self.runner
        )

        result.bundle = self._stage(
            "package artifacts",
            package_artifacts,
            settings.build_path,
            settings.release_dir,
            request.flavor,
            request.version,
            request.toolchain,
            request.suffix,
            settings.default_suffix,
            request.deb_arch,
        )

        if targets:
            result.uploads = self._stage(
                "upload packages", upload_packages, result.bundle.packages, targets, self.retry
            )

        result.reports = self._stage(
            "analyze configuration diff",
            write_reports,
            baseline,
            tree.dotconfig,
            settings.release_dir,
            request.flavor,
        )
        self._stage("archive configuration", archive_config, tree.root, baseline)
        self._stage("cleanup", cleanup, settings.build_path, tree.root)


__all__ = [
    "BUILD_TOOLS",
    "Pipeline",
    "PipelineResult",
    "cleanup",
    "format_elapsed",
]
