"""Package upload to remote repositories.

This module handles:
- A fixed-delay bounded retry policy
- packagecloud pushes through its REST API (primary and secondary repo)
- Nexus raw/apt uploads with basic authentication
- Treating "already exists" responses as success

Per-package failures never propagate: they are logged and recorded in
the returned UploadResult list. Only a missing target configuration is
fatal.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import httpx

from kernel_pkgbuild.config import Settings, secret_value
from kernel_pkgbuild.errors import UPLOAD_ERROR, PipelineError
from kernel_pkgbuild.types import is_debug_package

logger = logging.getLogger(__name__)

# Timeout for a single package upload (seconds)
UPLOAD_TIMEOUT = 600

# Part content type for Nexus uploads
DEB_CONTENT_TYPE = "application/vnd.debian.binary-package"


class UploadError(PipelineError):
    """Raised when an enabled upload target is not configured."""

    def __init__(self, message: str, code: str = UPLOAD_ERROR) -> None:
        super().__init__(message, code)


class UploadAttemptError(Exception):
    """A single upload attempt failed; the attempt may be retried."""


class UploadOutcome(str, Enum):
    """Final state of one package on one target."""

    UPLOADED = "uploaded"
    EXISTS = "exists"
    FAILED = "failed"


@dataclass
class UploadResult:
    """Upload record for one package on one target."""

    package: Path
    target: str
    outcome: UploadOutcome
    attempts: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not UploadOutcome.FAILED


@dataclass
class RetryPolicy:
    """Fixed-delay bounded retry.

    Attributes:
        max_attempts: Attempts per package and target.
        delay: Seconds to wait between attempts.
        sleep: Sleep function (replaced in tests).
    """

    max_attempts: int = 3
    delay: float = 2.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(max_attempts=settings.upload_max_attempts, delay=settings.upload_retry_delay)


class UploadTarget(Protocol):
    """A remote package destination."""

    name: str

    def upload(self, package: Path) -> UploadOutcome:
        """Upload one package.

        Returns:
            UPLOADED or EXISTS.

        Raises:
            UploadAttemptError: If the attempt failed.
        """
        ...


def _post(client: httpx.Client, url: str, **kwargs: Any) -> httpx.Response:
    try:
        return client.post(url, timeout=UPLOAD_TIMEOUT, **kwargs)
    except httpx.HTTPError as e:
        raise UploadAttemptError(f"Network error: {e}") from e


class PackagecloudTarget:
    """packagecloud.io repository.

    Args:
        client: HTTPX client.
        repo: Target as 'user/repo/distro/release'.
        token: API token.
        base_url: API base URL.
    """

    def __init__(
        self,
        client: httpx.Client,
        repo: str,
        token: str,
        base_url: str = "https://packagecloud.io",
    ) -> None:
        parts = repo.strip("/").split("/")
        if len(parts) != 4 or not all(parts):
            raise UploadError(
                f"Invalid packagecloud target '{repo}': expected user/repo/distro/release"
            )
        self.client = client
        self.user, self.repo, distro, release = parts
        self.distro_version = f"{distro}/{release}"
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.name = f"packagecloud:{repo}"

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/v1/repos/{self.user}/{self.repo}/packages.json"

    def upload(self, package: Path) -> UploadOutcome:
        try:
            with package.open("rb") as f:
                response = _post(
                    self.client,
                    self.endpoint,
                    auth=(self.token, ""),
                    data={"package[distro_version_id]": self.distro_version},
                    files={
                        "package[package_file]": (package.name, f, "application/octet-stream")
                    },
                )
        except OSError as e:
            raise UploadAttemptError(f"Cannot read {package.name}: {e}") from e
        if response.status_code == 422 and "already been taken" in response.text:
            return UploadOutcome.EXISTS
        if response.is_success:
            return UploadOutcome.UPLOADED
        raise UploadAttemptError(f"HTTP {response.status_code}: {response.text[:200]}")


class NexusTarget:
    """Nexus repository accepting authenticated package uploads.

    Args:
        client: HTTPX client.
        url: Repository upload URL.
        user: Username.
        password: Password.
    """

    def __init__(self, client: httpx.Client, url: str, user: str, password: str) -> None:
        self.client = client
        self.url = url
        self.user = user
        self.password = password
        self.name = f"nexus:{url}"

    def upload(self, package: Path) -> UploadOutcome:
        try:
            with package.open("rb") as f:
                response = _post(
                    self.client,
                    self.url,
                    auth=(self.user, self.password),
                    files={"file": (package.name, f, DEB_CONTENT_TYPE)},
                )
        except OSError as e:
            raise UploadAttemptError(f"Cannot read {package.name}: {e}") from e
        if response.status_code == 409 or (
            response.status_code == 400 and "does not allow updating" in response.text
        ):
            return UploadOutcome.EXISTS
        if response.is_success:
            return UploadOutcome.UPLOADED
        raise UploadAttemptError(f"HTTP {response.status_code}: {response.text[:200]}")


def upload_one(package: Path, target: UploadTarget, policy: RetryPolicy) -> UploadResult:
    """Upload one package to one target with retries."""
    last_error = ""
    for attempt in range(1, policy.max_attempts + 1):
        try:
            outcome = target.upload(package)
        except UploadAttemptError as e:
            last_error = str(e)
            if attempt < policy.max_attempts:
                logger.warning(
                    "Attempt %d failed for %s on %s (%s). Retrying in %.0f seconds...",
                    attempt,
                    package.name,
                    target.name,
                    e,
                    policy.delay,
                )
                policy.sleep(policy.delay)
            continue

        if outcome is UploadOutcome.EXISTS:
            logger.info("%s already present on %s", package.name, target.name)
        else:
            logger.info(
                "Successfully uploaded %s to %s on attempt %d", package.name, target.name, attempt
            )
        return UploadResult(package, target.name, outcome, attempt)

    logger.error(
        "Failed to upload %s to %s after %d attempts. Skipping this package.",
        package.name,
        target.name,
        policy.max_attempts,
    )
    return UploadResult(
        package, target.name, UploadOutcome.FAILED, policy.max_attempts, error=last_error
    )


def upload_packages(
    packages: list[Path],
    targets: list[UploadTarget],
    policy: RetryPolicy | None = None,
) -> list[UploadResult]:
    """Upload every non-debug package to every target.

    Never raises for a failed package.
    """
    policy = policy or RetryPolicy()
    results: list[UploadResult] = []
    for target in targets:
        logger.info("Uploading to %s", target.name)
        for package in packages:
            if is_debug_package(package.name):
                logger.info("Skipping debug package %s for %s", package.name, target.name)
                continue
            results.append(upload_one(package, target, policy))

    failed = sum(1 for r in results if not r.ok)
    if failed:
        logger.error("%d of %d uploads failed", failed, len(results))
    return results


def build_targets(
    settings: Settings,
    client: httpx.Client,
    packagecloud: bool,
    nexus: bool,
) -> list[UploadTarget]:
    """Create the enabled upload targets.

    Raises:
        UploadError: If an enabled target lacks its repository or credentials.
    """
    targets: list[UploadTarget] = []

    if packagecloud:
        if not settings.packagecloud_repo:
            raise UploadError("PACKAGECLOUD_DEB not set")
        token = secret_value(settings.packagecloud_token)
        if not token:
            raise UploadError("packagecloud token (PACKAGECLOUD_TOKEN) not set")
        targets.append(
            PackagecloudTarget(client, settings.packagecloud_repo, token, settings.packagecloud_url)
        )
        if settings.packagecloud_repo_secondary:
            targets.append(
                PackagecloudTarget(
                    client,
                    settings.packagecloud_repo_secondary,
                    token,
                    settings.packagecloud_url,
                )
            )

    if nexus:
        password = secret_value(settings.nexus_password)
        if not (settings.nexus_user and password and settings.nexus_repo):
            raise UploadError("Nexus credentials or repo not configured")
        targets.append(NexusTarget(client, settings.nexus_repo, settings.nexus_user, password))

    return targets


__all__ = [
    "NexusTarget",
    "PackagecloudTarget",
    "RetryPolicy",
    "UploadAttemptError",
    "UploadError",
    "UploadOutcome",
    "UploadResult",
    "UploadTarget",
    "build_targets",
    "upload_one",
    "upload_packages",
]
