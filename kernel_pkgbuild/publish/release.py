"""Release publishing.

This module handles:
- Composing release notes from the per-flavor configuration reports
- Locating the archives and checksums that belong to a version
- Committing, tagging and pushing the configuration repository
- Creating a draft GitHub release and attaching assets

Publishing is safe to repeat: an existing tag is not recreated, an
existing release is reused and assets already attached are skipped.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from kernel_pkgbuild.config import parse_maintainer, secret_value
from kernel_pkgbuild.errors import RELEASE_ERROR, PipelineError
from kernel_pkgbuild.kconfig.report import report_paths
from kernel_pkgbuild.types import Flavor

if TYPE_CHECKING:
    from kernel_pkgbuild.config import Settings
    from kernel_pkgbuild.process import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

# Timeout for API requests (seconds)
API_TIMEOUT = 60

# Timeout for asset uploads (seconds)
ASSET_UPLOAD_TIMEOUT = 900

PACKAGES_INCLUDED = ("linux-image", "linux-headers", "linux-libc-dev")


class ReleaseError(PipelineError):
    """Raised when a release cannot be published."""

    def __init__(self, message: str, code: str = RELEASE_ERROR) -> None:
        super().__init__(message, code)


@dataclass
class ReleaseRecord:
    """Result of a release publish.

    Attributes:
        tag: Version tag.
        notes_path: Written release notes.
        assets: Files attached (or already attached) to the release.
        html_url: Release page URL.
        tag_created: Whether the tag was created by this run.
        release_created: Whether the release was created by this run.
    """

    tag: str
    notes_path: Path
    assets: list[Path] = field(default_factory=list)
    html_url: str = ""
    tag_created: bool = False
    release_created: bool = False


def names_version(filename: str, version: str) -> bool:
    """Whether an archive name carries exactly this version (6.9 is not 6.9.3)."""
    return f"_{version}_" in filename


def flavor_has_assets(release_dir: Path, flavor: Flavor, version: str) -> bool:
    return any(release_dir.glob(f"{flavor.package_name}_{version}_*.zip"))


def compose_release_notes(
    version: str,
    release_dir: Path,
    flavors: tuple[Flavor, ...] = tuple(Flavor),
) -> str:
    """Assemble release notes from the enriched configuration reports.

    A flavor without a report but with archives for this version gets a
    generic section; a flavor with neither is left out.
    """
    reports: dict[Flavor, str] = {}
    built: list[Flavor] = []
    for flavor in flavors:
        enriched = report_paths(release_dir, flavor).enriched
        if enriched.is_file() and enriched.stat().st_size > 0:
            reports[flavor] = enriched.read_text(encoding="utf-8")
            built.append(flavor)
        elif flavor_has_assets(release_dir, flavor, version):
            logger.warning(
                "No enriched config diff found for variant '%s'; using generic notes",
                flavor.value,
            )
            built.append(flavor)
        else:
            logger.info("No enriched config diff found for variant '%s'; skipping", flavor.value)

    lines = [f"Kernel release: {version}", "", "Includes:"]
    lines += [f"- {name}" for name in PACKAGES_INCLUDED]
    lines += ["", "Variants:"]
    lines += [f"- {f.package_name}: {f.description}" for f in built]
    lines += ["", "Source code is included as a ZIP archive (quilt format)"]

    for flavor in built:
        lines += ["", f"## {flavor.value} configuration changes", ""]
        if flavor in reports:
            lines.append(reports[flavor].rstrip("\n"))
        else:
            lines.append(
                f"No configuration report is available for {flavor.package_name} {version}."
            )

    return "\n".join(lines) + "\n"


def find_release_assets(release_dir: Path, version: str) -> list[Path]:
    """Return the archives and checksum files for a version.

    Raises:
        ReleaseError: If none exist.
    """
    candidates = [*release_dir.glob("*.zip"), *release_dir.glob("*.zip.sha256sum")]
    assets = sorted(
        p for p in candidates if p.is_file() and names_version(p.name, version)
    )
    if not assets:
        raise ReleaseError(f"No release assets found in {release_dir}", code="no_assets")
    return assets


class GitRepository:
    """Working copy of the repository that receives version tags.

    Args:
        path: Working copy path.
        runner: Command runner.
        token: Optional token sent as an HTTP auth header on push.
        host: Git host the token applies to.
    """

    def __init__(
        self,
        path: Path,
        runner: CommandRunner,
        token: str = "",
        host: str = "https://github.com/",
    ) -> None:
        self.path = path
        self.runner = runner
        self.token = token
        self.host = host

    def _git(
        self, *args: str, check: bool = True, env: dict[str, str] | None = None
    ) -> CommandResult:
        return self.runner.run(["git", *args], cwd=self.path, check=check, env=env)

    def _auth_env(self) -> dict[str, str] | None:
        # Passed through the environment so the token never shows up in argv
        if not self.token:
            return None
        basic = base64.b64encode(f"x-access-token:{self.token}".encode()).decode()
        return {
            "GIT_CONFIG_COUNT": "1",
            "GIT_CONFIG_KEY_0": f"http.{self.host}.extraheader",
            "GIT_CONFIG_VALUE_0": f"AUTHORIZATION: basic {basic}",
        }

    def configure_identity(self, name: str, email: str) -> None:
        self._git("config", "--global", "--add", "safe.directory", str(self.path))
        self._git("config", "user.name", name)
        self._git("config", "user.email", email)
        logger.info("Git identity set to: %s <%s>", name, email)

    def commit_all(self, message: str) -> bool:
        """Commit every pending change.

        Returns:
            True if a commit was made, False if there was nothing to commit.
        """
        self._git("add", ".")
        status = self._git("status", "--porcelain")
        if not status.stdout.strip():
            logger.info("No changes to commit")
            return False
        self._git("commit", "-m", message)
        return True

    def tag_exists(self, tag: str) -> bool:
        result = self._git("rev-parse", "-q", "--verify", f"refs/tags/{tag}", check=False)
        return result.ok

    def create_tag(self, tag: str) -> None:
        self._git("tag", tag)

    def push(self, tags: bool = False) -> None:
        args = ["push", "--tags"] if tags else ["push"]
        self._git(*args, env=self._auth_env())


class GitHubReleases:
    """Minimal GitHub releases client.

    Args:
        client: HTTPX client.
        repository: 'owner/name'.
        token: API token.
        api_url: API base URL.
    """

    def __init__(
        self,
        client: httpx.Client,
        repository: str,
        token: str,
        api_url: str = "https://api.github.com",
    ) -> None:
        self.client = client
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @property
    def releases_url(self) -> str:
        return f"{self.api_url}/repos/{self.repository}/releases"

    def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = self.client.request(
                method, url, headers={**self.headers, **(headers or {})}, **kwargs
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ReleaseError(
                f"GitHub API error {e.response.status_code} for {method} {url}: "
                f"{e.response.text[:200]}",
                code="github_api_error",
            ) from e
        except httpx.HTTPError as e:
            raise ReleaseError(f"GitHub API request failed: {e}", code="network_error") from e
        return response

    def find_release(self, tag: str) -> dict[str, Any] | None:
        """Return the release for a tag, drafts included."""
        response = self._request(
            "GET", self.releases_url, params={"per_page": 100}, timeout=API_TIMEOUT
        )
        for release in response.json():
            if release.get("tag_name") == tag:
                return release
        return None

    def create_draft(self, tag: str, notes: str) -> dict[str, Any]:
        response = self._request(
            "POST",
            self.releases_url,
            json={
                "tag_name": tag,
                "name": f"Kernel release: {tag}",
                "body": notes,
                "draft": True,
            },
            timeout=API_TIMEOUT,
        )
        return response.json()

    def upload_asset(self, release: dict[str, Any], asset: Path) -> None:
        upload_url = release["upload_url"].split("{", 1)[0]
        with asset.open("rb") as f:
            self._request(
                "POST",
                upload_url,
                params={"name": asset.name},
                content=f.read(),
                headers={"Content-Type": "application/octet-stream"},
                timeout=ASSET_UPLOAD_TIMEOUT,
            )


def publish_release(
    settings: Settings,
    version: str,
    runner: CommandRunner,
    client: httpx.Client,
) -> ReleaseRecord:
    """Tag, push and publish a draft release for a version.

    Raises:
        ReleaseError: If credentials or assets are missing, or a remote
            call fails.
        ConfigError: If the maintainer string is malformed.
        CommandError: If a git command fails.
    """
    token = secret_value(settings.gh_token)
    if not token:
        raise ReleaseError("GitHub token (GH_TOKEN) is missing", code="missing_credentials")
    if not settings.github_repository:
        raise ReleaseError(
            "GitHub repository (GITHUB_REPOSITORY) is not set", code="missing_credentials"
        )
    name, email = parse_maintainer(settings.maintainer)
    assets = find_release_assets(settings.release_dir, version)

    runner.require("git")
    repo = GitRepository(settings.git_repo_dir, runner, token=token)
    repo.configure_identity(name, email)
    repo.commit_all(version)

    tag_created = False
    if repo.tag_exists(version):
        logger.info("Tag '%s' already exists. Skipping tag creation.", version)
    else:
        repo.create_tag(version)
        repo.push(tags=True)
        tag_created = True
    repo.push()

    notes = compose_release_notes(version, settings.release_dir)
    notes_path = settings.release_dir / f"release-{version}.md"
    notes_path.write_text(notes, encoding="utf-8")

    github = GitHubReleases(client, settings.github_repository, token, settings.github_api_url)
    release = github.find_release(version)
    release_created = release is None
    if release is None:
        release = github.create_draft(version, notes)
        logger.info("Created draft release %s", version)
    else:
        logger.info("Release %s already exists; reusing it", version)

    attached = {a.get("name") for a in release.get("assets", [])}
    logger.info("Attaching the following assets to release: %s", ", ".join(a.name for a in assets))
    for asset in assets:
        if asset.name in attached:
            logger.info("Asset %s already attached; skipping", asset.name)
            continue
        github.upload_asset(release, asset)

    logger.info("Release %s published to GitHub as a draft.", version)
    return ReleaseRecord(
        tag=version,
        notes_path=notes_path,
        assets=assets,
        html_url=release.get("html_url", ""),
        tag_created=tag_created,
        release_created=release_created,
    )


__all__ = [
    "GitHubReleases",
    "GitRepository",
    "ReleaseError",
    "ReleaseRecord",
    "compose_release_notes",
    "find_release_assets",
    "publish_release",
]
