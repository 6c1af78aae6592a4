"""Configuration settings for kernel_pkgbuild.

Uses pydantic-settings for config parsing from a settings file,
environment variables and defaults. Configuration precedence:
settings file > env vars > defaults. When no settings file exists the
environment-derived values are used (unattended/CI mode).
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import AliasChoices, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from kernel_pkgbuild.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path("config.json")

MAINTAINER_PATTERN = re.compile(r"^\s*(?P<name>[^<]*?)\s*<(?P<email>[^<>@\s]+@[^<>\s]+)>\s*$")


def _alias(*names: str) -> AliasChoices:
    """Accept the field name plus the original settings-file and env names."""
    return AliasChoices(*names)


class Settings(BaseSettings):
    """Pipeline settings.

    Every field accepts the environment variable and settings-file key
    used by the container build (BUILDPATH, configdir, nexus_pass, ...).
    Settings are immutable once loaded.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # Paths
    build_path: Path = Field(
        default=Path("/build"),
        validation_alias=_alias("build_path", "buildpath", "BUILDPATH"),
        description="Working directory for tarballs, source trees and packages",
    )
    config_dir: Path = Field(
        default=Path("/config"),
        validation_alias=_alias("config_dir", "configdir", "CONFIGDIR"),
        description="Directory holding baseline kernel configurations",
    )
    release_dir: Path = Field(
        default=Path("/release"),
        validation_alias=_alias("release_dir", "releasedir", "RELEASEDIR"),
        description="Directory for archives, checksums and reports",
    )
    patch_dir: Path = Field(
        default=Path("/patches"),
        validation_alias=_alias("patch_dir", "patchdir", "PATCHDIR"),
        description="Directory holding *.patch files",
    )

    # Toolchain
    ccopts: str = Field(
        default="",
        validation_alias=_alias("ccopts", "CCOPTS"),
        description="Compiler command passed as CC and HOSTCC (e.g. 'ccache gcc')",
    )
    llvm: bool = Field(
        default=False,
        validation_alias=_alias("llvm", "LLVM"),
        description="Use the LLVM/Clang toolchain by default",
    )
    ld: str = Field(
        default="",
        validation_alias=_alias("ld", "LD"),
        description="Custom linker passed as LD",
    )
    jobs: int | None = Field(
        default=None,
        ge=1,
        validation_alias=_alias("jobs", "JOBS"),
        description="Parallel make jobs (defaults to CPU count)",
    )

    # Package metadata
    homepage: str = Field(
        default="https://example.com",
        validation_alias=_alias("homepage", "HOMEPAGE"),
    )
    maintainer: str = Field(
        default="GitHub Actions <gh@actions.local>",
        validation_alias=_alias("maintainer", "MAINTAINER"),
        description="Package maintainer, 'Name <email>'",
    )
    default_suffix: str = Field(
        default="toeirei",
        validation_alias=_alias("default_suffix", "suffix", "SUFFIX"),
        description="Local-version suffix used when none is requested",
    )

    # Downloads
    download_base_url: str = Field(
        default="https://cdn.kernel.org/pub/linux/kernel",
        validation_alias=_alias("download_base_url", "KERNEL_MIRROR"),
    )
    releases_url: str = Field(
        default="https://www.kernel.org/releases.json",
        validation_alias=_alias("releases_url", "RELEASES_URL"),
    )
    download_timeout: int = Field(
        default=3600,
        ge=10,
        validation_alias=_alias("download_timeout", "DOWNLOAD_TIMEOUT"),
    )

    # Upload targets
    packagecloud_repo: str = Field(
        default="",
        validation_alias=_alias("packagecloud_repo", "packagecloud_deb", "PACKAGECLOUD_DEB"),
        description="Primary packagecloud target, 'user/repo/distro/release'",
    )
    packagecloud_repo_secondary: str = Field(
        default="",
        validation_alias=_alias(
            "packagecloud_repo_secondary", "packagecloud_deb2", "PACKAGECLOUD_DEB2"
        ),
    )
    packagecloud_token: SecretStr | None = Field(
        default=None,
        validation_alias=_alias("packagecloud_token", "PACKAGECLOUD_TOKEN"),
    )
    packagecloud_url: str = Field(
        default="https://packagecloud.io",
        validation_alias=_alias("packagecloud_url", "PACKAGECLOUD_URL"),
    )
    nexus_user: str = Field(
        default="",
        validation_alias=_alias("nexus_user", "NEXUS_USER"),
    )
    nexus_password: SecretStr | None = Field(
        default=None,
        validation_alias=_alias("nexus_password", "nexus_pass", "NEXUS_PW"),
    )
    nexus_repo: str = Field(
        default="",
        validation_alias=_alias("nexus_repo", "NEXUS_REPO"),
        description="Nexus repository upload URL",
    )
    upload_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        validation_alias=_alias("upload_max_attempts", "UPLOAD_MAX_ATTEMPTS"),
    )
    upload_retry_delay: float = Field(
        default=2.0,
        ge=0,
        validation_alias=_alias("upload_retry_delay", "UPLOAD_RETRY_DELAY"),
    )

    # Release publishing
    gh_token: SecretStr | None = Field(
        default=None,
        validation_alias=_alias("gh_token", "GH_TOKEN"),
    )
    github_repository: str = Field(
        default="",
        validation_alias=_alias("github_repository", "GITHUB_REPOSITORY"),
        description="Release host repository, 'owner/name'",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        validation_alias=_alias("github_api_url", "GITHUB_API_URL"),
    )
    git_repo_dir: Path = Field(
        default=Path("/gitrepo"),
        validation_alias=_alias("git_repo_dir", "GIT_REPO_DIR"),
    )

    # Notifications and logging
    ntfy_url: str = Field(
        default="",
        validation_alias=_alias("ntfy_url", "NTFY_URL"),
        description="Notification webhook (fire-and-forget)",
    )
    notify_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias=_alias("notify_level", "NOTIFY_LEVEL"),
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias=_alias("log_level", "LOG_LEVEL"),
    )

    @property
    def effective_jobs(self) -> int:
        """Parallel make jobs, falling back to the CPU count."""
        return self.jobs or os.cpu_count() or 1


def secret_value(secret: SecretStr | None) -> str:
    """Return the plain value of an optional secret ('' when unset)."""
    if secret is None:
        return ""
    return secret.get_secret_value()


def parse_maintainer(value: str) -> tuple[str, str]:
    """Split a maintainer string into name and email.

    Args:
        value: Maintainer string, 'Name <email@example.com>'.

    Returns:
        Tuple of (name, email).

    Raises:
        ConfigError: If the string is malformed.
    """
    match = MAINTAINER_PATTERN.match(value)
    if not match or not match.group("name"):
        raise ConfigError(
            f"Invalid maintainer format: '{value}'. "
            "Expected format: 'Name <email@example.com>'"
        )
    return match.group("name"), match.group("email")


def read_settings_file(path: Path) -> dict[str, Any]:
    """Read a JSON or YAML settings file.

    Null values are dropped so that they fall back to env/defaults.

    Raises:
        ConfigError: If the file cannot be parsed.
    """
    try:
        with path.open(encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot parse settings file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a mapping in {path}, got {type(data).__name__}"
        )
    return {k: v for k, v in data.items() if v is not None and v != ""}


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from a file, falling back to the environment.

    Args:
        path: Settings file path; defaults to ./config.json.

    Returns:
        Settings instance.

    Raises:
        ConfigError: If the file or a value is invalid.
    """
    path = path or DEFAULT_SETTINGS_FILE
    try:
        if path.is_file():
            logger.debug("Loading settings from %s", path)
            return Settings(**read_settings_file(path))

        logger.warning("%s not found, using environment variables (CI mode)", path)
        return Settings()
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON with secrets masked.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = Settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "DEFAULT_SETTINGS_FILE",
    "Settings",
    "load_settings",
    "parse_maintainer",
    "print_settings_json",
    "read_settings_file",
    "secret_value",
]
