"""Error base class and stable error codes.

Every fatal pipeline condition is raised as a PipelineError subclass
carrying a stable code. The CLI turns these into a labeled log line
and a non-zero exit status.
"""

CONFIG_ERROR = "config_error"
DOWNLOAD_ERROR = "download_error"
EXTRACTION_ERROR = "extraction_error"
BASELINE_MISSING = "baseline_missing"
PATCH_ERROR = "patch_error"
BUILD_ERROR = "build_failed"
PACKAGE_ERROR = "package_error"
NO_ARTIFACTS = "no_artifacts"
UPLOAD_ERROR = "upload_error"
RELEASE_ERROR = "release_error"
COMMAND_FAILED = "command_failed"
COMMAND_NOT_FOUND = "command_not_found"


class PipelineError(Exception):
    """Base error for fatal pipeline conditions."""

    def __init__(self, message: str, code: str = "pipeline_error") -> None:
        """Initialize PipelineError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class ConfigError(PipelineError):
    """Raised when settings or a request are invalid."""

    def __init__(self, message: str, code: str = CONFIG_ERROR) -> None:
        super().__init__(message, code)


__all__ = [
    "BASELINE_MISSING",
    "BUILD_ERROR",
    "COMMAND_FAILED",
    "COMMAND_NOT_FOUND",
    "CONFIG_ERROR",
    "ConfigError",
    "DOWNLOAD_ERROR",
    "EXTRACTION_ERROR",
    "NO_ARTIFACTS",
    "PACKAGE_ERROR",
    "PATCH_ERROR",
    "PipelineError",
    "RELEASE_ERROR",
    "UPLOAD_ERROR",
]
