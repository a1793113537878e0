"""Error definitions for gki_builder.

Every fatal pipeline failure is a GkiBuildError carrying a stable code.
The CLI maps any of them to a printed message and exit status 1.
"""

from pathlib import Path

# Error codes
ENVIRONMENT_ERROR = "environment_error"
TOOL_ERROR = "tool_failed"
ANCHOR_NOT_FOUND = "anchor_not_found"
PATCH_STEP_ERROR = "patch_step_failed"
DOWNLOAD_ERROR = "download_error"
PACKAGING_ERROR = "packaging_error"


class GkiBuildError(Exception):
    """Base error for pipeline failures."""

    def __init__(self, message: str, code: str = "gki_build_error") -> None:
        super().__init__(message)
        self.code = code


class EnvironmentSetupError(GkiBuildError):
    """Raised when the host or workspace cannot be prepared."""

    def __init__(self, message: str, code: str = ENVIRONMENT_ERROR) -> None:
        super().__init__(message, code)


class ToolExecutionError(GkiBuildError):
    """Raised when an external tool exits nonzero or cannot be started."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        log_path: Path | None = None,
        code: str = TOOL_ERROR,
    ) -> None:
        super().__init__(message, code)
        self.exit_code = exit_code
        self.log_path = log_path


class AnchorNotFoundError(GkiBuildError):
    """Raised when a text mutation cannot find the line it expects."""

    def __init__(self, path: Path, anchor: str) -> None:
        super().__init__(
            f"Expected anchor {anchor!r} not found in {path}",
            ANCHOR_NOT_FOUND,
        )
        self.path = path
        self.anchor = anchor


class PatchStepError(GkiBuildError):
    """Raised when a fatal patch step fails."""

    def __init__(self, step_name: str, message: str) -> None:
        super().__init__(f"Patch step '{step_name}' failed: {message}", PATCH_STEP_ERROR)
        self.step_name = step_name


class DownloadError(GkiBuildError):
    """Raised when an HTTP download fails or does not verify."""

    def __init__(self, message: str, code: str = DOWNLOAD_ERROR) -> None:
        super().__init__(message, code)


class PackagingError(GkiBuildError):
    """Raised when the flashable archive cannot be produced."""

    def __init__(self, message: str, code: str = PACKAGING_ERROR) -> None:
        super().__init__(message, code)


__all__ = [
    "ANCHOR_NOT_FOUND",
    "DOWNLOAD_ERROR",
    "ENVIRONMENT_ERROR",
    "PACKAGING_ERROR",
    "PATCH_STEP_ERROR",
    "TOOL_ERROR",
    "AnchorNotFoundError",
    "DownloadError",
    "EnvironmentSetupError",
    "GkiBuildError",
    "PackagingError",
    "PatchStepError",
    "ToolExecutionError",
]
