"""Type definitions for the scraper module.

Pipeline failures form a closed set: every error carries an ``ErrorKind`` tag
plus the context that matters for that kind. Callers that need to react per
kind switch on ``error.kind``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Kinds of pipeline failures."""

    NAVIGATION = "navigation"
    CONFIGURATION = "configuration"
    EXTRACTION = "extraction"
    DOWNLOAD = "download"
    NOTIFICATION = "notification"
    UNEXPECTED = "unexpected"


class DownloadReason(str, Enum):
    """Reason codes for rejected downloads."""

    EMPTY_FILE = "empty_file"
    HTML_ERROR_PAGE = "html_error_page"
    HTTP_ERROR = "http_error"
    HTML_RESPONSE = "html_response"
    FETCH_FAILED = "fetch_failed"


def invalid_magic_number(expected_type: str) -> str:
    return f"invalid_magic_number_for_{expected_type}"


class MonitorError(Exception):
    """Base exception for pipeline errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def context(self) -> dict[str, Any]:
        """Kind-specific context for logs and notifications."""
        return {}


class NavigationError(MonitorError):
    """A required navigation step failed after all of its attempts."""

    kind = ErrorKind.NAVIGATION

    def __init__(
        self,
        message: str,
        step: Any = None,
        step_index: Optional[int] = None,
        screenshot: Optional[bytes] = None,
        html: Optional[str] = None,
    ):
        super().__init__(message)
        self.step = step
        self.step_index = step_index
        self.screenshot = screenshot
        self.html = html

    def context(self) -> dict[str, Any]:
        return {
            "step": self.step.summary() if self.step is not None else None,
            "step_index": self.step_index,
        }


class StepConfigurationError(MonitorError):
    """A step cannot run as configured (unknown action, missing env var)."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, step: Any = None):
        super().__init__(message)
        self.step = step

    def context(self) -> dict[str, Any]:
        return {"step": self.step.summary() if self.step is not None else None}


class ExtractionError(MonitorError):
    """A required field could not be extracted from a list item."""

    kind = ErrorKind.EXTRACTION

    def __init__(
        self, message: str, selector: Optional[str] = None, field: Optional[str] = None
    ):
        super().__init__(message)
        self.selector = selector
        self.field = field

    def context(self) -> dict[str, Any]:
        return {"selector": self.selector, "field": self.field}


class DownloadError(MonitorError):
    """A file could not be retrieved or failed validation."""

    kind = ErrorKind.DOWNLOAD

    def __init__(self, message: str, url: str, reason: str):
        super().__init__(message)
        self.url = url
        self.reason = str(reason.value if isinstance(reason, DownloadReason) else reason)

    @property
    def is_validation_failure(self) -> bool:
        """True when the content itself was rejected (not a transport problem)."""
        return self.reason in (
            DownloadReason.EMPTY_FILE.value,
            DownloadReason.HTML_ERROR_PAGE.value,
        ) or self.reason.startswith("invalid_magic_number_for_")

    def context(self) -> dict[str, Any]:
        return {"url": self.url, "reason": self.reason}


@dataclass
class DownloadArtifact:
    """A validated file on local disk, private to one document's processing."""

    path: str
    hash: str
    size: int
    filename: str
    detected_type: Optional[str] = None
