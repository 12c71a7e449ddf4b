"""
Error definitions for gatedfeed.

Only ConfigurationError and FetchError ever reach the caller of a pipeline
run. The remaining errors are raised by the fetch backends and recovered
locally as empty markup.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes attached to every GatedFeedError."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """No viable fetch backend, or an unknown site profile.
    Action: set browser.executable_path or remote.service_url."""

    FETCH_FAILED = "FETCH_FAILED"
    """Listing markup could not be obtained by any render path.
    Action: the site may be blocking requests; retry later."""

    SESSION_UNAVAILABLE = "SESSION_UNAVAILABLE"
    """The automation session could not be launched."""

    SESSION_CLOSED = "SESSION_CLOSED"
    """The session was used after close or lease expiry."""

    NAVIGATION_ERROR = "NAVIGATION_ERROR"
    """Page load failed for a reason other than timeout."""

    NAVIGATION_TIMEOUT = "NAVIGATION_TIMEOUT"
    """Page load exceeded its hard deadline."""

    REMOTE_FETCH_FAILED = "REMOTE_FETCH_FAILED"
    """The remote rendering service failed or returned no snapshot."""


class GatedFeedError(Exception):
    """Base exception carrying a machine-readable code."""

    code: ErrorCode = ErrorCode.FETCH_FAILED

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a structured error payload."""
        result: dict[str, Any] = {
            "ok": False,
            "error_code": self.code.value,
            "error": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ConfigurationError(GatedFeedError):
    code = ErrorCode.CONFIGURATION_ERROR


class FetchError(GatedFeedError):
    code = ErrorCode.FETCH_FAILED


class SessionUnavailable(GatedFeedError):
    code = ErrorCode.SESSION_UNAVAILABLE


class SessionClosed(GatedFeedError):
    code = ErrorCode.SESSION_CLOSED


class NavigationError(GatedFeedError):
    code = ErrorCode.NAVIGATION_ERROR


class NavigationTimeout(NavigationError):
    code = ErrorCode.NAVIGATION_TIMEOUT


class RemoteFetchFailed(GatedFeedError):
    code = ErrorCode.REMOTE_FETCH_FAILED
