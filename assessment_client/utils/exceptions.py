"""
Structured exception classes for the assessment session client.

Every error carries a machine-readable code and a details dictionary so the
presentation layer can surface it without parsing messages.
"""

from typing import Any, Dict, Optional


class AssessmentClientError(Exception):
    """Base exception for all assessment client errors."""

    def __init__(self, message: str, error_code: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize error with message, code, and optional details.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Optional dictionary with additional context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ConfigurationError(AssessmentClientError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        details = kwargs
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=details
        )


class InvalidRequestError(AssessmentClientError):
    """Start request rejected locally (missing metadata or empty goal selection)."""

    def __init__(self, message: str, missing: Optional[list] = None, **kwargs):
        """
        Initialize invalid request error.

        Args:
            message: Error message
            missing: Names of the missing inputs (metadata fields, goals)
            **kwargs: Additional details
        """
        details = kwargs
        if missing:
            details["missing"] = list(missing)

        super().__init__(
            message=message,
            error_code="INVALID_REQUEST",
            details=details
        )


class SessionAlreadyActiveError(AssessmentClientError):
    """A session is already starting or running on this orchestrator."""

    def __init__(self, message: str, session_id: Optional[str] = None, phase: Optional[str] = None, **kwargs):
        details = kwargs
        if session_id:
            details["session_id"] = session_id
        if phase:
            details["phase"] = phase

        super().__init__(
            message=message,
            error_code="SESSION_ALREADY_ACTIVE",
            details=details
        )


class SessionIdMissingError(AssessmentClientError):
    """A stream channel was opened without a session identifier."""

    def __init__(self, message: str, channel: Optional[str] = None, **kwargs):
        details = kwargs
        if channel:
            details["channel"] = channel

        super().__init__(
            message=message,
            error_code="SESSION_ID_MISSING",
            details=details
        )


class MalformedModelError(AssessmentClientError):
    """Quality model definition could not be turned into a goal tree."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        """
        Initialize malformed model error.

        Args:
            message: Error message
            path: Slash-separated position of the offending node
            **kwargs: Additional details
        """
        details = kwargs
        if path:
            details["path"] = path

        super().__init__(
            message=message,
            error_code="MALFORMED_MODEL",
            details=details
        )


class MalformedSnapshotError(AssessmentClientError):
    """Results snapshot is structurally invalid and was dropped."""

    def __init__(self, message: str, entry_index: Optional[int] = None, **kwargs):
        details = kwargs
        if entry_index is not None:
            details["entry_index"] = entry_index

        super().__init__(
            message=message,
            error_code="MALFORMED_SNAPSHOT",
            details=details
        )


class ChannelTransportError(AssessmentClientError):
    """Transport-level failure on one stream channel (fatal to that channel)."""

    def __init__(
        self,
        message: str,
        channel: Optional[str] = None,
        session_id: Optional[str] = None,
        **kwargs
    ):
        details = kwargs
        if channel:
            details["channel"] = channel
        if session_id:
            details["session_id"] = session_id

        super().__init__(
            message=message,
            error_code="CHANNEL_TRANSPORT_ERROR",
            details=details
        )


class StartRequestError(AssessmentClientError):
    """The start request failed; the session returned to idle."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        **kwargs
    ):
        """
        Initialize start request error.

        Args:
            message: Error message
            status_code: HTTP status code when the server answered
            timeout_seconds: Timeout that elapsed, if the request timed out
            **kwargs: Additional details
        """
        details = kwargs
        if status_code is not None:
            details["status_code"] = status_code
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds

        super().__init__(
            message=message,
            error_code="START_REQUEST_FAILED",
            details=details
        )


__all__ = [
    "AssessmentClientError",
    "ConfigurationError",
    "InvalidRequestError",
    "SessionAlreadyActiveError",
    "SessionIdMissingError",
    "MalformedModelError",
    "MalformedSnapshotError",
    "ChannelTransportError",
    "StartRequestError",
]
