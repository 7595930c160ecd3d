"""Shared utilities: logging and exceptions."""

from assessment_client.utils.exceptions import (
    AssessmentClientError,
    ChannelTransportError,
    ConfigurationError,
    InvalidRequestError,
    MalformedModelError,
    MalformedSnapshotError,
    SessionAlreadyActiveError,
    SessionIdMissingError,
    StartRequestError,
)
from assessment_client.utils.logging import get_logger, setup_logging

__all__ = [
    "AssessmentClientError",
    "ChannelTransportError",
    "ConfigurationError",
    "InvalidRequestError",
    "MalformedModelError",
    "MalformedSnapshotError",
    "SessionAlreadyActiveError",
    "SessionIdMissingError",
    "StartRequestError",
    "get_logger",
    "setup_logging",
]
