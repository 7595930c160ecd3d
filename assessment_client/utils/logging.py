"""
Structured logging configuration for the assessment session client.

Provides centralized logging with optional JSON output and the active
assessment id attached to every record emitted while a session is live.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

# Assessment id of the session whose code is currently running.
# Pump tasks copy the context at creation, so each stream logs its own id.
current_session_id: ContextVar[Optional[str]] = ContextVar("current_session_id", default=None)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with standard fields:
    - timestamp: ISO 8601 timestamp
    - level: Log level (INFO, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - session_id: Assessment id, when a session is active
    - extra: Additional context fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "session_id", None):
            log_data["session_id"] = record.session_id

        if hasattr(record, "extra"):
            log_data["extra"] = record.extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class SessionFilter(logging.Filter):
    """
    Filter that adds the active session id to log records.

    Reads the id from a callable, by default the ``current_session_id``
    context variable.
    """

    def __init__(self, get_session_id_func: Optional[Callable[[], Optional[str]]] = None):
        """
        Initialize session filter.

        Args:
            get_session_id_func: Function returning the session id (optional)
        """
        super().__init__()
        self.get_session_id = get_session_id_func or current_session_id.get

    def filter(self, record: logging.LogRecord) -> bool:
        session_id = self.get_session_id()
        if session_id and not getattr(record, "session_id", None):
            record.session_id = session_id
        return True


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Setup logging for the client.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (True) or plain text (False)
        log_file: Optional path of an additional log file

    Returns:
        Configured root logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicate logs when re-initializing
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    session_filter = SessionFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(session_filter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            file_handler.addFilter(session_filter)
            logger.addHandler(file_handler)
        except OSError as e:
            # Console logging still works
            logger.warning(f"Failed to setup file logging: {e}")

    return logger


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    session_id: Optional[str] = None,
    **extra_fields
) -> None:
    """
    Log message with context fields.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error, critical)
        message: Log message
        session_id: Assessment id to attach (overrides the context variable)
        **extra_fields: Additional context fields
    """
    log_method = getattr(logger, level.lower())

    extra: Dict[str, Any] = {}
    if session_id:
        extra["session_id"] = session_id
    if extra_fields:
        extra["extra"] = extra_fields

    log_method(message, extra=extra)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


__all__ = [
    "current_session_id",
    "StructuredFormatter",
    "SessionFilter",
    "setup_logging",
    "log_with_context",
    "get_logger",
]
