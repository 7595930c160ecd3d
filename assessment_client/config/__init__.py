"""
Configuration management for the assessment session client.

Provides centralized configuration with validation, defaults, and environment overrides.
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from assessment_client.utils.exceptions import ConfigurationError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ApiConfig(BaseModel):
    """Assessment server endpoints and request timeouts."""

    base_url: str = Field(default="http://localhost:3000/api", description="Assessment server API root")
    quality_model_path: str = Field(default="/quality-model", description="Quality model definition endpoint")
    start_path: str = Field(default="/assessments", description="Start-assessment endpoint")
    progress_path_template: str = Field(
        default="/progress/{assessment_id}",
        description="Progress stream path used when the start response names none"
    )
    results_path_template: str = Field(
        default="/assessments/{assessment_id}/stream",
        description="Results stream path used when the start response names none"
    )
    connect_timeout: float = Field(default=10.0, gt=0, le=300, description="Connect timeout in seconds")
    start_timeout: float = Field(default=60.0, gt=0, le=3600, description="Start request timeout in seconds")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an absolute http(s) URL without trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL: {v}")
        return v.rstrip("/")


class StreamConfig(BaseModel):
    """Stream consumption settings."""

    progress_capacity: int = Field(default=100, ge=1, le=100000, description="Progress lines kept in memory")
    completion_sentinel: str = Field(
        default="injection completed",
        min_length=1,
        description="Progress substring marking instrumentation completion"
    )
    max_consecutive_parse_failures: int = Field(
        default=5,
        ge=0,
        le=1000,
        description="Undecodable messages in a row tolerated before a channel gives up"
    )


class ObservabilityConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    json_logs: bool = Field(default=False, description="Use JSON-formatted logs")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"Unsupported log level: {v}. Supported: {', '.join(LOG_LEVELS)}")
        return v.upper()


class AssessmentClientConfig(BaseModel):
    """
    Complete client configuration.

    Centralizes all configuration with validation, defaults, and environment overrides.
    """

    api: ApiConfig = Field(default_factory=ApiConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = ConfigDict(validate_assignment=True)

    @classmethod
    def from_env(cls, env_prefix: str = "ASSESSMENT_CLIENT_") -> "AssessmentClientConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - ASSESSMENT_CLIENT_BASE_URL: Server API root (default: http://localhost:3000/api)
        - ASSESSMENT_CLIENT_START_PATH: Start endpoint path (default: /assessments)
        - ASSESSMENT_CLIENT_CONNECT_TIMEOUT: Connect timeout seconds (default: 10)
        - ASSESSMENT_CLIENT_START_TIMEOUT: Start request timeout seconds (default: 60)
        - ASSESSMENT_CLIENT_PROGRESS_CAPACITY: Progress lines kept (default: 100)
        - ASSESSMENT_CLIENT_COMPLETION_SENTINEL: Completion substring (default: injection completed)
        - ASSESSMENT_CLIENT_MAX_PARSE_FAILURES: Consecutive bad messages tolerated (default: 5)
        - ASSESSMENT_CLIENT_LOG_LEVEL: Log level (default: INFO)
        - ASSESSMENT_CLIENT_JSON_LOGS: JSON logs (default: false)
        - ASSESSMENT_CLIENT_LOG_FILE: Log file path (default: none)

        Args:
            env_prefix: Environment variable prefix

        Returns:
            Configuration instance
        """
        config_dict: Dict[str, Any] = {}

        try:
            api_dict: Dict[str, Any] = {}
            if base_url := os.getenv(f"{env_prefix}BASE_URL"):
                api_dict["base_url"] = base_url
            if start_path := os.getenv(f"{env_prefix}START_PATH"):
                api_dict["start_path"] = start_path
            if connect_timeout := os.getenv(f"{env_prefix}CONNECT_TIMEOUT"):
                api_dict["connect_timeout"] = float(connect_timeout)
            if start_timeout := os.getenv(f"{env_prefix}START_TIMEOUT"):
                api_dict["start_timeout"] = float(start_timeout)
            if api_dict:
                config_dict["api"] = api_dict

            stream_dict: Dict[str, Any] = {}
            if capacity := os.getenv(f"{env_prefix}PROGRESS_CAPACITY"):
                stream_dict["progress_capacity"] = int(capacity)
            if sentinel := os.getenv(f"{env_prefix}COMPLETION_SENTINEL"):
                stream_dict["completion_sentinel"] = sentinel
            if max_failures := os.getenv(f"{env_prefix}MAX_PARSE_FAILURES"):
                stream_dict["max_consecutive_parse_failures"] = int(max_failures)
            if stream_dict:
                config_dict["stream"] = stream_dict

            observability_dict: Dict[str, Any] = {}
            if log_level := os.getenv(f"{env_prefix}LOG_LEVEL"):
                observability_dict["log_level"] = log_level
            if json_logs := os.getenv(f"{env_prefix}JSON_LOGS"):
                observability_dict["json_logs"] = json_logs.lower() == "true"
            if log_file := os.getenv(f"{env_prefix}LOG_FILE"):
                observability_dict["log_file"] = log_file
            if observability_dict:
                config_dict["observability"] = observability_dict

            return cls(**config_dict)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Failed to load configuration from environment: {e}",
                config_key="environment"
            ) from e

    def validate_config(self) -> None:
        """
        Validate configuration consistency.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        for key in ("progress_path_template", "results_path_template"):
            template = getattr(self.api, key)
            if "{assessment_id}" not in template:
                raise ConfigurationError(
                    f"{key} must contain the {{assessment_id}} placeholder",
                    config_key=f"api.{key}"
                )

        if self.api.start_timeout < self.api.connect_timeout:
            raise ConfigurationError(
                "start_timeout must not be shorter than connect_timeout",
                config_key="api.start_timeout"
            )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Returns:
            Configuration as dictionary
        """
        return self.model_dump()


# Global configuration instance
_config: Optional[AssessmentClientConfig] = None


def get_config() -> AssessmentClientConfig:
    """
    Get global configuration instance.

    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = AssessmentClientConfig.from_env()
        _config.validate_config()
    return _config


def set_config(config: AssessmentClientConfig) -> None:
    """
    Set global configuration instance.

    Args:
        config: Configuration to set
    """
    global _config
    config.validate_config()
    _config = config


def reset_config() -> None:
    """Reset global configuration to None."""
    global _config
    _config = None


__all__ = [
    "AssessmentClientConfig",
    "ApiConfig",
    "StreamConfig",
    "ObservabilityConfig",
    "get_config",
    "set_config",
    "reset_config",
]
