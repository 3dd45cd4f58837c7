"""Centralized operator settings using pydantic-settings.

This module provides a single source of truth for all operator configuration
loaded from environment variables. Uses pydantic for automatic validation,
type coercion, and documentation.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from dockercfg_operator.constants import (
    DEFAULT_RESYNC_SECONDS,
    DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    DEFAULT_UPDATE_JITTER_MAX_SECONDS,
    DEFAULT_UPDATE_MAX_ATTEMPTS,
)


class Settings(BaseSettings):
    """Operator configuration loaded from environment variables.

    All settings have sensible defaults for production use. Override via
    environment variables as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Log health probe and metrics scrape requests",
    )

    # Namespace watching
    namespaces: str = Field(
        default="",
        validation_alias="DOCKERCFG_OPERATOR_NAMESPACES",
        description="Comma-separated list of namespaces to watch (empty = all namespaces)",
    )

    # Operator behavior
    dry_run: bool = Field(
        default=False,
        validation_alias="DRY_RUN",
        description="Log intended changes without updating service accounts or deleting tokens",
    )
    resync_seconds: float = Field(
        default=DEFAULT_RESYNC_SECONDS,
        ge=0,
        validation_alias="RESYNC_SECONDS",
        description="Interval in seconds after which the secret watch is re-listed (0 = never)",
    )
    shutdown_timeout_seconds: float = Field(
        default=DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
        ge=0,
        validation_alias="SHUTDOWN_TIMEOUT_SECONDS",
        description="Time to wait for the watch loop to exit before cancelling it",
    )

    # Conflict retry for service account updates
    update_max_attempts: int = Field(
        default=DEFAULT_UPDATE_MAX_ATTEMPTS,
        ge=1,
        validation_alias="SERVICE_ACCOUNT_UPDATE_MAX_ATTEMPTS",
        description="Maximum update attempts when a service account update conflicts",
    )
    update_jitter_max_seconds: float = Field(
        default=DEFAULT_UPDATE_JITTER_MAX_SECONDS,
        ge=0,
        validation_alias="SERVICE_ACCOUNT_UPDATE_JITTER_MAX_SECONDS",
        description="Upper bound of the random sleep between conflicting update attempts",
    )

    # Metrics and observability
    metrics_enabled: bool = Field(
        default=True,
        validation_alias="METRICS_ENABLED",
        description="Serve Prometheus metrics and health endpoints",
    )
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port for Prometheus metrics endpoint",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Host address to bind metrics server",
    )

    @property
    def watched_namespaces(self) -> list[str] | None:
        """Parse watched namespaces from comma-separated string.

        Returns:
            List of namespace names, or None to watch all namespaces
        """
        if self.namespaces:
            return [ns.strip() for ns in self.namespaces.split(",") if ns.strip()]
        return None


# Global settings instance - initialized once at module import
settings = Settings()
