"""
Structured logging utilities for the dockercfg operator.

This module provides correlation ID tracking, structured log formatting,
and reconciliation logging helpers for production troubleshooting.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable for tracking correlation IDs across async operations
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Paths that should be filtered from access logs (health probes)
HEALTH_PROBE_PATHS = frozenset({"/healthz", "/ready", "/metrics"})

# Record attributes copied into the JSON payload when present
STRUCTURED_FIELDS = (
    "resource_type",
    "resource_name",
    "namespace",
    "operation",
    "duration",
    "error_type",
    "service_account",
    "token_secret",
    "attempt",
    "outcome",
)


class HealthProbeFilter(logging.Filter):
    """
    Logging filter that suppresses health probe and metrics endpoint logs.

    These endpoints are hit frequently by Kubernetes probes and monitoring
    systems, generating excessive noise in logs during debugging.
    """

    def __init__(self, suppress_health_logs: bool = True):
        super().__init__()
        self.suppress_health_logs = suppress_health_logs

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.suppress_health_logs:
            return True

        message = record.getMessage()
        return all(path not in message for path in HEALTH_PROBE_PATHS)


class CorrelationIDFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        current_correlation_id = correlation_id.get()
        if not current_correlation_id:
            current_correlation_id = generate_correlation_id()
            correlation_id.set(current_correlation_id)

        record.correlation_id = current_correlation_id
        return True


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON formatter for logs with correlation ID support.

    Formats log records as structured JSON for better parsing and analysis
    in production monitoring systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID.

    Returns:
        Unique correlation ID string
    """
    return str(uuid.uuid4())[:8]  # Short 8-character ID for readability


def set_correlation_id(corr_id: str) -> str:
    """
    Set the correlation ID for the current context.

    Args:
        corr_id: Correlation ID to set

    Returns:
        The correlation ID that was set
    """
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    """Get the current correlation ID, or empty string if none set."""
    return correlation_id.get("")


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
    log_health_probes: bool = False,
) -> None:
    """
    Set up structured logging for the operator.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Whether to use JSON formatting
        correlation_id_enabled: Whether to enable correlation ID tracking
        log_health_probes: Whether to log health probe requests (default: False)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()

    if enable_json_formatting:
        formatter: logging.Formatter = StructuredFormatter()
    elif correlation_id_enabled:
        formatter = logging.Formatter(
            "%(asctime)s - %(correlation_id)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)

    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    if not log_health_probes:
        handler.addFilter(HealthProbeFilter(suppress_health_logs=True))

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Third-party libraries are chatty at INFO
    logging.getLogger("kopf").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.server").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.web").setLevel(logging.WARNING)


class OperatorLogger:
    """
    Logger for reconciliation events with structured logging support.

    Provides convenient methods for logging the lifecycle of a single
    reconciliation with correlation ID tracking and structured data.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def log_reconciliation_start(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        correlation_id: str | None = None,
    ) -> str:
        """
        Log the start of a reconciliation operation.

        Args:
            resource_type: Type of resource being reconciled
            resource_name: Name of the resource
            namespace: Namespace of the resource
            correlation_id: Optional correlation ID (defaults to the current one,
                generated if none is set)

        Returns:
            The correlation ID used for this operation
        """
        if correlation_id is None:
            correlation_id = get_correlation_id() or generate_correlation_id()

        set_correlation_id(correlation_id)

        self.logger.info(
            f"Starting reconciliation for {resource_type} {namespace}/{resource_name}",
            extra={
                "resource_type": resource_type,
                "resource_name": resource_name,
                "namespace": namespace,
                "operation": "reconcile_start",
            },
        )

        return correlation_id

    def log_reconciliation_success(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        duration: float,
        outcome: str | None = None,
    ) -> None:
        """Log successful reconciliation completion."""
        self.logger.info(
            f"Reconciliation completed for {resource_type} {namespace}/{resource_name}",
            extra={
                "resource_type": resource_type,
                "resource_name": resource_name,
                "namespace": namespace,
                "operation": "reconcile_success",
                "duration": duration,
                "outcome": outcome,
            },
        )

    def log_reconciliation_error(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        error: Exception,
        duration: float | None = None,
        exc_info: bool = False,
    ) -> None:
        """
        Log a reconciliation error.

        Args:
            resource_type: Type of resource
            resource_name: Name of the resource
            namespace: Namespace of the resource
            error: The error that occurred
            duration: Reconciliation duration in seconds
            exc_info: Attach the traceback of the exception being handled
        """
        extra = {
            "resource_type": resource_type,
            "resource_name": resource_name,
            "namespace": namespace,
            "operation": "reconcile_error",
            "error_type": type(error).__name__,
        }
        if duration is not None:
            extra["duration"] = duration

        self.logger.error(
            f"Reconciliation failed for {resource_type} {namespace}/{resource_name}: {error}",
            extra=extra,
            exc_info=exc_info,
        )
