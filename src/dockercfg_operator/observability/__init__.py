"""
Observability module for the dockercfg operator.

This module provides structured logging with correlation IDs and Prometheus
metrics with an HTTP endpoint for scraping and health probes.
"""

from .logging import OperatorLogger, setup_structured_logging
from .metrics import MetricsCollector, MetricsServer, metrics_collector

__all__ = [
    "MetricsCollector",
    "MetricsServer",
    "OperatorLogger",
    "metrics_collector",
    "setup_structured_logging",
]
