#!/usr/bin/env python3
"""
Dockercfg Operator - Main entry point.

Starts the controller that cleans up after deleted service account dockercfg
secrets, together with the Prometheus metrics and health endpoints.

Usage:
    python -m dockercfg_operator.operator
    # Or via the console script:
    dockercfg-operator

Environment Variables:
    DOCKERCFG_OPERATOR_NAMESPACES: Comma-separated list of namespaces to watch
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
    DRY_RUN: Set to 'true' for dry-run mode
    RESYNC_SECONDS: Re-list interval for the secret watch (0 = never)
"""

import asyncio
import contextlib
import logging
import signal
import sys

from dockercfg_operator.controller import DockercfgDeletedController
from dockercfg_operator.errors import ConfigurationError
from dockercfg_operator.observability.logging import setup_structured_logging
from dockercfg_operator.observability.metrics import MetricsServer
from dockercfg_operator.services import ConflictRetryPolicy
from dockercfg_operator.settings import Settings
from dockercfg_operator.settings import settings as operator_settings

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings = operator_settings) -> None:
    """Configure structured logging for the operator."""
    setup_structured_logging(
        log_level=settings.log_level.upper(),
        enable_json_formatting=settings.json_logs,
        correlation_id_enabled=settings.correlation_ids,
        log_health_probes=settings.log_health_probes,
    )


def build_controller(settings: Settings = operator_settings) -> DockercfgDeletedController:
    """
    Create the controller from operator settings.

    Raises:
        ConfigurationError: If the settings describe an invalid retry policy
            or interval
    """
    retry_policy = ConflictRetryPolicy(
        max_attempts=settings.update_max_attempts,
        jitter_max_seconds=settings.update_jitter_max_seconds,
    )
    return DockercfgDeletedController(
        retry_policy=retry_policy,
        resync_seconds=settings.resync_seconds,
        namespaces=settings.watched_namespaces,
        dry_run=settings.dry_run,
        shutdown_timeout=settings.shutdown_timeout_seconds,
    )


async def run(settings: Settings = operator_settings) -> None:
    """Run the controller until it exits or a termination signal arrives."""
    controller = build_controller(settings)

    metrics_server: MetricsServer | None = None
    if settings.metrics_enabled:
        metrics_server = MetricsServer(
            port=settings.metrics_port,
            host=settings.metrics_host,
            readiness_check=lambda: controller.running,
        )

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, shutdown.set)

    try:
        if metrics_server is not None:
            await metrics_server.start()

        await controller.start()
        logger.info("Dockercfg operator started")

        waiters = {
            asyncio.create_task(shutdown.wait()),
            asyncio.create_task(controller.wait()),
        }
        _, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for waiter in pending:
            waiter.cancel()
    finally:
        logger.info("Shutting down dockercfg operator...")
        await controller.stop()
        if metrics_server is not None:
            await metrics_server.stop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)


def main() -> None:
    """Main entry point for the operator."""
    configure_logging()

    try:
        asyncio.run(run())
    except ConfigurationError as e:
        logger.error(f"Invalid operator configuration: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
