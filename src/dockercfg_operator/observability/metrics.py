"""
Prometheus metrics for the dockercfg operator.

This module provides metrics for monitoring secret deletion handling,
service account repairs, conflict retries and token cleanup, plus the HTTP
server exposing them alongside health probes.
"""

import logging
import time
from collections.abc import Callable

# aiohttp is provided transitively by kopf; the metrics server reuses it
# instead of pulling in a second HTTP stack.
from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
    json_response,
)
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Dedicated registry so tests and embedding processes do not collide with
# the prometheus_client default registry
_metrics_registry = CollectorRegistry()

SECRET_DELETIONS_TOTAL = Counter(
    "dockercfg_operator_secret_deletions_total",
    "Total number of dockercfg secret deletion events reconciled",
    ["namespace", "result"],
    registry=_metrics_registry,
)

RECONCILIATION_DURATION = Histogram(
    "dockercfg_operator_reconciliation_duration_seconds",
    "Time spent reconciling a dockercfg secret deletion",
    ["namespace"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=_metrics_registry,
)

SERVICE_ACCOUNT_UPDATES_TOTAL = Counter(
    "dockercfg_operator_service_account_updates_total",
    "Total number of service account reference repairs by result",
    ["namespace", "result"],
    registry=_metrics_registry,
)

SERVICE_ACCOUNT_UPDATE_CONFLICTS_TOTAL = Counter(
    "dockercfg_operator_service_account_update_conflicts_total",
    "Total number of service account updates rejected with a conflict",
    ["namespace"],
    registry=_metrics_registry,
)

TOKEN_SECRET_DELETIONS_TOTAL = Counter(
    "dockercfg_operator_token_secret_deletions_total",
    "Total number of token secret cleanup attempts by result",
    ["namespace", "result"],
    registry=_metrics_registry,
)

CONTROLLER_RUNNING = Gauge(
    "dockercfg_operator_controller_running",
    "Whether the secret watch controller is running (1=running, 0=stopped)",
    [],
    registry=_metrics_registry,
)


def get_metrics_registry() -> CollectorRegistry:
    """Get the operator metrics registry."""
    return _metrics_registry


class MetricsCollector:
    """Collects and manages metrics for the dockercfg operator."""

    def __init__(self):
        self.registry = get_metrics_registry()

    def record_secret_deletion(
        self, namespace: str, result: str, duration: float
    ) -> None:
        """
        Record the handling of one dockercfg secret deletion event.

        Args:
            namespace: Namespace of the deleted secret
            result: Outcome of the service account repair
            duration: Time spent reconciling in seconds
        """
        SECRET_DELETIONS_TOTAL.labels(namespace=namespace, result=result).inc()
        RECONCILIATION_DURATION.labels(namespace=namespace).observe(duration)

    def record_service_account_update(self, namespace: str, result: str) -> None:
        SERVICE_ACCOUNT_UPDATES_TOTAL.labels(namespace=namespace, result=result).inc()

    def record_update_conflict(self, namespace: str) -> None:
        SERVICE_ACCOUNT_UPDATE_CONFLICTS_TOTAL.labels(namespace=namespace).inc()

    def record_token_deletion(self, namespace: str, result: str) -> None:
        TOKEN_SECRET_DELETIONS_TOTAL.labels(namespace=namespace, result=result).inc()

    def set_controller_running(self, running: bool) -> None:
        CONTROLLER_RUNNING.set(1 if running else 0)


class MetricsServer:
    """HTTP server for exposing Prometheus metrics and health probes."""

    def __init__(
        self,
        port: int = 8081,
        host: str = "0.0.0.0",
        readiness_check: Callable[[], bool] | None = None,
    ):
        """
        Initialize metrics server.

        Args:
            port: Port to serve metrics on
            host: Host interface to bind to
            readiness_check: Callable reporting whether the operator is ready
        """
        self.port = port
        self.host = host
        self.readiness_check = readiness_check
        self.app = Application()
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes for the metrics server."""
        self.app.router.add_get("/metrics", self._metrics_handler)
        self.app.router.add_get("/ready", self._ready_handler)
        self.app.router.add_get("/healthz", self._healthz_handler)

    async def _metrics_handler(self, request: Request) -> Response:
        """Handle /metrics endpoint for Prometheus scraping."""
        try:
            metrics_data = generate_latest(get_metrics_registry())
            return Response(
                body=metrics_data,
                headers={"Content-Type": CONTENT_TYPE_LATEST},
            )
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            return Response(
                text=f"Error generating metrics: {type(e).__name__}. Check logs for details.",
                status=500,
            )

    async def _ready_handler(self, request: Request) -> Response:
        """Handle /ready endpoint for readiness probes."""
        ready = self.readiness_check() if self.readiness_check else True
        payload = {
            "status": "ready" if ready else "not_ready",
            "timestamp": time.time(),
        }
        return json_response(payload, status=200 if ready else 503)

    async def _healthz_handler(self, request: Request) -> Response:
        """Handle /healthz endpoint (liveness: the server is up)."""
        return Response(text="ok")

    async def start(self) -> None:
        """Start the metrics server."""
        try:
            self.runner = AppRunner(self.app)
            await self.runner.setup()

            self.site = TCPSite(self.runner, self.host, self.port)
            await self.site.start()

            logger.info(f"Metrics server started on {self.host}:{self.port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")
            raise

    async def stop(self) -> None:
        """Stop the metrics server."""
        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("Metrics server stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


# Global metrics collector instance
metrics_collector = MetricsCollector()
