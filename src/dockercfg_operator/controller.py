"""
Controller supervising the dockercfg secret watch.

The controller owns the lifecycle of the kopf watch over dockercfg secrets
and routes each deletion event to the reconciler. ``start()`` and ``stop()``
are both idempotent: starting a running controller and stopping a stopped
one are no-ops.
"""

import asyncio
import contextlib
import logging
from enum import StrEnum

import kopf

from .constants import (
    DEFAULT_RESYNC_SECONDS,
    DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    OPERATOR_NAME,
)
from .errors import ConfigurationError
from .handlers import register_secret_handlers
from .observability.metrics import metrics_collector
from .services import ConflictRetryPolicy, DockercfgSecretReconciler
from .utils.kubernetes import KubernetesResourceStore, ResourceStore

logger = logging.getLogger(__name__)


class ControllerState(StrEnum):
    STOPPED = "Stopped"
    RUNNING = "Running"


class DockercfgDeletedController:
    """
    Watches for deleted service account dockercfg secrets.

    Each deletion removes the secret's references from the owning service
    account and deletes the token secret that backed it.
    """

    def __init__(
        self,
        store: ResourceStore | None = None,
        retry_policy: ConflictRetryPolicy | None = None,
        resync_seconds: float = DEFAULT_RESYNC_SECONDS,
        namespaces: list[str] | None = None,
        dry_run: bool = False,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    ):
        """
        Initialize the controller.

        Args:
            store: Access to service accounts and secrets
            retry_policy: Conflict retry policy for service account updates
            resync_seconds: Interval after which the watch re-lists secrets
                (0 = never force a re-list)
            namespaces: Namespaces to watch, or None for all namespaces
            dry_run: Log intended changes without writing anything
            shutdown_timeout: Time allowed for the watch to exit on stop

        Raises:
            ConfigurationError: If an interval is negative
        """
        if resync_seconds < 0:
            raise ConfigurationError(
                f"resync_seconds must not be negative, got {resync_seconds}",
                user_action="Set RESYNC_SECONDS to 0 or more",
            )
        if shutdown_timeout < 0:
            raise ConfigurationError(
                f"shutdown_timeout must not be negative, got {shutdown_timeout}",
                user_action="Set SHUTDOWN_TIMEOUT_SECONDS to 0 or more",
            )

        self.store = store or KubernetesResourceStore()
        self.retry_policy = retry_policy or ConflictRetryPolicy()
        self.resync_seconds = resync_seconds
        self.namespaces = namespaces or []
        self.dry_run = dry_run
        self.shutdown_timeout = shutdown_timeout

        self.reconciler: DockercfgSecretReconciler | None = None
        self._stop_flag: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def state(self) -> ControllerState:
        return ControllerState.RUNNING if self.running else ControllerState.STOPPED

    def build_settings(self) -> kopf.OperatorSettings:
        """Build the kopf settings for the secret watch."""
        settings = kopf.OperatorSettings()
        # Log lines are not mirrored as Events on the deleted secrets
        settings.posting.enabled = False
        settings.watching.reconnect_backoff = 1.0
        if self.resync_seconds:
            # The watch ends after this long and kopf re-lists before resuming
            settings.watching.server_timeout = self.resync_seconds
        settings.queueing.exit_timeout = self.shutdown_timeout
        return settings

    async def start(self) -> None:
        """Start watching secrets in the background and return immediately."""
        if self.running:
            logger.debug("Controller already running")
            return

        self._stop_flag = asyncio.Event()
        self.reconciler = DockercfgSecretReconciler(
            self.store,
            retry_policy=self.retry_policy,
            dry_run=self.dry_run,
            stop_event=self._stop_flag,
        )

        registry = kopf.OperatorRegistry()
        register_secret_handlers(registry, self.reconciler.reconcile)

        self._task = asyncio.create_task(
            kopf.operator(
                registry=registry,
                settings=self.build_settings(),
                standalone=True,
                clusterwide=not self.namespaces,
                namespaces=self.namespaces,
                stop_flag=self._stop_flag,
            ),
            name=f"{OPERATOR_NAME}-watch",
        )
        self._task.add_done_callback(self._on_watch_done)
        metrics_collector.set_controller_running(True)

        if self.namespaces:
            logger.info(
                f"Watching dockercfg secrets in namespaces: {', '.join(self.namespaces)}"
            )
        else:
            logger.info("Watching dockercfg secrets in all namespaces")
        if self.dry_run:
            logger.info("Running in DRY-RUN mode - no changes will be applied")

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop the watch and wait for it to exit.

        In-flight conflict retries observe the stop flag and abort. If the
        watch does not exit within the timeout it is cancelled.

        Args:
            timeout: Seconds to wait before cancelling (default: shutdown_timeout)
        """
        if self._task is None:
            return

        task, self._task = self._task, None
        if self._stop_flag is not None:
            self._stop_flag.set()

        if timeout is None:
            timeout = self.shutdown_timeout

        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            logger.warning(
                f"Secret watch did not exit within {timeout}s, cancelling it"
            )
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        metrics_collector.set_controller_running(False)
        logger.info("Controller stopped")

    async def wait(self) -> None:
        """Wait until the watch exits, either stopped or failed."""
        if self._task is not None:
            await asyncio.wait({self._task})

    def _on_watch_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Secret watch terminated with an error", exc_info=error)
            metrics_collector.set_controller_running(False)
