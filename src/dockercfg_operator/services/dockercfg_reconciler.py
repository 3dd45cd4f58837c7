"""
Reconciler for deleted service account dockercfg secrets.

For every deleted dockercfg secret the reconciler:
1. Locates the owning service account through the back-reference annotations
2. Verifies the service account UID matches the one recorded on the secret
3. Removes the secret from ``secrets`` and ``imagePullSecrets``, retrying the
   read-modify-write cycle when the update conflicts
4. Deletes the token secret that backed the dockercfg secret

References are repaired before the token is deleted: a crash in between
leaves an orphaned token secret, never a dangling reference.
"""

import asyncio
import logging
import time

from kubernetes import client

from ..constants import RESOURCE_DOCKERCFG_SECRET, RESOURCE_SERVICE_ACCOUNT
from ..errors import (
    ConflictRetriesExhaustedError,
    OperatorError,
    ResourceConflictError,
    ResourceNotFoundError,
)
from ..models import DockercfgSecret, ReconcileResult, ReferenceOutcome, TokenOutcome
from ..observability.logging import OperatorLogger
from ..observability.metrics import metrics_collector
from ..utils.kubernetes import ResourceStore
from .retry import ConflictRetryPolicy
from .token_cleanup import TokenSecretDeleter

logger = logging.getLogger(__name__)


def remove_secret_references(
    service_account: client.V1ServiceAccount, secret_name: str
) -> bool:
    """
    Drop every reference to ``secret_name`` from a service account in place.

    Only matching entries are removed; all other references keep their
    order.

    Args:
        service_account: Service account as read from the API
        secret_name: Name of the deleted secret

    Returns:
        True if either reference list changed
    """
    changed = False

    if service_account.secrets:
        kept = [ref for ref in service_account.secrets if ref.name != secret_name]
        if len(kept) != len(service_account.secrets):
            service_account.secrets = kept
            changed = True

    if service_account.image_pull_secrets:
        kept_pull = [
            ref for ref in service_account.image_pull_secrets if ref.name != secret_name
        ]
        if len(kept_pull) != len(service_account.image_pull_secrets):
            service_account.image_pull_secrets = kept_pull
            changed = True

    return changed


class DockercfgSecretReconciler:
    """
    Repairs service accounts and removes token secrets after a dockercfg
    secret is deleted.

    Failures are contained: ``reconcile`` reports them in the returned
    ReconcileResult and in the logs instead of raising.
    """

    def __init__(
        self,
        store: ResourceStore,
        token_deleter: TokenSecretDeleter | None = None,
        retry_policy: ConflictRetryPolicy | None = None,
        dry_run: bool = False,
        stop_event: asyncio.Event | None = None,
    ):
        """
        Initialize the reconciler.

        Args:
            store: Access to service accounts and secrets
            token_deleter: Cascade deleter for token secrets
            retry_policy: Conflict retry policy for service account updates
            dry_run: Log intended changes without writing anything
            stop_event: Set when the controller is shutting down; aborts
                the wait between conflicting attempts
        """
        self.store = store
        self.token_deleter = token_deleter or TokenSecretDeleter(store)
        self.retry_policy = retry_policy or ConflictRetryPolicy()
        self.dry_run = dry_run
        self.stop_event = stop_event
        self.logger = OperatorLogger(self.__class__.__name__)

    async def reconcile(self, secret: DockercfgSecret) -> ReconcileResult:
        """
        Handle the deletion of a dockercfg secret.

        Args:
            secret: Snapshot of the deleted secret

        Returns:
            What happened to the service account and the token secret
        """
        if not secret.is_managed:
            logger.debug(
                f"Secret {secret.namespace}/{secret.name} has no token secret "
                f"annotation, ignoring"
            )
            return ReconcileResult(reference_outcome=ReferenceOutcome.NOT_MANAGED)

        start_time = time.monotonic()
        self.logger.log_reconciliation_start(
            resource_type=RESOURCE_DOCKERCFG_SECRET,
            resource_name=secret.name,
            namespace=secret.namespace,
        )

        result = await self._remove_references(secret)

        if result.reference_outcome is ReferenceOutcome.CANCELLED:
            # The token is kept so a re-delivered event finishes the work
            logger.warning(
                f"Shutdown requested while repairing service account "
                f"{secret.namespace}/{secret.service_account_name}, "
                f"leaving token secret {secret.token_secret_name} in place"
            )
        else:
            result.token_outcome = await self._cleanup_token(secret)

        duration = time.monotonic() - start_time
        metrics_collector.record_secret_deletion(
            secret.namespace, result.reference_outcome.value, duration
        )
        if result.succeeded:
            self.logger.log_reconciliation_success(
                resource_type=RESOURCE_DOCKERCFG_SECRET,
                resource_name=secret.name,
                namespace=secret.namespace,
                duration=duration,
                outcome=result.reference_outcome.value,
            )
        return result

    async def _remove_references(self, secret: DockercfgSecret) -> ReconcileResult:
        """Run the fetch/diff/update cycle until it succeeds or gives up."""
        if not secret.has_service_account_reference:
            logger.debug(
                f"Secret {secret.namespace}/{secret.name} does not reference "
                f"a service account"
            )
            return ReconcileResult(reference_outcome=ReferenceOutcome.NO_REFERENCE)

        max_attempts = self.retry_policy.max_attempts
        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = await self._try_remove_references(secret)
            except ResourceConflictError:
                metrics_collector.record_update_conflict(secret.namespace)
                if attempt < max_attempts:
                    logger.debug(
                        f"Conflict updating service account "
                        f"{secret.namespace}/{secret.service_account_name}, retrying",
                        extra={
                            "service_account": secret.service_account_name,
                            "attempt": attempt,
                        },
                    )
                    if not await self._pause(self.retry_policy.next_delay()):
                        return ReconcileResult(
                            reference_outcome=ReferenceOutcome.CANCELLED,
                            attempts=attempt,
                        )
                    continue

                error = ConflictRetriesExhaustedError(
                    secret.namespace, secret.service_account_name, attempt
                )
                metrics_collector.record_service_account_update(
                    secret.namespace, "conflict"
                )
                self.logger.log_reconciliation_error(
                    resource_type=RESOURCE_SERVICE_ACCOUNT,
                    resource_name=secret.service_account_name,
                    namespace=secret.namespace,
                    error=error,
                )
                return ReconcileResult(
                    reference_outcome=ReferenceOutcome.RETRIES_EXHAUSTED,
                    attempts=attempt,
                    error=str(error),
                )
            except OperatorError as e:
                metrics_collector.record_service_account_update(
                    secret.namespace, "error"
                )
                self.logger.log_reconciliation_error(
                    resource_type=RESOURCE_SERVICE_ACCOUNT,
                    resource_name=secret.service_account_name,
                    namespace=secret.namespace,
                    error=e,
                )
                return ReconcileResult(
                    reference_outcome=ReferenceOutcome.FAILED,
                    attempts=attempt,
                    error=str(e),
                )

            return ReconcileResult(reference_outcome=outcome, attempts=attempt)

    async def _try_remove_references(
        self, secret: DockercfgSecret
    ) -> ReferenceOutcome:
        """
        One read-modify-write pass against a freshly read service account.

        Raises:
            ResourceConflictError: If the update lost an optimistic-concurrency race
            OperatorError: On any other store failure
        """
        namespace = secret.namespace
        sa_name = secret.service_account_name

        try:
            service_account = await self.store.get_service_account(namespace, sa_name)
        except ResourceNotFoundError:
            logger.info(
                f"Service account {namespace}/{sa_name} no longer exists, "
                f"no references to repair",
                extra={"namespace": namespace, "service_account": sa_name},
            )
            return ReferenceOutcome.SERVICE_ACCOUNT_MISSING

        if service_account.metadata.uid != secret.service_account_uid:
            logger.info(
                f"Service account {namespace}/{sa_name} has UID "
                f"{service_account.metadata.uid}, secret {secret.name} was issued "
                f"for UID {secret.service_account_uid}; leaving it untouched",
                extra={"namespace": namespace, "service_account": sa_name},
            )
            return ReferenceOutcome.UID_MISMATCH

        if not remove_secret_references(service_account, secret.name):
            logger.debug(
                f"Service account {namespace}/{sa_name} does not reference "
                f"secret {secret.name}"
            )
            return ReferenceOutcome.UNCHANGED

        if self.dry_run:
            logger.info(
                f"[dry-run] Would remove references to secret {secret.name} "
                f"from service account {namespace}/{sa_name}",
                extra={"namespace": namespace, "service_account": sa_name},
            )
            return ReferenceOutcome.DRY_RUN

        try:
            await self.store.replace_service_account(service_account)
        except ResourceNotFoundError:
            logger.info(
                f"Service account {namespace}/{sa_name} was deleted during update",
                extra={"namespace": namespace, "service_account": sa_name},
            )
            return ReferenceOutcome.SERVICE_ACCOUNT_MISSING

        metrics_collector.record_service_account_update(namespace, "updated")
        logger.info(
            f"Removed references to secret {secret.name} from service account "
            f"{namespace}/{sa_name}",
            extra={"namespace": namespace, "service_account": sa_name},
        )
        return ReferenceOutcome.REFERENCES_REMOVED

    async def _cleanup_token(self, secret: DockercfgSecret) -> TokenOutcome:
        token_name = secret.token_secret_name
        if not token_name:
            logger.warning(
                f"Secret {secret.namespace}/{secret.name} has an empty token "
                f"secret annotation, nothing to delete"
            )
            return TokenOutcome.SKIPPED

        if self.dry_run:
            logger.info(
                f"[dry-run] Would delete token secret {secret.namespace}/{token_name}",
                extra={"namespace": secret.namespace, "token_secret": token_name},
            )
            return TokenOutcome.DRY_RUN

        return await self.token_deleter.delete(secret.namespace, token_name)

    async def _pause(self, delay: float) -> bool:
        """
        Sleep between two attempts.

        Returns:
            False if shutdown was requested before or during the sleep
        """
        if self.stop_event is None:
            await asyncio.sleep(delay)
            return True

        if self.stop_event.is_set():
            return False

        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=delay)
        except TimeoutError:
            return True
        return False
