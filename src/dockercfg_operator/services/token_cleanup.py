"""Deletion of the token secret that backed a deleted dockercfg secret."""

import logging

from ..errors import OperatorError, ResourceNotFoundError
from ..models import TokenOutcome
from ..observability.metrics import metrics_collector
from ..utils.kubernetes import ResourceStore

logger = logging.getLogger(__name__)


class TokenSecretDeleter:
    """
    Best-effort cascade delete of token secrets.

    A token secret that is already gone counts as deleted. Other failures
    are logged and reported in the outcome, never raised.
    """

    def __init__(self, store: ResourceStore):
        self.store = store

    async def delete(self, namespace: str, name: str) -> TokenOutcome:
        try:
            await self.store.delete_secret(namespace, name)
        except ResourceNotFoundError:
            logger.debug(
                f"Token secret {namespace}/{name} already absent",
                extra={"namespace": namespace, "token_secret": name},
            )
            outcome = TokenOutcome.ALREADY_ABSENT
        except OperatorError as e:
            logger.error(
                f"Failed to delete token secret {namespace}/{name}: {e}",
                extra={
                    "namespace": namespace,
                    "token_secret": name,
                    "error_type": type(e).__name__,
                },
            )
            outcome = TokenOutcome.FAILED
        else:
            logger.info(
                f"Deleted token secret {namespace}/{name}",
                extra={"namespace": namespace, "token_secret": name},
            )
            outcome = TokenOutcome.DELETED

        metrics_collector.record_token_deletion(namespace, outcome.value)
        return outcome
