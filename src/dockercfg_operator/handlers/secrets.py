"""
Secret watch handlers - deletion events for service account dockercfg secrets.

The watch is narrowed to secrets of type ``kubernetes.io/dockercfg``. Only
DELETED events are consumed; additions, modifications and the initial
listing are ignored.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import kopf

from ..constants import EVENT_DELETED, SECRET_TYPE_DOCKERCFG, SECRET_TYPE_FIELD
from ..models import DockercfgSecret
from ..observability.logging import generate_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

SecretDeletedCallback = Callable[[DockercfgSecret], Awaitable[Any]]


def register_secret_handlers(
    registry: kopf.OperatorRegistry, on_deleted: SecretDeletedCallback
) -> None:
    """
    Register the login activity and the secret event handler on a registry.

    Args:
        registry: Registry passed to ``kopf.operator``
        on_deleted: Coroutine called with each deleted dockercfg secret
    """

    @kopf.on.login(registry=registry)
    def login(**kwargs):
        return kopf.login_via_client(**kwargs)

    # kopf applies the field filter client-side: the watch streams every
    # Secret in the watched namespaces and non-dockercfg ones are dropped here.
    @kopf.on.event(
        "v1",
        "secrets",
        field=SECRET_TYPE_FIELD,
        value=SECRET_TYPE_DOCKERCFG,
        registry=registry,
    )
    async def dockercfg_secret_event(event: dict[str, Any], **_) -> None:
        await handle_secret_event(event, on_deleted)


async def handle_secret_event(
    event: dict[str, Any], on_deleted: SecretDeletedCallback
) -> None:
    """
    Route a raw watch event to the deletion callback.

    Failures of the callback are logged and never propagate, so one bad
    event cannot disturb processing of the others.

    Args:
        event: Raw watch event with ``type`` and ``object`` keys
        on_deleted: Coroutine called with the deleted secret
    """
    if event.get("type") != EVENT_DELETED:
        return

    body = event.get("object") or {}
    secret = DockercfgSecret.from_body(body)
    set_correlation_id(generate_correlation_id())

    try:
        await on_deleted(secret)
    except Exception:
        logger.exception(
            f"Unhandled error processing deletion of secret "
            f"{secret.namespace}/{secret.name}",
            extra={"resource_name": secret.name, "namespace": secret.namespace},
        )
