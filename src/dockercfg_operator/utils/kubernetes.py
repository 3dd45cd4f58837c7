"""
Kubernetes utilities for the dockercfg operator.

This module provides the Kubernetes client configuration and the resource
store used by the reconciler. The store wraps the blocking ``CoreV1Api`` in
``asyncio.to_thread`` and translates ``ApiException`` responses into the
operator error hierarchy:

- 404 -> ResourceNotFoundError
- 409 -> ResourceConflictError
- anything else -> KubernetesAPIError

Transport failures that never reach the API server, such as a refused
connection, surface as KubernetesAPIError as well.
"""

import asyncio
import logging
from typing import Protocol

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from ..errors import KubernetesAPIError, ResourceConflictError, ResourceNotFoundError

logger = logging.getLogger(__name__)

KIND_SERVICE_ACCOUNT = "ServiceAccount"
KIND_SECRET = "Secret"

# Raised by the client when the request does not complete
TRANSPORT_ERRORS = (urllib3.exceptions.HTTPError, OSError)


class ResourceStore(Protocol):
    """Operations the reconciler needs from the cluster."""

    async def get_service_account(
        self, namespace: str, name: str
    ) -> client.V1ServiceAccount: ...

    async def replace_service_account(
        self, service_account: client.V1ServiceAccount
    ) -> client.V1ServiceAccount: ...

    async def delete_secret(self, namespace: str, name: str) -> None: ...


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    Tries in-cluster configuration first (when running in a pod) and falls
    back to the local kubeconfig for development.

    Returns:
        Configured Kubernetes API client
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


def translate_api_exception(
    error: ApiException, kind: str, namespace: str, name: str
) -> KubernetesAPIError:
    """
    Map an ApiException onto the operator error hierarchy.

    Args:
        error: Exception raised by the Kubernetes client
        kind: Kind of the object the call targeted
        namespace: Namespace of the object
        name: Name of the object

    Returns:
        The operator error to raise in its place
    """
    if error.status == 404:
        return ResourceNotFoundError(kind, namespace, name, cause=error)
    if error.status == 409:
        return ResourceConflictError(kind, namespace, name, cause=error)
    return KubernetesAPIError(
        f"{kind} {namespace}/{name} request failed with HTTP {error.status}",
        reason=error.reason,
        status=error.status,
        cause=error,
    )


def translate_transport_error(
    error: Exception, kind: str, namespace: str, name: str
) -> KubernetesAPIError:
    """Wrap a connection-level failure that produced no API response."""
    return KubernetesAPIError(
        f"{kind} {namespace}/{name} request failed: {type(error).__name__}: {error}",
        reason="ConnectionError",
        cause=error,
    )


class KubernetesResourceStore:
    """
    Access to service accounts and secrets for the reconciler.

    Updates go through ``replace_namespaced_service_account``, which carries
    the ``resourceVersion`` of the object that was read; the API server
    rejects the write with 409 if the object changed in the meantime.
    """

    def __init__(self, api_client: client.ApiClient | None = None):
        self._api_client = api_client
        self._core_api: client.CoreV1Api | None = None

    @property
    def core_api(self) -> client.CoreV1Api:
        """Get or create the CoreV1Api, loading configuration on first use."""
        if self._core_api is None:
            if self._api_client is None:
                self._api_client = get_kubernetes_client()
            self._core_api = client.CoreV1Api(self._api_client)
        return self._core_api

    async def get_service_account(
        self, namespace: str, name: str
    ) -> client.V1ServiceAccount:
        """
        Read a service account.

        Raises:
            ResourceNotFoundError: If the service account does not exist
            KubernetesAPIError: On any other API or connection failure
        """
        try:
            return await asyncio.to_thread(
                self.core_api.read_namespaced_service_account, name, namespace
            )
        except ApiException as e:
            raise translate_api_exception(
                e, KIND_SERVICE_ACCOUNT, namespace, name
            ) from e
        except TRANSPORT_ERRORS as e:
            raise translate_transport_error(
                e, KIND_SERVICE_ACCOUNT, namespace, name
            ) from e

    async def replace_service_account(
        self, service_account: client.V1ServiceAccount
    ) -> client.V1ServiceAccount:
        """
        Write back a service account read earlier from the store.

        Raises:
            ResourceConflictError: If the stored resourceVersion moved on
            ResourceNotFoundError: If the service account was deleted
            KubernetesAPIError: On any other API or connection failure
        """
        name = service_account.metadata.name
        namespace = service_account.metadata.namespace
        try:
            return await asyncio.to_thread(
                self.core_api.replace_namespaced_service_account,
                name,
                namespace,
                service_account,
            )
        except ApiException as e:
            raise translate_api_exception(
                e, KIND_SERVICE_ACCOUNT, namespace, name
            ) from e
        except TRANSPORT_ERRORS as e:
            raise translate_transport_error(
                e, KIND_SERVICE_ACCOUNT, namespace, name
            ) from e

    async def delete_secret(self, namespace: str, name: str) -> None:
        """
        Delete a secret.

        Raises:
            ResourceNotFoundError: If the secret does not exist
            KubernetesAPIError: On any other API or connection failure
        """
        try:
            await asyncio.to_thread(
                self.core_api.delete_namespaced_secret, name, namespace
            )
        except ApiException as e:
            raise translate_api_exception(e, KIND_SECRET, namespace, name) from e
        except TRANSPORT_ERRORS as e:
            raise translate_transport_error(e, KIND_SECRET, namespace, name) from e
