"""
Operator error hierarchy with categorization and user guidance.

This module defines the error types used throughout the dockercfg operator.
Kubernetes API failures are mapped onto these types at the store boundary so
the reconciler can branch on error class instead of HTTP status codes.
"""


class OperatorError(Exception):
    """
    Base error class for all operator-related exceptions.

    Provides categorization and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize operator error.

        Args:
            message: Human-readable error description
            category: Error category (api, configuration, reconciliation, ...)
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class ExternalServiceError(OperatorError):
    """Error communicating with external services."""

    def __init__(
        self,
        service: str,
        message: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        action = user_action or f"Check {service} connectivity and credentials"
        super().__init__(
            message=f"{service} error: {message}",
            category="external",
            user_action=action,
            cause=cause,
        )


class KubernetesAPIError(ExternalServiceError):
    """Error communicating with Kubernetes API."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        if reason:
            message = f"{message} (reason: {reason})"

        self.reason = reason
        self.status = status
        super().__init__(
            service="Kubernetes API",
            message=message,
            user_action="Check RBAC permissions and cluster connectivity",
            cause=cause,
        )


class ResourceNotFoundError(KubernetesAPIError):
    """The requested object does not exist (HTTP 404)."""

    def __init__(
        self, kind: str, namespace: str, name: str, cause: Exception | None = None
    ):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(
            message=f"{kind} {namespace}/{name} not found",
            reason="NotFound",
            status=404,
            cause=cause,
        )


class ResourceConflictError(KubernetesAPIError):
    """An optimistic-concurrency write was rejected (HTTP 409)."""

    def __init__(
        self, kind: str, namespace: str, name: str, cause: Exception | None = None
    ):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(
            message=f"{kind} {namespace}/{name} was modified concurrently",
            reason="Conflict",
            status=409,
            cause=cause,
        )


class ConfigurationError(OperatorError):
    """Error in operator configuration."""

    def __init__(
        self,
        message: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category="configuration",
            user_action=user_action or "Check operator configuration",
            cause=cause,
        )


class ReconciliationError(OperatorError):
    """Error raised when reconciliation cannot be completed."""

    def __init__(
        self,
        message: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category="reconciliation",
            user_action=user_action
            or "Inspect operator logs and resource specification for issues",
            cause=cause,
        )


class ConflictRetriesExhaustedError(ReconciliationError):
    """Every update attempt for a service account ended in a conflict."""

    def __init__(self, namespace: str, name: str, attempts: int):
        self.namespace = namespace
        self.name = name
        self.attempts = attempts
        super().__init__(
            message=(
                f"Service account {namespace}/{name} still conflicting "
                f"after {attempts} update attempts"
            ),
            user_action="Check for controllers repeatedly writing this service account",
        )
