"""
Error handling module for the dockercfg operator.

This module provides the error hierarchy used to classify Kubernetes API
failures into not-found, conflict and other errors, which the reconciler
treats differently.
"""

from .operator_errors import (
    ConfigurationError,
    ConflictRetriesExhaustedError,
    ExternalServiceError,
    KubernetesAPIError,
    OperatorError,
    ReconciliationError,
    ResourceConflictError,
    ResourceNotFoundError,
)

__all__ = [
    "OperatorError",
    "ExternalServiceError",
    "KubernetesAPIError",
    "ResourceNotFoundError",
    "ResourceConflictError",
    "ConfigurationError",
    "ReconciliationError",
    "ConflictRetriesExhaustedError",
]
