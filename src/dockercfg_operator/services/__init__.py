"""
Service layer for the dockercfg operator.

This module contains the reconciliation logic run for each deleted dockercfg
secret, the conflict retry policy and the token secret cleanup.
"""

from .dockercfg_reconciler import DockercfgSecretReconciler, remove_secret_references
from .retry import ConflictRetryPolicy
from .token_cleanup import TokenSecretDeleter

__all__ = [
    "ConflictRetryPolicy",
    "DockercfgSecretReconciler",
    "TokenSecretDeleter",
    "remove_secret_references",
]
