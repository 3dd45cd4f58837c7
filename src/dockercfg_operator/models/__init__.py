"""
Data models for the dockercfg operator.

This package defines the view of a deleted dockercfg secret consumed by the
reconciler and the result types it reports.
"""

from .results import ReconcileResult, ReferenceOutcome, TokenOutcome
from .secret import DockercfgSecret

__all__ = [
    "DockercfgSecret",
    "ReconcileResult",
    "ReferenceOutcome",
    "TokenOutcome",
]
