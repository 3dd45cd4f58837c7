"""
Result types reported by the dockercfg secret reconciler.

Every processed deletion event yields a ReconcileResult describing what
happened to the service account references and to the token secret.
"""

from dataclasses import dataclass
from enum import StrEnum


class ReferenceOutcome(StrEnum):
    """What happened to the owning service account's reference lists."""

    NOT_MANAGED = "not_managed"
    NO_REFERENCE = "no_reference"
    SERVICE_ACCOUNT_MISSING = "service_account_missing"
    UID_MISMATCH = "uid_mismatch"
    UNCHANGED = "unchanged"
    REFERENCES_REMOVED = "references_removed"
    DRY_RUN = "dry_run"
    RETRIES_EXHAUSTED = "retries_exhausted"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_failure(self) -> bool:
        return self in (ReferenceOutcome.RETRIES_EXHAUSTED, ReferenceOutcome.FAILED)


class TokenOutcome(StrEnum):
    """What happened to the token secret backing the dockercfg secret."""

    SKIPPED = "skipped"
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    DRY_RUN = "dry_run"
    FAILED = "failed"


@dataclass
class ReconcileResult:
    """Outcome of reconciling a single dockercfg secret deletion."""

    reference_outcome: ReferenceOutcome
    token_outcome: TokenOutcome = TokenOutcome.SKIPPED
    attempts: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """True when nothing was reported as a failure."""
        return (
            not self.reference_outcome.is_failure
            and self.token_outcome is not TokenOutcome.FAILED
            and self.reference_outcome is not ReferenceOutcome.CANCELLED
        )
