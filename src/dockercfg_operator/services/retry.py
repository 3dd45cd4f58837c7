"""
Retry policy for service account updates rejected with a conflict.

Conflicts come from several controllers writing the same service account at
once and clear up quickly, so attempts are spaced by a flat random jitter
rather than an exponential backoff.
"""

import random
from dataclasses import dataclass

from ..constants import DEFAULT_UPDATE_JITTER_MAX_SECONDS, DEFAULT_UPDATE_MAX_ATTEMPTS
from ..errors import ConfigurationError


@dataclass(frozen=True)
class ConflictRetryPolicy:
    """
    Bounded retry with uniform jitter.

    Attributes:
        max_attempts: Total number of update attempts, including the first
        jitter_max_seconds: Upper bound of the sleep between two attempts
    """

    max_attempts: int = DEFAULT_UPDATE_MAX_ATTEMPTS
    jitter_max_seconds: float = DEFAULT_UPDATE_JITTER_MAX_SECONDS

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError(
                f"max_attempts must be at least 1, got {self.max_attempts}",
                user_action="Set SERVICE_ACCOUNT_UPDATE_MAX_ATTEMPTS to 1 or more",
            )
        if self.jitter_max_seconds < 0:
            raise ConfigurationError(
                f"jitter_max_seconds must not be negative, got {self.jitter_max_seconds}",
                user_action="Set SERVICE_ACCOUNT_UPDATE_JITTER_MAX_SECONDS to 0 or more",
            )

    def next_delay(self) -> float:
        """Return the sleep before the next attempt, uniform over [0, jitter]."""
        return random.uniform(0.0, self.jitter_max_seconds)
