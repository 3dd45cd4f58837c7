"""Shared pytest fixtures for dockercfg operator unit tests."""

import pytest

from dockercfg_operator.services import ConflictRetryPolicy
from tests.fixtures.kubernetes_resources import FakeResourceStore


@pytest.fixture
def store():
    """Store holding service account sa1 (UID u1) and token secret tok1."""
    fake = FakeResourceStore()
    fake.add_service_account(
        name="sa1",
        namespace="default",
        uid="u1",
        secrets=["d1", "d2"],
        pull_secrets=["d1"],
    )
    fake.add_secret("default", "tok1")
    return fake


@pytest.fixture
def fast_retry_policy():
    """Retry policy with the default ceiling and no sleep between attempts."""
    return ConflictRetryPolicy(max_attempts=10, jitter_max_seconds=0.0)
