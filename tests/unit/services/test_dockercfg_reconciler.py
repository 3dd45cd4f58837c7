"""
Unit tests for DockercfgSecretReconciler.

The reconciler runs against an in-memory store that enforces
resourceVersion checks on replace, so conflict handling is exercised the
same way it happens against the API server.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from urllib3.exceptions import MaxRetryError

from dockercfg_operator.models import ReferenceOutcome, TokenOutcome
from dockercfg_operator.observability.metrics import get_metrics_registry
from dockercfg_operator.services import (
    ConflictRetryPolicy,
    DockercfgSecretReconciler,
    remove_secret_references,
)
from dockercfg_operator.utils.kubernetes import KubernetesResourceStore
from tests.fixtures.kubernetes_resources import (
    FakeResourceStore,
    api_failure,
    dockercfg_secret,
    pull_secret_names,
    secret_names,
    service_account,
)


@pytest.fixture
def reconciler(store, fast_retry_policy):
    return DockercfgSecretReconciler(store, retry_policy=fast_retry_policy)


class TestRemoveSecretReferences:
    """Tests for the in-place reference filter."""

    def test_removes_from_both_lists(self):
        sa = service_account(secrets=["d1", "d2"], pull_secrets=["d1"])

        assert remove_secret_references(sa, "d1") is True
        assert secret_names(sa) == ["d2"]
        assert pull_secret_names(sa) == []

    def test_preserves_order_of_other_references(self):
        sa = service_account(
            secrets=["a", "d1", "b", "d1", "c"], pull_secrets=["x", "d1", "y"]
        )

        remove_secret_references(sa, "d1")

        assert secret_names(sa) == ["a", "b", "c"]
        assert pull_secret_names(sa) == ["x", "y"]

    def test_no_match_reports_unchanged(self):
        sa = service_account(secrets=["d2"], pull_secrets=["d3"])

        assert remove_secret_references(sa, "d1") is False
        assert secret_names(sa) == ["d2"]
        assert pull_secret_names(sa) == ["d3"]

    def test_missing_lists(self):
        sa = service_account(secrets=None, pull_secrets=None)

        assert remove_secret_references(sa, "d1") is False
        assert sa.secrets is None
        assert sa.image_pull_secrets is None

    def test_only_pull_secret_matches(self):
        sa = service_account(secrets=["d2"], pull_secrets=["d1"])

        assert remove_secret_references(sa, "d1") is True
        assert secret_names(sa) == ["d2"]
        assert pull_secret_names(sa) == []


class TestReconcileScenarios:
    """End-to-end behavior for single deletion events."""

    @pytest.mark.asyncio
    async def test_removes_references_and_deletes_token(self, store, reconciler):
        """sa1 references d1 twice; deleting d1 leaves only d2 and removes tok1."""
        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.REFERENCES_REMOVED
        assert result.token_outcome is TokenOutcome.DELETED
        assert result.attempts == 1
        assert result.succeeded

        sa = store.stored("default", "sa1")
        assert secret_names(sa) == ["d2"]
        assert pull_secret_names(sa) == []
        assert ("default", "tok1") not in store.secrets

    @pytest.mark.asyncio
    async def test_missing_service_account_still_deletes_token(self, fast_retry_policy):
        store = FakeResourceStore()
        store.add_secret("default", "tok1")
        reconciler = DockercfgSecretReconciler(store, retry_policy=fast_retry_policy)

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.SERVICE_ACCOUNT_MISSING
        assert result.token_outcome is TokenOutcome.DELETED
        assert result.succeeded
        assert store.replace_calls == 0
        assert ("default", "tok1") not in store.secrets

    @pytest.mark.asyncio
    async def test_unmanaged_secret_is_ignored(self, store, reconciler):
        """Secrets without the token annotation are not touched at all."""
        result = await reconciler.reconcile(dockercfg_secret(token_secret=None))

        assert result.reference_outcome is ReferenceOutcome.NOT_MANAGED
        assert result.token_outcome is TokenOutcome.SKIPPED
        assert store.get_calls == 0
        assert store.deleted_secrets == []
        assert secret_names(store.stored("default", "sa1")) == ["d1", "d2"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "annotations",
        [
            {"service_account": None},
            {"service_account_uid": None},
            {"service_account": ""},
            {"service_account_uid": ""},
        ],
    )
    async def test_missing_back_reference_skips_to_token_cleanup(
        self, store, reconciler, annotations
    ):
        result = await reconciler.reconcile(dockercfg_secret(**annotations))

        assert result.reference_outcome is ReferenceOutcome.NO_REFERENCE
        assert result.token_outcome is TokenOutcome.DELETED
        assert store.get_calls == 0
        assert secret_names(store.stored("default", "sa1")) == ["d1", "d2"]

    @pytest.mark.asyncio
    async def test_unreferenced_secret_issues_no_update(self, store, reconciler):
        result = await reconciler.reconcile(dockercfg_secret(name="d9"))

        assert result.reference_outcome is ReferenceOutcome.UNCHANGED
        assert store.replace_calls == 0
        assert result.token_outcome is TokenOutcome.DELETED

    @pytest.mark.asyncio
    async def test_empty_token_annotation_skips_cleanup(self, store, reconciler):
        result = await reconciler.reconcile(dockercfg_secret(token_secret=""))

        assert result.reference_outcome is ReferenceOutcome.REFERENCES_REMOVED
        assert result.token_outcome is TokenOutcome.SKIPPED
        assert store.deleted_secrets == []


class TestIdempotence:
    """Re-delivery of the same event reaches the same end state."""

    @pytest.mark.asyncio
    async def test_second_delivery_is_a_no_op(self, store, reconciler):
        secret = dockercfg_secret()

        first = await reconciler.reconcile(secret)
        after_first = (
            secret_names(store.stored("default", "sa1")),
            pull_secret_names(store.stored("default", "sa1")),
        )
        second = await reconciler.reconcile(secret)

        assert first.reference_outcome is ReferenceOutcome.REFERENCES_REMOVED
        assert second.reference_outcome is ReferenceOutcome.UNCHANGED
        assert second.token_outcome is TokenOutcome.ALREADY_ABSENT
        assert second.succeeded
        assert store.replace_calls == 1
        assert (
            secret_names(store.stored("default", "sa1")),
            pull_secret_names(store.stored("default", "sa1")),
        ) == after_first

    @pytest.mark.asyncio
    async def test_absent_token_is_not_an_error(self, store, reconciler):
        store.secrets.clear()

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.token_outcome is TokenOutcome.ALREADY_ABSENT
        assert result.error is None
        assert result.succeeded


class TestUIDGuard:
    """A recreated service account with the same name is never modified."""

    @pytest.mark.asyncio
    async def test_recreated_service_account_keeps_its_references(
        self, fast_retry_policy
    ):
        store = FakeResourceStore()
        store.add_service_account(
            name="sa1", uid="u2", secrets=["d1", "d2"], pull_secrets=["d1"]
        )
        store.add_secret("default", "tok1")
        reconciler = DockercfgSecretReconciler(store, retry_policy=fast_retry_policy)

        result = await reconciler.reconcile(dockercfg_secret(service_account_uid="u1"))

        assert result.reference_outcome is ReferenceOutcome.UID_MISMATCH
        assert result.succeeded
        assert store.replace_calls == 0
        sa = store.stored("default", "sa1")
        assert secret_names(sa) == ["d1", "d2"]
        assert pull_secret_names(sa) == ["d1"]
        # The token belonged to the deleted secret regardless of the SA
        assert result.token_outcome is TokenOutcome.DELETED


class TestConflictRetry:
    """Optimistic-concurrency conflicts are retried with a fresh read."""

    @pytest.mark.asyncio
    async def test_retries_until_update_succeeds(self, store, reconciler):
        store.forced_conflicts = 2

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.REFERENCES_REMOVED
        assert result.attempts == 3
        assert store.get_calls == 3
        assert secret_names(store.stored("default", "sa1")) == ["d2"]

    @pytest.mark.asyncio
    async def test_concurrently_added_reference_survives(self, store, reconciler):
        """A reference added by another writer between read and write is kept."""

        def add_reference_once(fake: FakeResourceStore) -> None:
            if fake.replace_calls == 1:
                fake.add_reference("default", "sa1", "d3")

        store.before_replace = add_reference_once

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.REFERENCES_REMOVED
        assert result.attempts == 2
        sa = store.stored("default", "sa1")
        assert secret_names(sa) == ["d2", "d3"]
        assert pull_secret_names(sa) == []

    @pytest.mark.asyncio
    async def test_gives_up_after_ten_attempts(self, store, reconciler):
        store.forced_conflicts = 100

        with patch.object(
            reconciler, "_pause", AsyncMock(return_value=True)
        ) as mock_pause:
            result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.RETRIES_EXHAUSTED
        assert result.attempts == 10
        assert store.replace_calls == 10
        assert store.get_calls == 10
        assert mock_pause.await_count == 9
        assert "after 10 update attempts" in result.error
        assert not result.succeeded
        # Token cleanup still runs after a failed repair
        assert result.token_outcome is TokenOutcome.DELETED
        assert secret_names(store.stored("default", "sa1")) == ["d1", "d2"]

    @pytest.mark.asyncio
    async def test_custom_ceiling(self, store):
        store.forced_conflicts = 100
        reconciler = DockercfgSecretReconciler(
            store, retry_policy=ConflictRetryPolicy(max_attempts=3, jitter_max_seconds=0)
        )

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.RETRIES_EXHAUSTED
        assert store.replace_calls == 3

    @pytest.mark.asyncio
    async def test_sleep_uses_policy_jitter(self, store):
        store.forced_conflicts = 4
        policy = ConflictRetryPolicy(max_attempts=10, jitter_max_seconds=0.05)
        reconciler = DockercfgSecretReconciler(store, retry_policy=policy)

        with patch.object(
            reconciler, "_pause", AsyncMock(return_value=True)
        ) as mock_pause:
            await reconciler.reconcile(dockercfg_secret())

        delays = [call.args[0] for call in mock_pause.await_args_list]
        assert len(delays) == 4
        assert all(0.0 <= delay <= 0.05 for delay in delays)

    @pytest.mark.asyncio
    async def test_conflicts_are_counted(self, fast_retry_policy):
        store = FakeResourceStore()
        store.add_service_account(namespace="metrics-ns", secrets=["d1"])
        store.forced_conflicts = 2
        reconciler = DockercfgSecretReconciler(store, retry_policy=fast_retry_policy)
        registry = get_metrics_registry()
        sample = "dockercfg_operator_service_account_update_conflicts_total"
        before = registry.get_sample_value(sample, {"namespace": "metrics-ns"}) or 0.0

        await reconciler.reconcile(dockercfg_secret(namespace="metrics-ns"))

        after = registry.get_sample_value(sample, {"namespace": "metrics-ns"})
        assert after - before == 2


class TestFailureContainment:
    """Store failures are reported in the result, never raised."""

    @pytest.mark.asyncio
    async def test_fetch_error_is_reported_and_token_still_deleted(
        self, store, reconciler
    ):
        store.get_error = api_failure()

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.FAILED
        assert result.attempts == 1
        assert "Kubernetes API error" in result.error
        assert result.token_outcome is TokenOutcome.DELETED
        assert not result.succeeded

    @pytest.mark.asyncio
    async def test_fetch_error_is_not_retried(self, store, reconciler):
        store.get_error = api_failure(reason="Forbidden", status=403)

        await reconciler.reconcile(dockercfg_secret())

        assert store.get_calls == 1

    @pytest.mark.asyncio
    async def test_token_delete_error_keeps_reference_repair(self, store, reconciler):
        store.delete_error = api_failure()

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.REFERENCES_REMOVED
        assert result.token_outcome is TokenOutcome.FAILED
        assert not result.succeeded
        assert secret_names(store.stored("default", "sa1")) == ["d2"]

    @pytest.mark.asyncio
    async def test_service_account_deleted_during_update(self, store, reconciler):
        store.before_replace = lambda fake: fake.service_accounts.pop(
            ("default", "sa1"), None
        )

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.SERVICE_ACCOUNT_MISSING
        assert result.succeeded
        assert result.token_outcome is TokenOutcome.DELETED


class TestUnreachableApiServer:
    """Connection failures from the real store are contained like API errors."""

    @pytest.fixture
    def core_api(self):
        return MagicMock()

    @pytest.fixture
    def k8s_reconciler(self, core_api, fast_retry_policy):
        k8s_store = KubernetesResourceStore(api_client=MagicMock())
        k8s_store._core_api = core_api
        return DockercfgSecretReconciler(k8s_store, retry_policy=fast_retry_policy)

    @pytest.mark.asyncio
    async def test_fetch_connection_failure_still_deletes_token(
        self, core_api, k8s_reconciler
    ):
        core_api.read_namespaced_service_account.side_effect = MaxRetryError(
            None, "/api/v1/namespaces/default/serviceaccounts/sa1"
        )

        result = await k8s_reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.FAILED
        assert "MaxRetryError" in result.error
        assert result.token_outcome is TokenOutcome.DELETED
        core_api.delete_namespaced_secret.assert_called_once_with("tok1", "default")

    @pytest.mark.asyncio
    async def test_token_delete_connection_failure_is_reported(
        self, core_api, k8s_reconciler
    ):
        core_api.read_namespaced_service_account.return_value = service_account(
            secrets=["d2"]
        )
        core_api.delete_namespaced_secret.side_effect = ConnectionRefusedError(
            "connection refused"
        )

        result = await k8s_reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.UNCHANGED
        assert result.token_outcome is TokenOutcome.FAILED
        assert not result.succeeded


class TestDryRun:
    """Dry-run mode computes changes without writing them."""

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, store, fast_retry_policy):
        reconciler = DockercfgSecretReconciler(
            store, retry_policy=fast_retry_policy, dry_run=True
        )

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.DRY_RUN
        assert result.token_outcome is TokenOutcome.DRY_RUN
        assert store.replace_calls == 0
        assert store.deleted_secrets == []
        assert secret_names(store.stored("default", "sa1")) == ["d1", "d2"]


class TestCancellation:
    """Shutdown aborts the retry loop without finishing the ceiling."""

    @pytest.mark.asyncio
    async def test_stop_requested_before_retry(self, store, fast_retry_policy):
        stop_event = asyncio.Event()
        stop_event.set()
        store.forced_conflicts = 5
        reconciler = DockercfgSecretReconciler(
            store, retry_policy=fast_retry_policy, stop_event=stop_event
        )

        result = await reconciler.reconcile(dockercfg_secret())

        assert result.reference_outcome is ReferenceOutcome.CANCELLED
        assert result.attempts == 1
        assert result.token_outcome is TokenOutcome.SKIPPED
        assert ("default", "tok1") in store.secrets
        assert not result.succeeded

    @pytest.mark.asyncio
    async def test_stop_interrupts_jitter_sleep(self, store):
        stop_event = asyncio.Event()
        store.forced_conflicts = 5
        reconciler = DockercfgSecretReconciler(
            store,
            retry_policy=ConflictRetryPolicy(max_attempts=10, jitter_max_seconds=30.0),
            stop_event=stop_event,
        )
        asyncio.get_running_loop().call_later(0.05, stop_event.set)

        with patch(
            "dockercfg_operator.services.retry.random.uniform", return_value=30.0
        ):
            result = await asyncio.wait_for(
                reconciler.reconcile(dockercfg_secret()), timeout=5.0
            )

        assert result.reference_outcome is ReferenceOutcome.CANCELLED
        assert store.replace_calls == 1

    @pytest.mark.asyncio
    async def test_resumed_delivery_completes_repair(self, store, fast_retry_policy):
        """An event abandoned at shutdown is finished by its re-delivery."""
        stop_event = asyncio.Event()
        stop_event.set()
        store.forced_conflicts = 1
        secret = dockercfg_secret()

        cancelled = await DockercfgSecretReconciler(
            store, retry_policy=fast_retry_policy, stop_event=stop_event
        ).reconcile(secret)
        resumed = await DockercfgSecretReconciler(
            store, retry_policy=fast_retry_policy
        ).reconcile(secret)

        assert cancelled.reference_outcome is ReferenceOutcome.CANCELLED
        assert resumed.reference_outcome is ReferenceOutcome.REFERENCES_REMOVED
        assert resumed.token_outcome is TokenOutcome.DELETED
        assert secret_names(store.stored("default", "sa1")) == ["d2"]
