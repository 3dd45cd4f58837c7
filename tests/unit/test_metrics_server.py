"""
Unit tests for MetricsServer HTTP endpoints.

Uses ``aiohttp.test_utils`` to drive the server's aiohttp application
on a local ephemeral port.
"""

from unittest.mock import patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from dockercfg_operator.observability.metrics import MetricsServer, metrics_collector


@pytest.fixture
def metrics_server():
    """Create a fresh MetricsServer instance per test."""
    return MetricsServer(port=0)


@pytest.fixture
async def client(metrics_server):
    """Create an aiohttp TestClient from the MetricsServer app."""
    async with TestClient(TestServer(metrics_server.app)) as cli:
        yield cli


# ---------------------------------------------------------------------------
# /metrics endpoint
# ---------------------------------------------------------------------------
class TestMetricsEndpoint:
    """Tests for ``GET /metrics``."""

    @pytest.mark.asyncio
    async def test_metrics_exposes_operator_metrics(self, client):
        metrics_collector.record_secret_deletion("scrape-ns", "references_removed", 0.1)

        resp = await client.get("/metrics")

        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("text/plain")
        body = await resp.text()
        assert "dockercfg_operator_secret_deletions_total" in body
        assert 'namespace="scrape-ns"' in body

    @pytest.mark.asyncio
    async def test_metrics_error_returns_500(self, client):
        """When generate_latest raises, the handler returns 500."""
        with patch(
            "dockercfg_operator.observability.metrics.generate_latest",
            side_effect=RuntimeError("boom"),
        ):
            resp = await client.get("/metrics")
        assert resp.status == 500
        body = await resp.text()
        assert "RuntimeError" in body


# ---------------------------------------------------------------------------
# /healthz endpoint
# ---------------------------------------------------------------------------
class TestHealthzEndpoint:
    @pytest.mark.asyncio
    async def test_healthz_returns_200_ok(self, client):
        resp = await client.get("/healthz")
        assert resp.status == 200
        assert await resp.text() == "ok"


# ---------------------------------------------------------------------------
# /ready endpoint
# ---------------------------------------------------------------------------
class TestReadyEndpoint:
    """Tests for ``GET /ready`` (K8s readiness probe)."""

    @pytest.mark.asyncio
    async def test_ready_without_check(self, client):
        resp = await client.get("/ready")
        assert resp.status == 200
        data = await resp.json()
        assert data["status"] == "ready"

    @pytest.mark.asyncio
    async def test_ready_follows_readiness_check(self):
        state = {"running": False}
        server = MetricsServer(port=0, readiness_check=lambda: state["running"])

        async with TestClient(TestServer(server.app)) as cli:
            resp = await cli.get("/ready")
            assert resp.status == 503
            assert (await resp.json())["status"] == "not_ready"

            state["running"] = True
            resp = await cli.get("/ready")
            assert resp.status == 200


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, metrics_server):
        await metrics_server.stop()
        assert metrics_server.runner is None
        assert metrics_server.site is None

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        server = MetricsServer(port=0, host="127.0.0.1")

        await server.start()
        assert server.runner is not None
        assert server.site is not None

        await server.stop()
        assert server.runner is None
        assert server.site is None
