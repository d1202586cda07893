"""
Tests for the HTTP endpoints of MetricsServer.

The aiohttp application is served by ``aiohttp.test_utils`` on an
ephemeral port; the configured port is never bound.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from argocd_operator.observability.health import HealthCheckResult
from argocd_operator.observability.metrics import MetricsServer


def make_checker(overall: str = "healthy", caches: str = "healthy") -> MagicMock:
    checker = MagicMock()
    checker.check_all = AsyncMock(return_value={})
    checker.to_dict.return_value = {"status": overall, "checks": {}}
    checker.check_caches_synced = AsyncMock(
        return_value=HealthCheckResult(name="caches_synced", status=caches, message="")
    )
    return checker


@pytest.fixture
def server():
    return MetricsServer(port=0)


@pytest.fixture
async def http(server):
    async with TestClient(TestServer(server.app)) as test_client:
        yield test_client


async def fetch(http, path: str) -> tuple[int, dict]:
    response = await http.get(path)
    return response.status, await response.json()


class TestScrape:
    """Prometheus scrape and liveness endpoints."""

    async def test_scrape_lists_read_path_families(self, http):
        response = await http.get("/metrics")

        assert response.status == 200
        assert response.headers["Content-Type"].startswith("text/plain; version=")
        assert "charset=utf-8" in response.headers["Content-Type"]
        text = await response.text()
        for family in (
            "argocd_operator_hybrid_reads_total",
            "argocd_operator_tracking_label_patches_total",
            "argocd_operator_cache_synced",
        ):
            assert family in text

    async def test_render_failure_hides_details(self, http):
        with patch(
            "argocd_operator.observability.metrics.generate_latest",
            side_effect=ValueError("registry corrupt"),
        ):
            response = await http.get("/metrics")

        assert response.status == 500
        text = await response.text()
        assert "ValueError" in text
        assert "registry corrupt" not in text

    async def test_healthz_is_plain_ok(self, http):
        response = await http.get("/healthz")
        assert (response.status, await response.text()) == (200, "ok")


class TestHealth:
    """``/health`` reflects the overall checker result."""

    async def test_unknown_without_checker(self, http):
        status, body = await fetch(http, "/health")
        assert (status, body["status"]) == (200, "unknown")

    @pytest.mark.parametrize(
        ("overall", "expected"),
        [("healthy", 200), ("degraded", 200), ("unhealthy", 503), ("unknown", 503)],
    )
    async def test_status_code_follows_overall(self, http, server, overall, expected):
        server.health_checker = make_checker(overall)

        status, body = await fetch(http, "/health")

        assert status == expected
        assert body["status"] == overall

    async def test_checker_crash_is_500(self, http, server):
        server.health_checker = make_checker()
        server.health_checker.check_all.side_effect = ConnectionError("apiserver gone")

        status, body = await fetch(http, "/health")

        assert status == 500
        assert body["status"] == "unhealthy"
        assert body["error"].startswith("ConnectionError")
        assert "apiserver gone" not in body["error"]


class TestReady:
    """``/ready`` follows cache synchronization only."""

    async def test_ready_once_synced(self, http, server):
        server.health_checker = make_checker(overall="unhealthy", caches="healthy")

        status, body = await fetch(http, "/ready")

        assert status == 200
        assert body["status"] == "ready"
        assert body["checks"] == {"caches_synced": "healthy"}

    async def test_waiting_for_sync(self, http, server):
        server.health_checker = make_checker(caches="unhealthy")
        status, body = await fetch(http, "/ready")
        assert (status, body["status"]) == (503, "not_ready")

    async def test_no_checker_is_not_ready(self, http):
        status, _ = await fetch(http, "/ready")
        assert status == 503


class TestLifecycle:
    async def test_stop_before_start(self, server):
        await server.stop()
        assert (server.runner, server.site) == (None, None)

    async def test_bind_failure_is_raised_and_cleaned_up(self, server):
        with patch(
            "argocd_operator.observability.metrics.TCPSite.start",
            AsyncMock(side_effect=OSError("address in use")),
        ):
            with pytest.raises(OSError, match="address in use"):
                await server.start()

        assert (server.runner, server.site) == (None, None)
