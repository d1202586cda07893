"""Unit tests for the kopf startup, cleanup and probe handlers."""

from unittest.mock import AsyncMock, MagicMock, patch

import kopf
import pytest

import argocd_operator.operator as operator_module
from argocd_operator.errors import CacheConstructionError, CacheSyncError
from argocd_operator.observability.health import HealthCheckResult
from argocd_operator.operator import (
    cleanup_handler,
    health_check,
    readiness_check,
    startup_handler,
)


@pytest.fixture
def read_path():
    path = MagicMock()
    path.strategy = "hybrid"
    path.caches = [MagicMock(name="primary"), MagicMock(name="filtered")]
    return path


@pytest.fixture
def startup_patches(read_path):
    """Patch every collaborator the startup handler builds."""
    manager = MagicMock()
    manager.start = AsyncMock()
    manager.wait = AsyncMock()
    metrics_server = MagicMock()
    metrics_server.start = AsyncMock()
    metrics_server.stop = AsyncMock()

    with (
        patch.object(operator_module, "setup_tracing") as mock_tracing,
        patch.object(operator_module, "get_kubernetes_client") as mock_client,
        patch.object(
            operator_module, "build_read_path", return_value=read_path
        ) as mock_build,
        patch.object(operator_module, "Manager", return_value=manager),
        patch.object(operator_module, "MetricsServer", return_value=metrics_server),
    ):
        yield {
            "tracing": mock_tracing,
            "client": mock_client,
            "build": mock_build,
            "manager": manager,
            "metrics_server": metrics_server,
        }
    operator_module._global_metrics_server = None


class TestStartupHandler:
    """Tests for startup_handler."""

    @pytest.mark.asyncio
    async def test_startup_wires_memo(self, startup_patches, read_path):
        settings = kopf.OperatorSettings()
        memo = kopf.Memo()

        await startup_handler(settings=settings, memo=memo)

        manager = startup_patches["manager"]
        read_path.register.assert_called_once()
        assert read_path.register.call_args.args[0] is manager
        manager.start.assert_awaited_once()
        assert memo.manager is manager
        assert memo.read_path is read_path
        assert memo.client is read_path.client
        assert memo.health_checker.caches == read_path.caches
        assert settings.peering.standalone is True
        startup_patches["metrics_server"].start.assert_awaited_once()
        assert operator_module._global_metrics_server is startup_patches["metrics_server"]

    @pytest.mark.asyncio
    async def test_construction_error_is_permanent(self, startup_patches):
        startup_patches["build"].side_effect = CacheConstructionError("no registry")

        with pytest.raises(kopf.PermanentError, match="no registry"):
            await startup_handler(settings=kopf.OperatorSettings(), memo=kopf.Memo())

        startup_patches["manager"].start.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_kubeconfig_is_permanent(self, startup_patches):
        startup_patches["client"].side_effect = RuntimeError("no config")

        with pytest.raises(kopf.PermanentError, match="Unable to configure"):
            await startup_handler(settings=kopf.OperatorSettings(), memo=kopf.Memo())

    @pytest.mark.asyncio
    async def test_cache_sync_failure_is_permanent(self, startup_patches):
        startup_patches["manager"].start.side_effect = CacheSyncError("filtered")

        with pytest.raises(kopf.PermanentError, match="Problem running manager"):
            await startup_handler(settings=kopf.OperatorSettings(), memo=kopf.Memo())

        startup_patches["metrics_server"].start.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_metrics_server_failure_is_not_fatal(self, startup_patches):
        startup_patches["metrics_server"].start.side_effect = OSError("in use")
        memo = kopf.Memo()

        await startup_handler(settings=kopf.OperatorSettings(), memo=memo)

        assert operator_module._global_metrics_server is None
        assert memo.manager is startup_patches["manager"]


class TestCleanupHandler:
    """Tests for cleanup_handler."""

    @pytest.mark.asyncio
    async def test_cleanup_stops_everything(self):
        manager = MagicMock()
        manager.wait = AsyncMock()
        metrics_server = MagicMock()
        metrics_server.stop = AsyncMock()
        operator_module._global_metrics_server = metrics_server
        memo = kopf.Memo()
        memo.manager = manager

        with patch.object(operator_module, "shutdown_tracing") as mock_shutdown:
            await cleanup_handler(memo=memo)

        manager.stop.assert_called_once()
        manager.wait.assert_awaited_once()
        metrics_server.stop.assert_awaited_once()
        mock_shutdown.assert_called_once()
        assert operator_module._global_metrics_server is None

    @pytest.mark.asyncio
    async def test_cleanup_without_startup(self):
        with patch.object(operator_module, "shutdown_tracing") as mock_shutdown:
            await cleanup_handler(memo=kopf.Memo())
        mock_shutdown.assert_called_once()


class TestProbes:
    """Tests for the kopf liveness and readiness probes."""

    @pytest.mark.asyncio
    async def test_readiness_follows_cache_sync(self):
        checker = MagicMock()
        checker.check_caches_synced = AsyncMock(
            return_value=HealthCheckResult(name="caches_synced", status="healthy", message="")
        )
        memo = kopf.Memo()
        memo.health_checker = checker

        assert (await readiness_check(memo=memo))["status"] == "ready"

        checker.check_caches_synced.return_value = HealthCheckResult(
            name="caches_synced", status="unhealthy", message=""
        )
        assert (await readiness_check(memo=memo))["status"] == "not_ready"

    @pytest.mark.asyncio
    async def test_not_ready_before_startup(self):
        assert (await readiness_check(memo=kopf.Memo()))["status"] == "not_ready"

    @pytest.mark.asyncio
    async def test_health_check_reports_overall_status(self):
        checker = MagicMock()
        checker.check_all = AsyncMock(
            return_value={
                "kubernetes_api": HealthCheckResult(
                    name="kubernetes_api", status="healthy", message="", timestamp=1.0
                )
            }
        )
        checker.get_overall_health.return_value = "healthy"
        memo = kopf.Memo()
        memo.health_checker = checker

        result = await health_check(memo=memo)

        assert result["status"] == "healthy"
        assert result["timestamp"] == "1.0"

    @pytest.mark.asyncio
    async def test_health_check_error_is_unhealthy(self):
        checker = MagicMock()
        checker.check_all = AsyncMock(side_effect=RuntimeError("down"))
        memo = kopf.Memo()
        memo.health_checker = checker

        result = await health_check(memo=memo)

        assert result["status"] == "unhealthy"
        assert result["error"] == "down"
