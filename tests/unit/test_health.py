"""Unit tests for HealthChecker."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException

from argocd_operator.observability.health import (
    REQUIRED_PERMISSIONS,
    HealthChecker,
    HealthCheckResult,
)


def make_cache(name: str, synced: bool) -> MagicMock:
    cache = MagicMock()
    cache.name = name
    cache.has_synced.return_value = synced
    return cache


def result(status: str) -> HealthCheckResult:
    return HealthCheckResult(name="x", status=status, message="")


class TestCachesSynced:
    """Tests for check_caches_synced."""

    @pytest.mark.asyncio
    async def test_unknown_without_caches(self):
        outcome = await HealthChecker(MagicMock()).check_caches_synced()
        assert outcome.status == "unknown"

    @pytest.mark.asyncio
    async def test_unhealthy_lists_pending_caches(self):
        checker = HealthChecker(
            MagicMock(),
            [make_cache("primary", True), make_cache("filtered", False)],
        )

        outcome = await checker.check_caches_synced()

        assert outcome.status == "unhealthy"
        assert "filtered" in outcome.message
        assert "primary" not in outcome.message
        assert outcome.details == {"primary": True, "filtered": False}

    @pytest.mark.asyncio
    async def test_healthy_when_all_synced(self):
        checker = HealthChecker(MagicMock())
        checker.add_cache(make_cache("primary", True))
        checker.add_cache(make_cache("filtered", True))

        outcome = await checker.check_caches_synced()

        assert outcome.status == "healthy"


class TestKubernetesApi:
    """Tests for the API connectivity check."""

    @pytest.mark.asyncio
    async def test_healthy_reports_version(self):
        version_api = MagicMock()
        version_api.get_code.return_value = MagicMock(git_version="v1.30.2")

        with patch(
            "argocd_operator.observability.health.client.VersionApi",
            return_value=version_api,
        ):
            outcome = await HealthChecker(MagicMock())._check_kubernetes_api()

        assert outcome.status == "healthy"
        assert outcome.details["api_server_version"] == "v1.30.2"

    @pytest.mark.asyncio
    async def test_api_exception_is_unhealthy(self):
        version_api = MagicMock()
        version_api.get_code.side_effect = ApiException(status=401, reason="Unauthorized")

        with patch(
            "argocd_operator.observability.health.client.VersionApi",
            return_value=version_api,
        ):
            outcome = await HealthChecker(MagicMock())._check_kubernetes_api()

        assert outcome.status == "unhealthy"
        assert outcome.details["status_code"] == 401


class TestRbacPermissions:
    """Tests for the self subject access review check."""

    @staticmethod
    def auth_api(allowed_verbs: set[str]) -> MagicMock:
        def review(body):
            verb = body.spec.resource_attributes.verb
            return MagicMock(status=MagicMock(allowed=verb in allowed_verbs))

        api = MagicMock()
        api.create_self_subject_access_review.side_effect = review
        return api

    @pytest.mark.asyncio
    async def test_all_allowed(self):
        api = self.auth_api({"list", "watch", "get", "patch"})
        with patch(
            "argocd_operator.observability.health.client.AuthorizationV1Api",
            return_value=api,
        ):
            outcome = await HealthChecker(MagicMock())._check_rbac_permissions()

        assert outcome.status == "healthy"
        assert len(outcome.details["allowed"]) == len(REQUIRED_PERMISSIONS)

    @pytest.mark.asyncio
    async def test_missing_patch_is_degraded(self):
        api = self.auth_api({"list", "watch", "get"})
        with patch(
            "argocd_operator.observability.health.client.AuthorizationV1Api",
            return_value=api,
        ):
            outcome = await HealthChecker(MagicMock())._check_rbac_permissions()

        assert outcome.status == "degraded"
        assert "patch /secrets" in outcome.details["denied"]

    @pytest.mark.asyncio
    async def test_nothing_allowed_is_unhealthy(self):
        api = self.auth_api(set())
        with patch(
            "argocd_operator.observability.health.client.AuthorizationV1Api",
            return_value=api,
        ):
            outcome = await HealthChecker(MagicMock())._check_rbac_permissions()

        assert outcome.status == "unhealthy"


class TestOverallHealth:
    def test_overall_health(self):
        checker = HealthChecker(MagicMock())

        assert checker.get_overall_health({}) == "unknown"
        assert checker.get_overall_health({"a": result("healthy")}) == "healthy"
        assert (
            checker.get_overall_health(
                {"a": result("healthy"), "b": result("degraded")}
            )
            == "degraded"
        )
        assert (
            checker.get_overall_health(
                {"a": result("unknown"), "b": result("unhealthy")}
            )
            == "unhealthy"
        )

    @pytest.mark.asyncio
    async def test_check_all_converts_exceptions(self):
        checker = HealthChecker(MagicMock())
        checker._check_kubernetes_api = AsyncMock(side_effect=RuntimeError("boom"))
        checker._check_rbac_permissions = AsyncMock(return_value=result("healthy"))

        results = await checker.check_all()

        assert results["kubernetes_api"].status == "unhealthy"
        assert "boom" in results["kubernetes_api"].message
        assert results["caches_synced"].status == "unknown"

        data = checker.to_dict(results)
        assert data["status"] == "unhealthy"
        assert set(data["checks"]) == {
            "kubernetes_api",
            "caches_synced",
            "rbac_permissions",
        }
