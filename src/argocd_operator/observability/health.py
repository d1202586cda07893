"""
Health checks for the Argo CD operator.

Three checks feed ``/health`` and the kopf liveness probe: API server
reachability, initial sync of every informer cache, and the RBAC verbs the
read path needs on Secrets and ConfigMaps. Readiness uses the cache check
alone.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from kubernetes import client
from kubernetes.client.rest import ApiException

if TYPE_CHECKING:
    from argocd_operator.kube.cache import InformerCache

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"
UNKNOWN = "unknown"

# list/watch for informers, get for live reads, patch for the tracking label
REQUIRED_VERBS = ("list", "watch", "get", "patch")
REQUIRED_RESOURCES = ("secrets", "configmaps")
REQUIRED_PERMISSIONS = [
    ("", resource, verb) for resource in REQUIRED_RESOURCES for verb in REQUIRED_VERBS
]


@dataclass
class HealthCheckResult:
    name: str
    status: str
    message: str
    details: dict[str, Any] | None = None
    duration: float = 0.0
    timestamp: float = field(default_factory=time.time)

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "details": self.details,
            "duration": self.duration,
            "timestamp": self.timestamp,
        }


class HealthChecker:
    """Runs the operator's health checks."""

    def __init__(
        self,
        k8s_client: client.ApiClient | None = None,
        caches: Iterable["InformerCache"] = (),
    ):
        """
        Args:
            k8s_client: API client; loaded from the environment on first use
                when omitted
            caches: Informer caches whose sync state gates readiness
        """
        self.k8s_client = k8s_client
        self.caches = list(caches)

    def add_cache(self, cache: "InformerCache") -> None:
        self.caches.append(cache)

    async def check_all(self) -> dict[str, HealthCheckResult]:
        """Run every check; a check that raises is reported as unhealthy."""
        checks: dict[str, Callable[[], Awaitable[HealthCheckResult]]] = {
            "kubernetes_api": self._check_kubernetes_api,
            "caches_synced": self.check_caches_synced,
            "rbac_permissions": self._check_rbac_permissions,
        }
        results: dict[str, HealthCheckResult] = {}
        for name, check in checks.items():
            try:
                results[name] = await check()
            except Exception as e:
                logger.warning(f"Health check {name} raised: {e}")
                results[name] = HealthCheckResult(
                    name, UNHEALTHY, f"Health check failed: {e}"
                )
        return results

    async def check_caches_synced(self) -> HealthCheckResult:
        """Healthy once every registered cache finished its initial sync."""
        if not self.caches:
            return HealthCheckResult("caches_synced", UNKNOWN, "No caches registered")

        states = {cache.name: cache.has_synced() for cache in self.caches}
        pending = sorted(name for name, synced in states.items() if not synced)
        if pending:
            return HealthCheckResult(
                "caches_synced",
                UNHEALTHY,
                f"Waiting for cache sync: {', '.join(pending)}",
                details=states,
            )
        return HealthCheckResult(
            "caches_synced", HEALTHY, f"{len(states)} cache(s) synced", details=states
        )

    def _api_client(self) -> client.ApiClient:
        if self.k8s_client is None:
            from argocd_operator.utils.kubernetes import get_kubernetes_client

            self.k8s_client = get_kubernetes_client()
        return self.k8s_client

    async def _check_kubernetes_api(self) -> HealthCheckResult:
        started = time.monotonic()
        try:
            version_api = client.VersionApi(self._api_client())
            version = await asyncio.to_thread(version_api.get_code)
        except ApiException as e:
            return HealthCheckResult(
                "kubernetes_api",
                UNHEALTHY,
                f"API server returned {e.status}: {e.reason}",
                details={"status_code": e.status},
                duration=time.monotonic() - started,
            )
        except Exception as e:
            return HealthCheckResult(
                "kubernetes_api",
                UNHEALTHY,
                f"API server unreachable: {e}",
                duration=time.monotonic() - started,
            )

        elapsed = time.monotonic() - started
        return HealthCheckResult(
            "kubernetes_api",
            HEALTHY,
            "API server reachable",
            details={
                "api_server_version": getattr(version, "git_version", "unknown"),
                "response_time_ms": round(elapsed * 1000, 2),
            },
            duration=elapsed,
        )

    async def _check_rbac_permissions(self) -> HealthCheckResult:
        """Run a SelfSubjectAccessReview for every required verb."""
        started = time.monotonic()
        auth_api = client.AuthorizationV1Api(self._api_client())
        allowed: list[str] = []
        denied: list[str] = []

        for group, resource, verb in REQUIRED_PERMISSIONS:
            permission = f"{verb} {group}/{resource}"
            try:
                granted = await asyncio.to_thread(
                    self._can_i, auth_api, group, resource, verb
                )
            except Exception as e:
                logger.warning(f"Access review for {permission} failed: {e}")
                denied.append(f"{permission} (review failed)")
                continue
            if granted:
                allowed.append(permission)
            else:
                denied.append(permission)

        elapsed = time.monotonic() - started
        if not denied:
            return HealthCheckResult(
                "rbac_permissions",
                HEALTHY,
                "All required permissions granted",
                details={"allowed": allowed},
                duration=elapsed,
            )
        return HealthCheckResult(
            "rbac_permissions",
            DEGRADED if allowed else UNHEALTHY,
            f"Missing permissions: {', '.join(denied)}",
            details={"allowed": allowed, "denied": denied},
            duration=elapsed,
        )

    @staticmethod
    def _can_i(
        auth_api: client.AuthorizationV1Api, group: str, resource: str, verb: str
    ) -> bool:
        review = client.V1SelfSubjectAccessReview(
            spec=client.V1SelfSubjectAccessReviewSpec(
                resource_attributes=client.V1ResourceAttributes(
                    group=group, resource=resource, verb=verb
                )
            )
        )
        return bool(auth_api.create_self_subject_access_review(body=review).status.allowed)

    def get_overall_health(self, results: dict[str, HealthCheckResult]) -> str:
        """Worst status wins; unknown counts as degraded."""
        if not results:
            return UNKNOWN
        statuses = {result.status for result in results.values()}
        if UNHEALTHY in statuses:
            return UNHEALTHY
        if statuses & {DEGRADED, UNKNOWN}:
            return DEGRADED
        return HEALTHY

    def to_dict(self, results: dict[str, HealthCheckResult]) -> dict[str, Any]:
        return {
            "status": self.get_overall_health(results),
            "timestamp": time.time(),
            "checks": {name: result.as_dict() for name, result in results.items()},
        }
