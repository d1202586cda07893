"""
Prometheus metrics for the Argo CD operator.

Metrics describe the Secret/ConfigMap read path: which branch served each
hybrid read, how tracking label promotion went, whether each cache has
synced, and how the informers behind the caches are doing. They are served
with the health endpoints by ``MetricsServer``.
"""

import logging
import time
from typing import Any

# aiohttp is provided transitively by Kopf (health probes and webhooks).
from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
    json_response,
)
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

PREFIX = "argocd_operator"

# Metrics are created unregistered and attached to the operator registry
HYBRID_READS_TOTAL = Counter(
    f"{PREFIX}_hybrid_reads_total",
    "Reads through the hybrid client, by serving path",
    ["kind", "operation", "path"],
    registry=None,
)
HYBRID_READ_DURATION = Histogram(
    f"{PREFIX}_hybrid_read_duration_seconds",
    "Time spent serving reads through the hybrid client",
    ["kind", "operation"],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
    registry=None,
)
TRACKING_LABEL_PATCHES_TOTAL = Counter(
    f"{PREFIX}_tracking_label_patches_total",
    "Tracking label enforcement attempts, by outcome",
    ["kind", "outcome"],
    registry=None,
)
CACHE_SYNCED = Gauge(
    f"{PREFIX}_cache_synced",
    "1 once a cache has completed its initial synchronization",
    ["cache"],
    registry=None,
)
INFORMER_WATCH_ERRORS_TOTAL = Counter(
    f"{PREFIX}_informer_watch_errors_total",
    "Errors raised by informer list/watch loops",
    ["cache", "kind", "reason"],
    registry=None,
)
INFORMER_OBJECTS = Gauge(
    f"{PREFIX}_informer_objects",
    "Objects held by an informer store",
    ["cache", "kind", "namespace"],
    registry=None,
)

ALL_METRICS = (
    HYBRID_READS_TOTAL,
    HYBRID_READ_DURATION,
    TRACKING_LABEL_PATCHES_TOTAL,
    CACHE_SYNCED,
    INFORMER_WATCH_ERRORS_TOTAL,
    INFORMER_OBJECTS,
)

_registry: CollectorRegistry | None = None


def get_metrics_registry() -> CollectorRegistry:
    """Operator registry, created and populated on first use."""
    global _registry

    if _registry is None:
        _registry = CollectorRegistry()
        for metric in ALL_METRICS:
            _registry.register(metric)
    return _registry


class MetricsCollector:
    """Facade the read path records through."""

    def __init__(self):
        self.registry = get_metrics_registry()

    def record_hybrid_read(
        self, kind: str, operation: str, path: str, duration: float | None = None
    ) -> None:
        """
        Record one hybrid client read.

        Args:
            kind: Kind that was read (Secret, ConfigMap, ...)
            operation: get or list
            path: Branch that served the read (cache_hit, live_fallback, ...)
            duration: Seconds spent, when measured
        """
        HYBRID_READS_TOTAL.labels(kind=kind, operation=operation, path=path).inc()
        if duration is not None:
            HYBRID_READ_DURATION.labels(kind=kind, operation=operation).observe(
                duration
            )

    def record_label_patch(self, kind: str, outcome: str) -> None:
        TRACKING_LABEL_PATCHES_TOTAL.labels(kind=kind, outcome=outcome).inc()

    def update_cache_sync_status(self, cache: str, synced: bool) -> None:
        CACHE_SYNCED.labels(cache=cache).set(1 if synced else 0)

    def record_informer_error(self, cache: str, kind: str, reason: str) -> None:
        INFORMER_WATCH_ERRORS_TOTAL.labels(cache=cache, kind=kind, reason=reason).inc()

    def update_informer_objects(
        self, cache: str, kind: str, namespace: str, count: int
    ) -> None:
        INFORMER_OBJECTS.labels(cache=cache, kind=kind, namespace=namespace).set(count)


class MetricsServer:
    """
    aiohttp server for ``/metrics`` and the health endpoints.

    ``/health`` and ``/ready`` delegate to the injected ``HealthChecker``;
    without one they report unknown and not ready. ``/healthz`` only shows
    that the process serves HTTP.
    """

    def __init__(
        self, port: int = 8081, host: str = "0.0.0.0", health_checker: Any = None
    ):
        self.port = port
        self.host = host
        self.health_checker = health_checker
        self.app = Application()
        for path, handler in (
            ("/metrics", self._metrics_handler),
            ("/health", self._health_handler),
            ("/ready", self._ready_handler),
            ("/healthz", self._healthz_handler),
        ):
            self.app.router.add_get(path, handler)
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None

    async def _metrics_handler(self, request: Request) -> Response:
        try:
            body = generate_latest(get_metrics_registry())
        except Exception as e:
            logger.error(f"Failed to render metrics: {e}")
            return Response(
                text=f"Failed to render metrics: {type(e).__name__}. See operator logs.",
                status=500,
            )
        # CONTENT_TYPE_LATEST carries a charset, which content_type= rejects
        return Response(body=body, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def _health_handler(self, request: Request) -> Response:
        if self.health_checker is None:
            return json_response({"status": "unknown", "timestamp": time.time()})
        try:
            report = self.health_checker.to_dict(await self.health_checker.check_all())
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return json_response(
                {
                    "status": "unhealthy",
                    "error": f"{type(e).__name__}. See operator logs.",
                    "timestamp": time.time(),
                },
                status=500,
            )
        serving = report["status"] in ("healthy", "degraded")
        return json_response(report, status=200 if serving else 503)

    async def _ready_handler(self, request: Request) -> Response:
        if self.health_checker is None:
            return json_response(
                {"status": "not_ready", "timestamp": time.time()}, status=503
            )
        result = await self.health_checker.check_caches_synced()
        ready = result.status == "healthy"
        return json_response(
            {
                "status": "ready" if ready else "not_ready",
                "timestamp": time.time(),
                "checks": {"caches_synced": result.status},
            },
            status=200 if ready else 503,
        )

    async def _healthz_handler(self, request: Request) -> Response:
        return Response(text="ok")

    async def start(self) -> None:
        """Bind and start serving; errors propagate to the caller."""
        self.runner = AppRunner(self.app)
        await self.runner.setup()
        self.site = TCPSite(self.runner, self.host, self.port)
        try:
            await self.site.start()
        except Exception as e:
            logger.error(f"Failed to bind metrics server on {self.host}:{self.port}: {e}")
            await self.runner.cleanup()
            self.runner = None
            self.site = None
            raise
        logger.info(f"Serving metrics and health on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop serving; safe to call when not started."""
        site, runner = self.site, self.runner
        self.site = None
        self.runner = None
        try:
            if site is not None:
                await site.stop()
            if runner is not None:
                await runner.cleanup()
        except Exception as e:
            logger.error(f"Error stopping metrics server: {e}")
            return
        logger.info("Metrics server stopped")

    async def __aenter__(self) -> "MetricsServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


metrics_collector = MetricsCollector()
