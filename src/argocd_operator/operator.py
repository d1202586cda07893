"""
Argo CD operator process.

Kopf hosts the process. On startup the read path is built for the
configured cache strategy, its caches are started under a ``Manager`` and
the operator waits for their initial sync before anything else runs. The
resulting client is published on ``memo.client`` for handlers to read
Secrets, ConfigMaps and other core kinds through.

Run with:
    argocd-operator
    # or
    kopf run -m argocd_operator.operator --all-namespaces

Environment: see ``argocd_operator.settings`` (WATCH_NAMESPACE,
CACHE_STRATEGY, MEMORY_OPTIMIZATION_ENABLED, LOG_LEVEL, ...).
"""

import logging
import sys

import kopf

from argocd_operator.errors import OperatorError
from argocd_operator.kube.manager import Manager
from argocd_operator.observability.health import HealthChecker
from argocd_operator.observability.logging import setup_structured_logging
from argocd_operator.observability.metrics import MetricsServer
from argocd_operator.observability.tracing import setup_tracing, shutdown_tracing
from argocd_operator.readpath import build_read_path
from argocd_operator.settings import settings as operator_settings
from argocd_operator.utils.kubernetes import get_kubernetes_client

logger = logging.getLogger(__name__)

LIVENESS_ENDPOINT = "http://0.0.0.0:8080/healthz"

# Started on startup, stopped on cleanup
_global_metrics_server: MetricsServer | None = None


def configure_logging() -> None:
    setup_structured_logging(
        log_level=operator_settings.log_level,
        enable_json_formatting=operator_settings.json_logs,
        correlation_id_enabled=operator_settings.correlation_ids,
        log_health_probes=operator_settings.log_health_probes,
    )


def get_watched_namespaces() -> list[str] | None:
    """Namespaces to watch, or None for cluster scope."""
    return operator_settings.watched_namespaces


def _probe_body(status: str, **fields: str) -> dict[str, str]:
    return {"status": status, "operator": operator_settings.operator_name, **fields}


async def _start_metrics_server(health_checker: HealthChecker) -> None:
    """Start the metrics server; a failure is logged and tolerated."""
    global _global_metrics_server

    server = MetricsServer(
        port=operator_settings.metrics_port,
        host=operator_settings.metrics_host,
        health_checker=health_checker,
    )
    try:
        await server.start()
    except Exception as e:
        logger.error(f"Metrics server unavailable, continuing without it: {e}")
        return
    _global_metrics_server = server


@kopf.on.startup()
async def startup_handler(
    settings: kopf.OperatorSettings, memo: kopf.Memo, **_
) -> None:
    """
    Build and start the read path.

    Every failure before the caches report synced is fatal: it is raised
    as ``kopf.PermanentError`` and the process exits.
    """
    settings.watching.reconnect_backoff = 1.0
    settings.peering.standalone = True

    setup_tracing(
        enabled=operator_settings.tracing_enabled,
        endpoint=operator_settings.tracing_endpoint,
        sample_rate=operator_settings.tracing_sample_rate,
    )

    namespaces = get_watched_namespaces()
    logger.info(
        f"Starting Argo CD operator, watching "
        f"{', '.join(namespaces) if namespaces else 'all namespaces'}"
    )

    try:
        api_client = get_kubernetes_client()
        read_path = build_read_path(api_client, operator_settings)
    except OperatorError as e:
        logger.error(f"Unable to build the read path: {e}")
        raise kopf.PermanentError(str(e)) from e
    except Exception as e:
        logger.error(f"Unable to configure the operator: {e}")
        raise kopf.PermanentError(f"Unable to configure the operator: {e}") from e

    manager = Manager()
    read_path.register(manager, operator_settings.cache_sync_timeout_seconds)
    health_checker = HealthChecker(api_client, read_path.caches)

    memo.manager = manager
    memo.read_path = read_path
    memo.client = read_path.client
    memo.health_checker = health_checker

    try:
        await manager.start()
    except Exception as e:
        logger.error(f"Problem running manager: {e}")
        raise kopf.PermanentError(f"Problem running manager: {e}") from e

    logger.info(
        f"Read path ready: {read_path.strategy} strategy, "
        f"{len(read_path.caches)} cache(s) synced"
    )
    await _start_metrics_server(health_checker)


@kopf.on.cleanup()
async def cleanup_handler(memo: kopf.Memo, **_) -> None:
    """Stop the caches, the metrics server and tracing, in that order."""
    global _global_metrics_server

    manager: Manager | None = getattr(memo, "manager", None)
    if manager is not None:
        manager.stop()
        await manager.wait()

    if _global_metrics_server is not None:
        await _global_metrics_server.stop()
        _global_metrics_server = None

    shutdown_tracing()
    logger.info("Argo CD operator stopped")


@kopf.on.probe(id="healthz")
async def health_check(memo: kopf.Memo, **_) -> dict[str, str]:
    """Liveness: overall result of every health check."""
    health_checker = getattr(memo, "health_checker", None) or HealthChecker()
    try:
        results = await health_checker.check_all()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return _probe_body("unhealthy", error=str(e))

    api = results.get("kubernetes_api")
    return _probe_body(
        health_checker.get_overall_health(results),
        timestamp=str(api.timestamp) if api is not None else "unknown",
    )


@kopf.on.probe(id="ready")
async def readiness_check(memo: kopf.Memo, **_) -> dict[str, str]:
    """Readiness: every cache has synced."""
    health_checker = getattr(memo, "health_checker", None)
    if health_checker is None:
        return _probe_body("not_ready")
    try:
        result = await health_checker.check_caches_synced()
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return _probe_body("not_ready", error=str(e))
    return _probe_body("ready" if result.status == "healthy" else "not_ready")


def main() -> None:
    """Console entry point."""
    configure_logging()

    namespaces = get_watched_namespaces()
    scope = {"namespaces": namespaces} if namespaces else {"clusterwide": True}
    try:
        kopf.run(liveness_endpoint=LIVENESS_ENDPOINT, standalone=True, **scope)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Operator exited with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
