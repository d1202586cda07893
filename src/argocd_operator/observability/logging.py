"""
Structured logging for the Argo CD operator.

Read-path log records carry structured fields (kind, name, namespace,
serving path, cache, ...) passed through ``extra=``. With JSON output
enabled every record becomes one JSON document per line, and a correlation
ID ties together the records emitted while handling one event.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Endpoints scraped by the kubelet and Prometheus
PROBE_PATHS = ("/healthz", "/health", "/ready", "/metrics")

# Third-party loggers capped at WARNING
NOISY_LOGGERS = (
    "kopf",
    "kubernetes",
    "urllib3",
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web",
)

# Fields lifted from ``extra=`` into the JSON document
STRUCTURED_FIELDS = (
    "resource_kind",
    "resource_name",
    "namespace",
    "operation",
    "read_path",
    "cache_name",
    "resource_version",
    "duration",
    "outcome",
    "error_type",
)

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
PLAIN_FORMAT_WITH_ID = (
    "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
)


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(value: str) -> str:
    """Bind ``value`` as the correlation ID of the current context."""
    _correlation_id.set(value)
    return value


def get_correlation_id() -> str:
    return _correlation_id.get()


class CorrelationFilter(logging.Filter):
    """Stamp records with the context's correlation ID, minting one if unset."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or set_correlation_id(
            new_correlation_id()
        )
        return True


class ProbeAccessFilter(logging.Filter):
    """Drop access log lines for probe and scrape endpoints."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return not any(path in message for path in PROBE_PATHS)


class JsonFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:
        document = {
            "time": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation = getattr(record, "correlation_id", "")
        if correlation:
            document["correlation_id"] = correlation
        for name in STRUCTURED_FIELDS:
            if name in record.__dict__:
                document[name] = record.__dict__[name]
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        return json.dumps(document, default=str)


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
    log_health_probes: bool = False,
) -> None:
    """
    Replace the root handlers with a single configured stream handler.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Emit JSON documents instead of plain lines
        correlation_id_enabled: Stamp records with correlation IDs
        log_health_probes: Keep access log lines for probe endpoints
    """
    handler = logging.StreamHandler()
    if enable_json_formatting:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                PLAIN_FORMAT_WITH_ID if correlation_id_enabled else PLAIN_FORMAT
            )
        )
    if correlation_id_enabled:
        handler.addFilter(CorrelationFilter())
    if not log_health_probes:
        handler.addFilter(ProbeAccessFilter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class OperatorLogger:
    """Logger with helpers for read-path and tracking label events."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def log_read(
        self,
        operation: str,
        kind: str,
        name: str | None,
        namespace: str | None,
        read_path: str,
        duration: float | None = None,
    ) -> None:
        """
        Log which path served a read, at DEBUG.

        Args:
            operation: get or list
            kind: Kind that was read
            name: Object name (None for list)
            namespace: Namespace of the read
            read_path: Serving path (cache_hit, live_fallback, ...)
            duration: Read duration in seconds
        """
        target = f"{namespace}/{name}" if name else (namespace or "<all namespaces>")
        fields = {
            "resource_kind": kind,
            "resource_name": name,
            "namespace": namespace,
            "operation": operation,
            "read_path": read_path,
        }
        if duration is not None:
            fields["duration"] = duration
        self.logger.debug(
            f"{operation} {kind} {target} served via {read_path}", extra=fields
        )

    def log_read_error(
        self,
        operation: str,
        kind: str,
        name: str | None,
        namespace: str | None,
        stage: str,
        error: Exception,
    ) -> None:
        self.logger.debug(
            f"{operation} {kind} {namespace}/{name} failed at {stage}: {error}",
            extra={
                "resource_kind": kind,
                "resource_name": name,
                "namespace": namespace,
                "operation": f"{operation}_{stage}",
                "error_type": type(error).__name__,
            },
        )

    def log_label_patch(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        outcome: str,
        error: Exception | None = None,
    ) -> None:
        """Log a tracking label patch; failures at WARNING, the rest at DEBUG."""
        fields = {
            "resource_kind": kind,
            "resource_name": name,
            "namespace": namespace,
            "operation": "tracking_label_patch",
            "outcome": outcome,
        }
        if error is None:
            self.logger.debug(
                f"Tracking label on {kind} {namespace}/{name}: {outcome}", extra=fields
            )
            return
        fields["error_type"] = type(error).__name__
        self.logger.warning(
            f"Failed to apply tracking label to {kind} {namespace}/{name}: {error}",
            extra=fields,
        )
