"""
OpenTelemetry tracing for the Argo CD operator.

Tracing is off unless enabled in settings. When on, spans go to an OTLP/gRPC
collector and root spans are sampled at the configured ratio. Each hybrid
client call runs inside a ``read_span``; the path that served the read is
attached to the span with ``tag_read_path`` once it is known.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Span, Tracer

logger = logging.getLogger(__name__)

SERVICE_NAMESPACE = "argocd-operator"
READ_PATH_ATTRIBUTE = "argocd.read_path"

_provider: TracerProvider | None = None
_configured = False


def setup_tracing(
    enabled: bool = False,
    endpoint: str = "http://localhost:4317",
    service_name: str = "argocd-operator",
    sample_rate: float = 1.0,
    insecure: bool = True,
    headers: dict[str, str] | None = None,
    use_simple_processor: bool = False,
) -> TracerProvider | None:
    """
    Install the global tracer provider.

    Only the first call has an effect until ``shutdown_tracing``; later
    calls return the provider installed by the first one.

    Args:
        enabled: When False nothing is installed and tracers are no-ops
        endpoint: OTLP collector endpoint (gRPC)
        service_name: ``service.name`` resource attribute
        sample_rate: Ratio of root spans to sample (0.0-1.0)
        insecure: Connect to the collector without TLS
        headers: Extra metadata sent with every export
        use_simple_processor: Export each span as it ends instead of batching

    Returns:
        The installed TracerProvider, or None when disabled
    """
    global _provider, _configured

    if _configured:
        return _provider
    _configured = True

    if not enabled:
        logger.info("Tracing disabled")
        return None

    exporter = OTLPSpanExporter(
        endpoint=endpoint,
        insecure=insecure,
        headers=headers or {},
    )
    processor_class = SimpleSpanProcessor if use_simple_processor else BatchSpanProcessor
    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": service_name, "service.namespace": SERVICE_NAMESPACE}
        ),
        sampler=ParentBased(root=TraceIdRatioBased(sample_rate)),
    )
    provider.add_span_processor(processor_class(exporter))
    trace.set_tracer_provider(provider)
    _provider = provider

    logger.info(
        f"Exporting traces to {endpoint} as {service_name} (sample rate {sample_rate})"
    )
    return provider


def shutdown_tracing() -> None:
    """Flush pending spans and allow ``setup_tracing`` to run again."""
    global _provider, _configured

    provider, _provider, _configured = _provider, None, False
    if provider is not None:
        logger.info("Flushing and shutting down tracing")
        provider.shutdown()


def get_tracer(name: str = __name__) -> Tracer:
    """Tracer from the global provider; a no-op tracer while tracing is off."""
    return trace.get_tracer(name)


@contextmanager
def read_span(
    tracer: Tracer,
    operation: str,
    kind: str,
    namespace: str | None,
    name: str | None = None,
) -> Iterator[Span]:
    """Span around one client read, tagged with the target object."""
    attributes = {"k8s.kind": kind, "k8s.namespace": namespace or ""}
    if name is not None:
        attributes["k8s.name"] = name
    with tracer.start_as_current_span(
        f"hybrid.{operation}", attributes=attributes
    ) as span:
        yield span


def tag_read_path(path: str) -> None:
    trace.get_current_span().set_attribute(READ_PATH_ATTRIBUTE, path)
