"""Operator settings, read from the environment with pydantic-settings.

Every field names the environment variable it is read from. Values are
validated and coerced once, when the module-level ``settings`` object is
created at import time.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from argocd_operator.constants import (
    CACHE_STRATEGY_FULL,
    DEFAULT_CACHE_SYNC_TIMEOUT,
    DEFAULT_RESYNC_PERIOD,
    DEFAULT_WATCH_TIMEOUT,
)


class Settings(BaseSettings):
    """Configuration of the operator process and its read path."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    operator_name: str = Field(
        default="argocd-operator",
        validation_alias="OPERATOR_NAME",
        description="Name reported by the liveness and readiness probes",
    )

    # Scope
    namespaces: str = Field(
        default="",
        validation_alias="WATCH_NAMESPACE",
        description="Comma-separated namespaces every cache watches; empty watches the cluster",
    )

    # Read path
    memory_optimization_enabled: bool = Field(
        default=True,
        validation_alias="MEMORY_OPTIMIZATION_ENABLED",
        description="When false, Secrets and ConfigMaps are cached in full",
    )
    cache_strategy: Literal["hybrid", "strip", "full"] = Field(
        default="hybrid",
        validation_alias="CACHE_STRATEGY",
        description="How Secrets and ConfigMaps are cached",
    )
    cache_sync_timeout_seconds: float = Field(
        default=DEFAULT_CACHE_SYNC_TIMEOUT,
        gt=0,
        validation_alias="CACHE_SYNC_TIMEOUT_SECONDS",
        description="Startup fails if a cache has not synced within this time",
    )
    cache_resync_period_seconds: float = Field(
        default=DEFAULT_RESYNC_PERIOD,
        gt=0,
        validation_alias="CACHE_RESYNC_PERIOD_SECONDS",
        description="Interval between full relists of every informer",
    )
    cache_watch_timeout_seconds: int = Field(
        default=DEFAULT_WATCH_TIMEOUT,
        gt=0,
        validation_alias="CACHE_WATCH_TIMEOUT_SECONDS",
        description="Server-side timeout of a single watch request",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root log level",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Emit one JSON document per log record",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Stamp log records with a correlation ID",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Keep access log lines for probe and scrape endpoints",
    )

    # Metrics and tracing
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port of the metrics and health server",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Interface the metrics and health server binds to",
    )
    tracing_enabled: bool = Field(
        default=False,
        validation_alias="OTEL_TRACING_ENABLED",
        description="Export OpenTelemetry spans",
    )
    tracing_endpoint: str = Field(
        default="http://localhost:4317",
        validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT",
        description="OTLP/gRPC collector endpoint",
    )
    tracing_sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        validation_alias="OTEL_TRACES_SAMPLER_ARG",
        description="Ratio of root spans sampled",
    )

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def watched_namespaces(self) -> list[str] | None:
        """Namespaces from ``WATCH_NAMESPACE``, or None for cluster scope."""
        names = [name.strip() for name in self.namespaces.split(",")]
        return [name for name in names if name] or None

    @property
    def effective_cache_strategy(self) -> str:
        """``cache_strategy``, unless memory optimization is switched off."""
        if not self.memory_optimization_enabled:
            return CACHE_STRATEGY_FULL
        return self.cache_strategy


settings = Settings()
