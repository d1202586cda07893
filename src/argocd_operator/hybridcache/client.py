"""
Hybrid read client.

``HybridClient`` wraps the primary cached client. Kinds registered as
restricted (Secret and ConfigMap by default) take the hybrid read path;
every other kind, and every write, is delegated to the primary client
unchanged.

Get on a restricted kind:

1. Probe the primary cache, which holds metadata only for restricted kinds.
   A 404 here means the object does not exist and is returned as is.
2. Read the label-filtered cache. If it holds the object, its
   resourceVersion must equal the probe's; a mismatch raises
   ``StaleCacheError``.
3. On a filtered-cache miss, read live and stamp the tracking label so the
   object is picked up by the filtered cache from now on.

List on a restricted kind returns metadata-only items from the primary
cache, wrapped in the kind's typed list model.
"""

import time
from collections.abc import Callable
from typing import Any

from kubernetes import client

from argocd_operator.constants import (
    READ_PATH_CACHE_HIT,
    READ_PATH_DELEGATED,
    READ_PATH_ERROR,
    READ_PATH_LIVE_FALLBACK,
    READ_PATH_NOT_FOUND,
    READ_PATH_STALE,
)
from argocd_operator.errors import ConfigurationError, StaleCacheError
from argocd_operator.hybridcache.labels import (
    LabelPatchResult,
    TrackingLabel,
    enforce_tracking_label,
)
from argocd_operator.kube.client import CachedClient, LiveClient, build_list
from argocd_operator.kube.scheme import ResourceKind
from argocd_operator.observability.logging import OperatorLogger
from argocd_operator.observability.metrics import metrics_collector
from argocd_operator.observability.tracing import get_tracer, read_span, tag_read_path
from argocd_operator.utils.kubernetes import is_not_found

logger = OperatorLogger(__name__)
tracer = get_tracer(__name__)

RESTRICTED_KINDS: tuple[type, ...] = (client.V1Secret, client.V1ConfigMap)

GetHandler = Callable[[ResourceKind, str, str | None], Any]
ListHandler = Callable[[ResourceKind, str | None, str | None], Any]


class HybridClient:
    """Cached client with a label-filtered full-object path for restricted kinds."""

    def __init__(
        self,
        primary: CachedClient,
        label_client: CachedClient,
        live: LiveClient,
        restricted_kinds: tuple[type, ...] = RESTRICTED_KINDS,
        tracking_label: TrackingLabel = TrackingLabel(),
    ):
        """
        Initialize hybrid client.

        The same ``restricted_kinds`` must be used to build the primary cache
        (metadata-only projection) and the filtered cache; ``build_read_path``
        passes one tuple to all three.

        Args:
            primary: Client over the primary cache; metadata-only for
                restricted kinds
            label_client: Client over the label-filtered cache
            live: Uncached client used for fallback reads and label patches
            restricted_kinds: Models that take the hybrid read path
            tracking_label: Label that admits objects to the filtered cache

        Raises:
            KindNotRegisteredError: If a restricted model is not in the scheme
            ConfigurationError: If the filtered cache does not serve a
                restricted model
        """
        self.primary = primary
        self.label_client = label_client
        self.live = live
        self.scheme = primary.scheme
        self.tracking_label = tracking_label
        self._get_handlers: dict[type, GetHandler] = {}
        self._list_handlers: dict[type, ListHandler] = {}
        for model in restricted_kinds:
            self._register_restricted(model)

    def _register_restricted(self, model: type) -> None:
        kind = self.scheme.kind_for(model)
        if not self.label_client.cache.serves(model):
            raise ConfigurationError(
                f"The {self.label_client.cache.name} cache does not serve {kind.kind}; "
                f"build it with the same restricted kinds as the hybrid client"
            )
        self._get_handlers[model] = self._get_restricted
        self._list_handlers[model] = self._list_metadata_only

    @property
    def restricted_kinds(self) -> tuple[type, ...]:
        return tuple(self._get_handlers)

    def is_restricted(self, model: type) -> bool:
        return model in self._get_handlers

    def get(self, model: type, name: str, namespace: str | None = None) -> Any:
        """
        Read one object.

        Raises:
            ApiException: 404 if the object does not exist, or any error
                from the caches or the API server
            StaleCacheError: If the filtered cache is behind the primary cache
        """
        kind = self.scheme.kind_for(model)
        handler = self._get_handlers.get(model, self._get_delegated)
        with read_span(tracer, "get", kind.kind, namespace, name):
            return handler(kind, name, namespace)

    def list(
        self,
        model: type,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> Any:
        """
        List objects as the kind's typed list model.

        Items of restricted kinds carry metadata only.
        """
        kind = self.scheme.kind_for(model)
        handler = self._list_handlers.get(model, self._list_delegated)
        with read_span(tracer, "list", kind.kind, namespace):
            return handler(kind, namespace, label_selector)

    def ensure_tracking_label(self, obj: Any) -> LabelPatchResult:
        """
        Make sure a live object carries the tracking label.

        Never raises for patch failures; see ``LabelPatchResult``.
        """
        return enforce_tracking_label(self.live, obj, self.tracking_label)

    def create(self, obj: Any) -> Any:
        return self.primary.create(obj)

    def replace(self, obj: Any) -> Any:
        return self.primary.replace(obj)

    def patch(
        self, model: type, name: str, namespace: str | None, body: dict[str, Any]
    ) -> Any:
        return self.primary.patch(model, name, namespace, body)

    def delete(self, model: type, name: str, namespace: str | None = None) -> Any:
        return self.primary.delete(model, name, namespace)

    def _get_delegated(self, kind: ResourceKind, name: str, namespace: str | None) -> Any:
        start = time.monotonic()
        try:
            obj = self.primary.get(kind.model, name, namespace)
        except Exception as e:
            self._record_failure(kind, "get", name, namespace, "primary_cache", e, start)
            raise
        self._record(kind, "get", name, namespace, READ_PATH_DELEGATED, start)
        return obj

    def _get_restricted(self, kind: ResourceKind, name: str, namespace: str | None) -> Any:
        start = time.monotonic()

        try:
            probe = self.primary.get(kind.model, name, namespace)
        except Exception as e:
            self._record_failure(kind, "get", name, namespace, "metadata_probe", e, start)
            raise

        try:
            cached = self.label_client.get(kind.model, name, namespace)
        except Exception as e:
            if not is_not_found(e):
                self._record_failure(kind, "get", name, namespace, "filtered_cache", e, start)
                raise
            cached = None

        if cached is not None:
            cached_version = cached.metadata.resource_version
            probe_version = probe.metadata.resource_version
            if cached_version != probe_version:
                self._record(kind, "get", name, namespace, READ_PATH_STALE, start)
                raise StaleCacheError(
                    kind.kind, namespace, name, cached_version, probe_version
                )
            self._record(kind, "get", name, namespace, READ_PATH_CACHE_HIT, start)
            return cached

        try:
            obj = self.live.get(kind.model, name, namespace)
        except Exception as e:
            self._record_failure(kind, "get", name, namespace, "live_read", e, start)
            raise

        result = self.ensure_tracking_label(obj)
        self._record(kind, "get", name, namespace, READ_PATH_LIVE_FALLBACK, start)
        return result.object

    def _list_delegated(
        self, kind: ResourceKind, namespace: str | None, label_selector: str | None
    ) -> Any:
        start = time.monotonic()
        result = self.primary.list(kind.model, namespace, label_selector)
        self._record(kind, "list", None, namespace, READ_PATH_DELEGATED, start)
        return result

    def _list_metadata_only(
        self, kind: ResourceKind, namespace: str | None, label_selector: str | None
    ) -> Any:
        start = time.monotonic()
        partials = self.primary.cache.list(kind.model, namespace, label_selector)
        items = [
            kind.model(api_version=kind.api_version, kind=kind.kind, metadata=partial.metadata)
            for partial in partials
        ]
        self._record(kind, "list", None, namespace, READ_PATH_DELEGATED, start)
        return build_list(kind, items)

    def _record(
        self,
        kind: ResourceKind,
        operation: str,
        name: str | None,
        namespace: str | None,
        path: str,
        start: float,
    ) -> None:
        duration = time.monotonic() - start
        tag_read_path(path)
        metrics_collector.record_hybrid_read(kind.kind, operation, path, duration)
        logger.log_read(operation, kind.kind, name, namespace, path, duration)

    def _record_failure(
        self,
        kind: ResourceKind,
        operation: str,
        name: str | None,
        namespace: str | None,
        stage: str,
        error: Exception,
        start: float,
    ) -> None:
        path = READ_PATH_NOT_FOUND if is_not_found(error) else READ_PATH_ERROR
        tag_read_path(path)
        metrics_collector.record_hybrid_read(
            kind.kind, operation, path, time.monotonic() - start
        )
        logger.log_read_error(operation, kind.kind, name, namespace, stage, error)
