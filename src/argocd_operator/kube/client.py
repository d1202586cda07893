"""
Clients over the Kubernetes API and the informer cache.

- ``LiveClient`` talks to the API server for every call (no caching).
- ``CachedClient`` serves reads from an ``InformerCache`` and sends writes
  through a ``LiveClient``.

Both expose the same read interface: ``get(model, name, namespace)``
returning a typed object and ``list(model, namespace, label_selector)``
returning the kind's typed list model. API errors, including 404, propagate
as ``ApiException``.
"""

import logging
from typing import Any

from kubernetes import client

from argocd_operator.errors import ConfigurationError
from argocd_operator.kube.cache import InformerCache
from argocd_operator.kube.scheme import ResourceKind, Scheme

logger = logging.getLogger(__name__)


class LiveClient:
    """Uncached client; every call is an API server round trip."""

    def __init__(self, api_client: client.ApiClient, scheme: Scheme):
        """
        Initialize live client.

        Args:
            api_client: Configured Kubernetes API client
            scheme: Registry used to route models to typed API methods
        """
        self.api_client = api_client
        self.scheme = scheme
        self._apis: dict[type, Any] = {}

    def _api(self, kind: ResourceKind) -> Any:
        api = self._apis.get(kind.api_class)
        if api is None:
            api = kind.api_class(self.api_client)
            self._apis[kind.api_class] = api
        return api

    def _call(self, kind: ResourceKind, verb: str, namespace: str | None, **kwargs):
        all_namespaces = verb == "list" and namespace is None
        method = getattr(self._api(kind), kind.method_name(verb, all_namespaces))
        if kind.namespaced and not all_namespaces:
            kwargs["namespace"] = namespace
        return method(**kwargs)

    def get(self, model: type, name: str, namespace: str | None = None) -> Any:
        kind = self.scheme.kind_for(model)
        return self._call(kind, "read", namespace, name=name)

    def list(
        self,
        model: type,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> Any:
        kind = self.scheme.kind_for(model)
        kwargs = {"label_selector": label_selector} if label_selector else {}
        return self._call(kind, "list", namespace, **kwargs)

    def create(self, obj: Any) -> Any:
        kind = self.scheme.kind_for(obj)
        return self._call(kind, "create", obj.metadata.namespace, body=obj)

    def replace(self, obj: Any) -> Any:
        kind = self.scheme.kind_for(obj)
        return self._call(
            kind, "replace", obj.metadata.namespace, name=obj.metadata.name, body=obj
        )

    def patch(
        self, model: type, name: str, namespace: str | None, body: dict[str, Any]
    ) -> Any:
        """
        Apply a patch. Dict bodies are sent as merge-style patches.

        Args:
            model: Model class of the patched kind
            name: Object name
            namespace: Object namespace
            body: Patch document
        """
        kind = self.scheme.kind_for(model)
        return self._call(kind, "patch", namespace, name=name, body=body)

    def delete(self, model: type, name: str, namespace: str | None = None) -> Any:
        kind = self.scheme.kind_for(model)
        return self._call(kind, "delete", namespace, name=name)


class CachedClient:
    """Reads from an informer cache; writes go live."""

    def __init__(self, cache: InformerCache, writer: LiveClient | None = None):
        """
        Bind a client to a cache.

        Args:
            cache: Cache serving reads
            writer: Live client for writes; None makes the client read-only

        Raises:
            ConfigurationError: If the writer uses a different scheme
        """
        if writer is not None and writer.scheme is not cache.scheme:
            raise ConfigurationError(
                f"Writer scheme does not match the {cache.name} cache scheme"
            )
        self.cache = cache
        self.scheme = cache.scheme
        self.writer = writer

    def get(self, model: type, name: str, namespace: str | None = None) -> Any:
        return self.cache.get(model, name, namespace)

    def list(
        self,
        model: type,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> Any:
        kind = self.scheme.kind_for(model)
        items = self.cache.list(model, namespace, label_selector)
        return build_list(kind, items)

    def _require_writer(self) -> LiveClient:
        if self.writer is None:
            raise ConfigurationError(f"The {self.cache.name} cache client is read-only")
        return self.writer

    def create(self, obj: Any) -> Any:
        return self._require_writer().create(obj)

    def replace(self, obj: Any) -> Any:
        return self._require_writer().replace(obj)

    def patch(
        self, model: type, name: str, namespace: str | None, body: dict[str, Any]
    ) -> Any:
        return self._require_writer().patch(model, name, namespace, body)

    def delete(self, model: type, name: str, namespace: str | None = None) -> Any:
        return self._require_writer().delete(model, name, namespace)


def build_list(kind: ResourceKind, items: list[Any]) -> Any:
    """Wrap items in the kind's typed list model."""
    return kind.list_model(
        api_version=kind.api_version,
        kind=kind.list_kind,
        items=items,
        metadata=client.V1ListMeta(),
    )
