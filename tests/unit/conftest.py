"""Shared pytest fixtures for read path tests.

The fixtures model an API server (``FakeCluster``), an uncached client over
it (``FakeLiveClient``) and informer-like caches that only see changes when
``sync()`` is called (``FakeCache``), so tests control cache lag explicitly.
"""

import copy
from typing import Any

import pytest
from kubernetes import client

from argocd_operator.cacheutils import strip_untracked_data, to_partial_object_metadata
from argocd_operator.constants import TRACKING_LABEL_SELECTOR
from argocd_operator.hybridcache import HybridClient
from argocd_operator.kube.client import CachedClient
from argocd_operator.kube.scheme import new_scheme
from argocd_operator.kube.selectors import matches_label_selector
from argocd_operator.utils.kubernetes import new_not_found

RESTRICTED = (client.V1Secret, client.V1ConfigMap)


class FakeCluster:
    """Authoritative object store with a monotonically increasing resourceVersion."""

    def __init__(self, scheme):
        self.scheme = scheme
        self.objects: dict[tuple[type, str | None, str], Any] = {}
        self._resource_version = 0

    def put(self, obj: Any) -> Any:
        stored = copy.deepcopy(obj)
        self._resource_version += 1
        stored.metadata.resource_version = str(self._resource_version)
        self.objects[(type(stored), stored.metadata.namespace, stored.metadata.name)] = (
            stored
        )
        return copy.deepcopy(stored)

    def remove(self, model: type, name: str, namespace: str | None) -> None:
        self.objects.pop((model, namespace, name), None)

    def find(self, model: type, name: str, namespace: str | None) -> Any:
        obj = self.objects.get((model, namespace, name))
        if obj is None:
            kind = self.scheme.kind_for(model)
            raise new_not_found(kind.kind, f"{kind.resource.replace('_', '')}s", name)
        return copy.deepcopy(obj)


class FakeLiveClient:
    """Uncached client over a FakeCluster that records every call."""

    def __init__(self, cluster: FakeCluster):
        self.cluster = cluster
        self.scheme = cluster.scheme
        self.calls: list[tuple] = []
        self.get_error: Exception | None = None
        self.patch_error: Exception | None = None

    @property
    def patch_calls(self) -> list[tuple]:
        return [call for call in self.calls if call[0] == "patch"]

    @property
    def get_calls(self) -> list[tuple]:
        return [call for call in self.calls if call[0] == "get"]

    def get(self, model, name, namespace=None):
        self.calls.append(("get", model, name, namespace))
        if self.get_error is not None:
            raise self.get_error
        return self.cluster.find(model, name, namespace)

    def list(self, model, namespace=None, label_selector=None):
        self.calls.append(("list", model, namespace, label_selector))
        return [
            copy.deepcopy(obj)
            for (m, ns, _), obj in self.cluster.objects.items()
            if m is model and (namespace is None or ns == namespace)
        ]

    def patch(self, model, name, namespace, body):
        self.calls.append(("patch", model, name, namespace, body))
        if self.patch_error is not None:
            raise self.patch_error
        obj = self.cluster.find(model, name, namespace)
        labels = dict(obj.metadata.labels or {})
        for key, value in (body.get("metadata", {}).get("labels") or {}).items():
            if value is None:
                labels.pop(key, None)
            else:
                labels[key] = value
        obj.metadata.labels = labels
        return self.cluster.put(obj)

    def create(self, obj):
        self.calls.append(("create", obj))
        return self.cluster.put(obj)

    def replace(self, obj):
        self.calls.append(("replace", obj))
        return self.cluster.put(obj)

    def delete(self, model, name, namespace=None):
        self.calls.append(("delete", model, name, namespace))
        self.cluster.remove(model, name, namespace)


class FakeCache:
    """Informer-like snapshot of a FakeCluster, refreshed by ``sync()``."""

    def __init__(
        self,
        cluster: FakeCluster,
        name: str,
        kinds: tuple[type, ...] | None = None,
        label_selector: str | None = None,
        transforms: dict[type, Any] | None = None,
    ):
        self.cluster = cluster
        self.scheme = cluster.scheme
        self.name = name
        self.kinds = kinds
        self.label_selector = label_selector
        self.transforms = transforms or {}
        self.items: dict[tuple[type, str | None, str], Any] = {}
        self.errors: dict[type, Exception] = {}

    def serves(self, model: type) -> bool:
        return self.kinds is None or model in self.kinds

    def sync(self) -> None:
        self.items = {}
        for key, obj in self.cluster.objects.items():
            model = key[0]
            if self.kinds is not None and model not in self.kinds:
                continue
            if not matches_label_selector(obj.metadata.labels, self.label_selector):
                continue
            stored = copy.deepcopy(obj)
            transform = self.transforms.get(model)
            self.items[key] = transform(stored) if transform else stored

    def get(self, model, name, namespace=None):
        if model in self.errors:
            raise self.errors[model]
        obj = self.items.get((model, namespace, name))
        if obj is None:
            kind = self.scheme.kind_for(model)
            raise new_not_found(kind.kind, f"{kind.resource.replace('_', '')}s", name)
        return copy.deepcopy(obj)

    def list(self, model, namespace=None, label_selector=None):
        if model in self.errors:
            raise self.errors[model]
        return [
            copy.deepcopy(obj)
            for (m, ns, _), obj in self.items.items()
            if m is model
            and (namespace is None or ns == namespace)
            and matches_label_selector(obj.metadata.labels, label_selector)
        ]


@pytest.fixture
def scheme():
    """Core kind registry."""
    return new_scheme()


@pytest.fixture
def cluster(scheme):
    """Empty in-memory API server."""
    return FakeCluster(scheme)


@pytest.fixture
def live(cluster):
    """Uncached client over the fake cluster."""
    return FakeLiveClient(cluster)


@pytest.fixture
def make_cache(cluster):
    """Factory for extra FakeCache instances over the fake cluster."""

    def _make(name, **kwargs):
        return FakeCache(cluster, name, **kwargs)

    return _make


@pytest.fixture
def primary_cache(cluster):
    """Unfiltered cache holding metadata only for Secrets and ConfigMaps."""
    return FakeCache(
        cluster,
        "primary",
        transforms={model: to_partial_object_metadata for model in RESTRICTED},
    )


@pytest.fixture
def filtered_cache(cluster):
    """Full-object cache for tracked Secrets and ConfigMaps."""
    return FakeCache(
        cluster, "filtered", kinds=RESTRICTED, label_selector=TRACKING_LABEL_SELECTOR
    )


@pytest.fixture
def sync_caches(primary_cache, filtered_cache):
    """Bring both caches up to date with the cluster."""

    def _sync():
        primary_cache.sync()
        filtered_cache.sync()

    return _sync


@pytest.fixture
def hybrid_client(primary_cache, filtered_cache, live):
    """HybridClient wired over the fake caches and live client."""
    primary = CachedClient(primary_cache, writer=live)
    label_client = CachedClient(filtered_cache)
    return HybridClient(primary, label_client, live)


@pytest.fixture
def strip_cache(cluster):
    """Unfiltered cache that drops payload of untracked Secrets and ConfigMaps."""
    return FakeCache(
        cluster,
        "primary",
        transforms={model: strip_untracked_data for model in RESTRICTED},
    )
