"""
Client for the strip cache strategy.

Under the strip strategy the primary cache keeps every Secret and ConfigMap
but drops the payload of objects the operator does not track.
``ClientWrapper`` reads from that cache and goes live only when the cached
object looks stripped or untracked, stamping the tracking label on the way
so later reads are served in full from the cache.
"""

import logging
from typing import Any

from kubernetes import client

from argocd_operator.cacheutils import is_tracked_by_operator
from argocd_operator.hybridcache.labels import (
    LabelPatchOutcome,
    LabelPatchResult,
    TrackingLabel,
    enforce_tracking_label,
)
from argocd_operator.kube.client import CachedClient, LiveClient

logger = logging.getLogger(__name__)


def secret_needs_live_refresh(secret: client.V1Secret) -> bool:
    """A cached Secret needs a live read if it is untracked or has no payload."""
    if not is_tracked_by_operator(secret.metadata.labels if secret.metadata else None):
        return True
    # An empty Secret also matches; it costs one extra live read
    return secret.data is None and secret.string_data is None


def config_map_needs_live_refresh(config_map: client.V1ConfigMap) -> bool:
    """A cached ConfigMap needs a live read if it is untracked or has no payload."""
    labels = config_map.metadata.labels if config_map.metadata else None
    if not is_tracked_by_operator(labels):
        return True
    return config_map.data is None and config_map.binary_data is None


class ClientWrapper:
    """Cached client with live refresh for stripped Secrets and ConfigMaps."""

    refresh_checks = {
        client.V1Secret: secret_needs_live_refresh,
        client.V1ConfigMap: config_map_needs_live_refresh,
    }

    def __init__(
        self,
        cached: CachedClient,
        live: LiveClient,
        tracking_label: TrackingLabel = TrackingLabel(),
    ):
        self.cached = cached
        self.live = live
        self.scheme = cached.scheme
        self.tracking_label = tracking_label

    def get(self, model: type, name: str, namespace: str | None = None) -> Any:
        """
        Read from the cache, refreshing live if the object looks stripped.

        Errors from the cache read are returned as is; there is no live
        fallback for a missing object.
        """
        obj = self.cached.get(model, name, namespace)

        needs_refresh = self.refresh_checks.get(model)
        if needs_refresh is None or not needs_refresh(obj):
            return obj

        logger.debug(
            f"Refreshing {model.__name__} {namespace}/{name} from the API server",
            extra={"resource_name": name, "namespace": namespace, "operation": "get"},
        )
        obj = self.live.get(model, name, namespace)
        return self.ensure_tracked_label(obj).object

    def ensure_tracked_label(self, obj: Any) -> LabelPatchResult:
        """Stamp the tracking label unless the object is already operator-owned."""
        if is_tracked_by_operator(obj.metadata.labels):
            return LabelPatchResult(LabelPatchOutcome.ALREADY_LABELED, obj)
        return enforce_tracking_label(self.live, obj, self.tracking_label)

    def list(
        self,
        model: type,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> Any:
        return self.cached.list(model, namespace, label_selector)

    def create(self, obj: Any) -> Any:
        return self.cached.create(obj)

    def replace(self, obj: Any) -> Any:
        return self.cached.replace(obj)

    def patch(
        self, model: type, name: str, namespace: str | None, body: dict[str, Any]
    ) -> Any:
        return self.cached.patch(model, name, namespace, body)

    def delete(self, model: type, name: str, namespace: str | None = None) -> Any:
        return self.cached.delete(model, name, namespace)
