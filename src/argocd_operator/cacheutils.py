"""
Cache transforms and tracking predicates for Secrets and ConfigMaps.

Objects of these kinds can be large and carry credentials, so the operator
avoids keeping their payload in memory unless it tracks them:
- ``to_partial_object_metadata`` keeps identity and resourceVersion only
- ``strip_untracked_data`` clears payload of objects the operator does not track
- ``is_tracked_by_operator`` decides which objects count as tracked
"""

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from kubernetes import client

from argocd_operator.constants import (
    ARGOCD_SECRET_TYPE_LABEL,
    TRACKED_BY_OPERATOR_LABEL,
    TRACKED_BY_OPERATOR_VALUE,
)


@dataclass
class PartialObjectMetadata:
    """Metadata-only projection of an object; never holds payload."""

    api_version: str
    kind: str
    metadata: client.V1ObjectMeta = field(default_factory=client.V1ObjectMeta)

    @property
    def resource_version(self) -> str | None:
        return self.metadata.resource_version if self.metadata else None


def to_partial_object_metadata(obj: Any) -> PartialObjectMetadata:
    """
    Project an object onto its metadata.

    Args:
        obj: Typed Kubernetes model with ``metadata``

    Returns:
        Projection carrying a copy of the object's metadata
    """
    if isinstance(obj, PartialObjectMetadata):
        return obj
    return PartialObjectMetadata(
        api_version=getattr(obj, "api_version", None) or "v1",
        kind=getattr(obj, "kind", None) or type(obj).__name__.removeprefix("V1"),
        metadata=copy.deepcopy(obj.metadata) or client.V1ObjectMeta(),
    )


def is_tracked_by_operator(labels: Mapping[str, str] | None) -> bool:
    """
    Check whether an object's labels mark it as tracked by the operator.

    An object is tracked if it carries the operator tracking label or the
    Argo CD secret-type label (cluster and repository secrets).
    """
    if not labels:
        return False
    return TRACKED_BY_OPERATOR_LABEL in labels or ARGOCD_SECRET_TYPE_LABEL in labels


def has_tracking_label(
    labels: Mapping[str, str] | None,
    key: str = TRACKED_BY_OPERATOR_LABEL,
    value: str = TRACKED_BY_OPERATOR_VALUE,
) -> bool:
    """Return True if the tracking label is present with the exact value."""
    return bool(labels) and labels.get(key) == value


def strip_untracked_data(obj: Any) -> Any:
    """
    Clear payload fields of Secrets/ConfigMaps the operator does not track.

    Other object types, and tracked objects, are returned unchanged.
    """
    labels = obj.metadata.labels if getattr(obj, "metadata", None) else None
    if is_tracked_by_operator(labels):
        return obj

    if isinstance(obj, client.V1Secret):
        obj.data = None
        obj.string_data = None
    elif isinstance(obj, client.V1ConfigMap):
        obj.data = None
        obj.binary_data = None
    return obj
