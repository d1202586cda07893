"""
Tracking label enforcement.

Stamping the tracking label on a Secret or ConfigMap makes it visible to the
label-filtered cache on its next sync. Enforcement is best-effort: its
outcome is returned as a ``LabelPatchResult`` and never raised.
"""

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any

from argocd_operator.cacheutils import has_tracking_label
from argocd_operator.constants import (
    TRACKED_BY_OPERATOR_LABEL,
    TRACKED_BY_OPERATOR_VALUE,
)
from argocd_operator.kube.client import LiveClient
from argocd_operator.observability.logging import OperatorLogger
from argocd_operator.observability.metrics import metrics_collector
from argocd_operator.utils.kubernetes import create_merge_patch

logger = OperatorLogger(__name__)


@dataclass(frozen=True)
class TrackingLabel:
    """Label key/value that marks an object as tracked by the operator."""

    key: str = TRACKED_BY_OPERATOR_LABEL
    value: str = TRACKED_BY_OPERATOR_VALUE

    @property
    def selector(self) -> str:
        return f"{self.key}={self.value}"

    def is_present(self, obj: Any) -> bool:
        metadata = getattr(obj, "metadata", None)
        return has_tracking_label(
            metadata.labels if metadata else None, self.key, self.value
        )


class LabelPatchOutcome(str, Enum):
    ALREADY_LABELED = "already_labeled"
    PATCHED = "patched"
    FAILED = "failed"


@dataclass(frozen=True)
class LabelPatchResult:
    """Outcome of one tracking label enforcement."""

    outcome: LabelPatchOutcome
    object: Any
    patch: dict[str, Any] | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is not LabelPatchOutcome.FAILED

    @property
    def wrote(self) -> bool:
        return self.patch is not None


def enforce_tracking_label(
    writer: LiveClient, obj: Any, label: TrackingLabel = TrackingLabel()
) -> LabelPatchResult:
    """
    Ensure ``obj`` carries ``label`` on the API server.

    If the label is already present with the expected value nothing is
    written. Otherwise a merge patch holding only the label change is
    computed against a snapshot of ``obj`` and sent through ``writer``.
    ``obj`` itself is never modified.

    Args:
        writer: Live client used for the patch
        obj: Object as read from the API server
        label: Tracking label to enforce

    Returns:
        LabelPatchResult; on success ``object`` is the patched object,
        otherwise it is ``obj``
    """
    kind = writer.scheme.kind_for(obj).kind
    if label.is_present(obj):
        metrics_collector.record_label_patch(kind, LabelPatchOutcome.ALREADY_LABELED.value)
        return LabelPatchResult(LabelPatchOutcome.ALREADY_LABELED, obj)

    snapshot = copy.deepcopy(obj)
    modified = copy.deepcopy(obj)
    modified.metadata.labels = {**(obj.metadata.labels or {}), label.key: label.value}
    patch = create_merge_patch(snapshot, modified)

    name, namespace = obj.metadata.name, obj.metadata.namespace
    try:
        patched = writer.patch(type(obj), name, namespace, patch)
    except Exception as e:
        logger.log_label_patch(
            kind, name, namespace, LabelPatchOutcome.FAILED.value, error=e
        )
        metrics_collector.record_label_patch(kind, LabelPatchOutcome.FAILED.value)
        return LabelPatchResult(LabelPatchOutcome.FAILED, obj, patch, e)

    logger.log_label_patch(kind, name, namespace, LabelPatchOutcome.PATCHED.value)
    metrics_collector.record_label_patch(kind, LabelPatchOutcome.PATCHED.value)
    return LabelPatchResult(LabelPatchOutcome.PATCHED, patched, patch)
