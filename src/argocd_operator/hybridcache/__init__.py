"""
Hybrid label-filtered read path for Secrets and ConfigMaps.

Reads of restricted kinds go through three steps: a metadata probe against
the unfiltered metadata-only cache, an attempt against the label-filtered
full-object cache validated by resourceVersion, and a live read that stamps
the tracking label so the next read can be served from the filtered cache.
"""

from .builder import new_filtered_cache, new_primary_cache
from .client import RESTRICTED_KINDS, HybridClient
from .labels import LabelPatchOutcome, LabelPatchResult, TrackingLabel
from .supervisor import CacheRunnable

__all__ = [
    "RESTRICTED_KINDS",
    "CacheRunnable",
    "HybridClient",
    "LabelPatchOutcome",
    "LabelPatchResult",
    "TrackingLabel",
    "new_filtered_cache",
    "new_primary_cache",
]
