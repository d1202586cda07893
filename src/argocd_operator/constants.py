"""
Constants used throughout the Argo CD operator.

This module defines all constant values used by the read path including:
- The tracking label that makes objects eligible for the filtered cache
- Argo CD labels recognised as operator-owned
- Cache names and default timings
"""

# Application name used as the owner identity in labels
ARGOCD_APP_NAME = "argocd"

# Tracking label stamped on Secrets/ConfigMaps read through the live path
TRACKED_BY_OPERATOR_LABEL = "operator.argoproj.io/tracked-by"
TRACKED_BY_OPERATOR_VALUE = ARGOCD_APP_NAME
TRACKING_LABEL_SELECTOR = f"{TRACKED_BY_OPERATOR_LABEL}={TRACKED_BY_OPERATOR_VALUE}"

# Argo CD label that also marks a Secret as operator-relevant
ARGOCD_SECRET_TYPE_LABEL = "argocd.argoproj.io/secret-type"

# Cache names (used in logs, metrics and health output)
PRIMARY_CACHE_NAME = "primary"
FILTERED_CACHE_NAME = "filtered"

# Cache strategies
CACHE_STRATEGY_HYBRID = "hybrid"
CACHE_STRATEGY_STRIP = "strip"
CACHE_STRATEGY_FULL = "full"

# Read paths reported by the hybrid client
READ_PATH_DELEGATED = "delegated"
READ_PATH_CACHE_HIT = "cache_hit"
READ_PATH_LIVE_FALLBACK = "live_fallback"
READ_PATH_STALE = "stale"
READ_PATH_NOT_FOUND = "not_found"
READ_PATH_ERROR = "error"

# Informer defaults (in seconds)
DEFAULT_CACHE_SYNC_TIMEOUT = 120
DEFAULT_RESYNC_PERIOD = 600
DEFAULT_WATCH_TIMEOUT = 300
DEFAULT_MAX_BACKOFF = 30.0
INFORMER_JOIN_TIMEOUT = 5.0

# Retry delay suggested to reconcilers after a stale cache read
STALE_CACHE_RETRY_DELAY = 5

# Error message templates
ERROR_STALE_CACHE = "stale cache entry for {}/{}"
ERROR_KIND_NOT_REGISTERED = "Kind '{}' is not registered in the scheme"
ERROR_KIND_NOT_CACHED = "Kind '{}' is not served by the {} cache"
ERROR_CACHE_NOT_STARTED = "The {} cache has not been started"
ERROR_CACHE_SYNC_FAILED = "Timed out waiting for the {} cache to sync"
