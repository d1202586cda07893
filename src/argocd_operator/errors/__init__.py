"""
Error handling module for the Argo CD operator.

This module provides an error hierarchy that integrates with kopf and
separates cache consistency failures from ordinary API errors.
"""

from .operator_errors import (
    CacheConstructionError,
    CacheError,
    CacheNotStartedError,
    CacheNotSyncedError,
    CacheStartError,
    CacheSyncError,
    ConfigurationError,
    KindNotCachedError,
    KindNotRegisteredError,
    NamespaceNotCachedError,
    OperatorError,
    PermanentError,
    StaleCacheError,
    TemporaryError,
)

__all__ = [
    "OperatorError",
    "TemporaryError",
    "PermanentError",
    "ConfigurationError",
    "CacheError",
    "StaleCacheError",
    "CacheNotStartedError",
    "CacheNotSyncedError",
    "CacheSyncError",
    "CacheStartError",
    "CacheConstructionError",
    "KindNotRegisteredError",
    "KindNotCachedError",
    "NamespaceNotCachedError",
]
