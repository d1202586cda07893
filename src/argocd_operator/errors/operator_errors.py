"""
Errors raised by the Argo CD operator.

Every error carries a category and whether kopf should retry the handler
that raised it, and converts into the matching kopf exception with
``as_kopf_error``. Errors from the Kubernetes API server are not wrapped:
they reach callers as ``kubernetes.client.rest.ApiException``.
"""

import kopf

from argocd_operator.constants import (
    ERROR_CACHE_NOT_STARTED,
    ERROR_CACHE_SYNC_FAILED,
    ERROR_KIND_NOT_CACHED,
    ERROR_KIND_NOT_REGISTERED,
    ERROR_STALE_CACHE,
    STALE_CACHE_RETRY_DELAY,
)


class OperatorError(Exception):
    """
    Root of the operator's errors.

    Args:
        message: What went wrong
        category: cache, configuration, temporary or permanent
        retryable: Whether the handler should be retried by kopf
        delay: Seconds kopf waits before the retry
        user_action: Hint appended to the message for the operator's user
        cause: Exception this error was raised from, if any
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = True,
        delay: int = 30,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.delay = delay
        self.user_action = user_action
        self.cause = cause

    def as_kopf_error(self) -> kopf.TemporaryError | kopf.PermanentError:
        if not self.retryable:
            return kopf.PermanentError(str(self))
        return kopf.TemporaryError(str(self), delay=self.delay)

    def __str__(self) -> str:
        text = super().__str__()
        return f"{text}\nAction required: {self.user_action}" if self.user_action else text


class TemporaryError(OperatorError):
    """Retried by kopf after ``delay`` seconds."""

    def __init__(
        self,
        message: str,
        delay: int = 30,
        user_action: str | None = None,
        category: str = "temporary",
    ):
        super().__init__(
            message,
            category,
            retryable=True,
            delay=delay,
            user_action=user_action or "The operation is retried automatically",
        )


class PermanentError(OperatorError):
    """Not retried; the condition has to be fixed by hand."""

    def __init__(
        self,
        message: str,
        user_action: str | None = None,
        category: str = "permanent",
        cause: Exception | None = None,
    ):
        super().__init__(
            message,
            category,
            retryable=False,
            user_action=user_action or "Fix the cause and restart the operator",
            cause=cause,
        )


class ConfigurationError(OperatorError):
    """Invalid operator configuration."""

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message,
            "configuration",
            retryable=retryable,
            user_action=user_action or "Check the operator's environment settings",
            cause=cause,
        )


class CacheError(OperatorError):
    """Marker base for errors raised by the caching layer itself."""


class StaleCacheError(TemporaryError, CacheError):
    """
    The filtered cache returned an object older or newer than the API server.

    Raised only when the cached resourceVersion disagrees with the metadata
    probe taken in the same read. The read is not retried internally.
    """

    def __init__(
        self,
        kind: str,
        namespace: str | None,
        name: str,
        cached_resource_version: str | None,
        probe_resource_version: str | None,
    ):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.cached_resource_version = cached_resource_version
        self.probe_resource_version = probe_resource_version
        super().__init__(
            message=ERROR_STALE_CACHE.format(namespace or "", name),
            delay=STALE_CACHE_RETRY_DELAY,
            user_action=(
                f"{kind} cached at resourceVersion {cached_resource_version}, "
                f"API server reports {probe_resource_version}; requeue and retry"
            ),
            category="cache",
        )


class CacheNotStartedError(TemporaryError, CacheError):
    """A read was issued against a cache that is not running."""

    def __init__(self, cache_name: str):
        self.cache_name = cache_name
        super().__init__(
            message=ERROR_CACHE_NOT_STARTED.format(cache_name),
            delay=5,
            category="cache",
        )


class CacheSyncError(PermanentError, CacheError):
    """Initial cache synchronization did not complete."""

    def __init__(self, cache_name: str, message: str | None = None):
        self.cache_name = cache_name
        super().__init__(
            message=message or ERROR_CACHE_SYNC_FAILED.format(cache_name),
            user_action="Check RBAC permissions for list/watch and API server connectivity",
            category="cache",
        )


class CacheStartError(PermanentError, CacheError):
    """The cache failed to start after its initial synchronization."""

    def __init__(self, cache_name: str, cause: Exception | None = None):
        self.cache_name = cache_name
        super().__init__(
            message=f"The {cache_name} cache failed to start: {cause}",
            category="cache",
            cause=cause,
        )


class CacheConstructionError(ConfigurationError, CacheError):
    """The filtered cache or its client could not be constructed."""


class KindNotRegisteredError(ConfigurationError):
    """A model class was used that the scheme does not know about."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(
            message=ERROR_KIND_NOT_REGISTERED.format(kind),
            user_action="Register the kind in the scheme before building caches",
        )


class KindNotCachedError(ConfigurationError, CacheError):
    """A kind was requested from a cache restricted to other kinds."""

    def __init__(self, kind: str, cache_name: str):
        self.kind = kind
        self.cache_name = cache_name
        super().__init__(message=ERROR_KIND_NOT_CACHED.format(kind, cache_name))


class CacheNotSyncedError(TemporaryError, CacheError):
    """An informer did not finish its initial list in time to serve a read."""

    def __init__(self, cache_name: str, kind: str):
        self.cache_name = cache_name
        self.kind = kind
        super().__init__(
            message=f"The {cache_name} cache has not synchronized {kind} objects yet",
            delay=10,
            category="cache",
        )


class NamespaceNotCachedError(ConfigurationError, CacheError):
    """A read targeted a namespace the cache does not watch."""

    def __init__(self, cache_name: str, namespace: str | None):
        self.cache_name = cache_name
        self.namespace = namespace
        super().__init__(
            message=f"Namespace '{namespace}' is not watched by the {cache_name} cache",
            user_action="Add the namespace to WATCH_NAMESPACE or read it live",
        )
