"""
Informer cache over many kinds and namespaces.

``InformerCache`` owns one ``Informer`` per (kind, namespace) pair. Kinds
configured through ``by_kind`` get informers at construction time, so the
initial sync barrier covers them; other registered kinds get informers the
first time they are read, unless the cache is restricted to ``by_kind``.

Lifecycle is explicit: ``run(stop)`` starts every informer and returns once
the stop event fires; ``wait_for_cache_sync`` is a one-shot barrier.
"""

import asyncio
import builtins
import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from kubernetes import client

from argocd_operator.constants import (
    DEFAULT_CACHE_SYNC_TIMEOUT,
    DEFAULT_RESYNC_PERIOD,
    DEFAULT_WATCH_TIMEOUT,
    INFORMER_JOIN_TIMEOUT,
)
from argocd_operator.errors import (
    CacheNotStartedError,
    CacheNotSyncedError,
    KindNotCachedError,
    NamespaceNotCachedError,
)
from argocd_operator.kube.informer import Informer
from argocd_operator.kube.scheme import ResourceKind, Scheme
from argocd_operator.kube.selectors import parse_label_selector
from argocd_operator.observability.metrics import metrics_collector
from argocd_operator.utils.kubernetes import new_not_found

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ByKind:
    """Per-kind cache options."""

    label_selector: str | None = None
    transform: Callable[[Any], Any] | None = None


class InformerCache:
    """Read-through store backed by informers."""

    def __init__(
        self,
        api_client: client.ApiClient,
        scheme: Scheme,
        name: str = "cache",
        namespaces: list[str] | None = None,
        by_kind: Mapping[type, ByKind] | None = None,
        restrict_to_by_kind: bool = False,
        resync_period_seconds: float = DEFAULT_RESYNC_PERIOD,
        watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT,
        sync_timeout_seconds: float = DEFAULT_CACHE_SYNC_TIMEOUT,
    ):
        """
        Initialize the cache. No API calls are made until ``run``.

        Args:
            api_client: Kubernetes API client used by every informer
            scheme: Registry of kinds this cache may serve
            name: Cache name used in logs, metrics and errors
            namespaces: Namespaces to watch, None for cluster scope
            by_kind: Options for kinds to inform eagerly
            restrict_to_by_kind: Serve only the kinds listed in ``by_kind``
            resync_period_seconds: Interval between full relists
            watch_timeout_seconds: Server-side timeout per watch request
            sync_timeout_seconds: Wait limit for lazily created informers

        Raises:
            KindNotRegisteredError: If a ``by_kind`` model is not in the scheme
            ConfigurationError: If a ``by_kind`` label selector is malformed
        """
        self.name = name
        self.scheme = scheme
        self.namespaces = list(namespaces) if namespaces else None
        self.restrict_to_by_kind = restrict_to_by_kind
        self.resync_period_seconds = resync_period_seconds
        self.watch_timeout_seconds = watch_timeout_seconds
        self.sync_timeout_seconds = sync_timeout_seconds
        self._api_client = api_client
        self._by_kind: dict[type, ByKind] = {}
        for model, options in (by_kind or {}).items():
            scheme.kind_for(model)
            parse_label_selector(options.label_selector)
            self._by_kind[model] = options

        self._informers: dict[tuple[type, str | None], Informer] = {}
        self._lock = threading.Lock()
        # Set once start has been attempted, successfully or not
        self._start_done = threading.Event()
        self._started = False
        self._stopped = False
        self._start_error: Exception | None = None

        for model in self._by_kind:
            self._informers_for(scheme.kind_for(model))

    @property
    def started(self) -> bool:
        return self._started and not self._stopped

    def kinds(self) -> list[type]:
        """Kinds with informers, eager or already created lazily."""
        with self._lock:
            return list(dict.fromkeys(model for model, _ in self._informers))

    def serves(self, model: type) -> bool:
        if self.restrict_to_by_kind:
            return model in self._by_kind
        return model in self.scheme

    def start(self) -> None:
        """
        Start every informer created so far.

        Raises:
            RuntimeError: If the cache was already started or stopped
        """
        with self._lock:
            try:
                if self._started or self._stopped:
                    raise RuntimeError(f"The {self.name} cache cannot be started twice")
                for informer in self._informers.values():
                    informer.start()
                self._started = True
            except Exception as e:
                self._start_error = e
                raise
            finally:
                self._start_done.set()
        logger.info(
            f"Started {self.name} cache with {len(self._informers)} informer(s)",
            extra={"cache_name": self.name},
        )

    def stop(self) -> None:
        """Stop every informer and release sync waiters."""
        with self._lock:
            self._stopped = True
            informers = list(self._informers.values())
        for informer in informers:
            informer.stop()
        self._start_done.set()
        metrics_collector.update_cache_sync_status(self.name, False)
        logger.info(f"Stopped {self.name} cache", extra={"cache_name": self.name})

    def join(self, timeout: float | None = None) -> bool:
        """Wait for stopped informer threads to exit; True if all did."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            informers = list(self._informers.values())
        exited = True
        for informer in informers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            exited = informer.join(remaining) and exited
        if not exited:
            logger.debug(
                f"Some {self.name} informer threads are still draining their watch",
                extra={"cache_name": self.name},
            )
        return exited

    async def run(self, stop: asyncio.Event) -> None:
        """Start the cache, then keep it running until ``stop`` is set."""
        try:
            self.start()
            await stop.wait()
        finally:
            self.stop()
            await asyncio.to_thread(self.join, INFORMER_JOIN_TIMEOUT)

    def wait_for_sync(self, timeout: float | None = None) -> bool:
        """
        Block until every current informer has completed its initial list.

        Returns:
            True if synced; False on timeout, start failure or stop
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        if not self._start_done.wait(timeout):
            return False
        if self._start_error is not None or self._stopped:
            return False

        with self._lock:
            informers = list(self._informers.values())
        for informer in informers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not informer.wait_for_sync(remaining):
                return False

        metrics_collector.update_cache_sync_status(self.name, True)
        return True

    async def wait_for_cache_sync(self, timeout: float | None = None) -> bool:
        """Async form of ``wait_for_sync`` for use on the event loop."""
        return await asyncio.to_thread(self.wait_for_sync, timeout)

    def has_synced(self) -> bool:
        if not self.started:
            return False
        with self._lock:
            informers = list(self._informers.values())
        return all(informer.has_synced for informer in informers)

    def get(self, model: type, name: str, namespace: str | None = None) -> Any:
        """
        Read one object from the cache.

        Raises:
            ApiException: 404 if the object is not in the cache
            CacheNotStartedError: If the cache is not running
            KindNotCachedError: If this cache does not serve the kind
            NamespaceNotCachedError: If the namespace is not watched
        """
        kind = self._kind_for(model)
        scope = namespace if kind.namespaced else None
        informer = self._synced(self._informer_for_namespace(kind, scope))
        obj = informer.get(scope, name)
        if obj is None:
            raise new_not_found(kind.kind, f"{kind.resource.replace('_', '')}s", name)
        return obj

    def list(
        self,
        model: type,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[Any]:
        """
        List objects from the cache.

        Args:
            model: Model class of the kind to list
            namespace: Restrict to one namespace, None for every watched one
            label_selector: Client-side selector applied to the store
        """
        kind = self._kind_for(model)
        if namespace is not None and kind.namespaced:
            informers = [self._informer_for_namespace(kind, namespace)]
        else:
            informers = self._informers_for(kind)

        items: list[Any] = []
        for informer in informers:
            items.extend(
                self._synced(informer).list(
                    namespace=namespace if kind.namespaced else None,
                    label_selector=label_selector,
                )
            )
        return items

    def _kind_for(self, model: type) -> ResourceKind:
        kind = self.scheme.kind_for(model)
        if not self.serves(model):
            raise KindNotCachedError(kind.kind, self.name)
        if not self.started:
            raise CacheNotStartedError(self.name)
        return kind

    def _informer_for_namespace(
        self, kind: ResourceKind, namespace: str | None
    ) -> Informer:
        informers = self._informers_for(kind)
        if self.namespaces is None or not kind.namespaced:
            return informers[0]
        for informer in informers:
            if informer.namespace == namespace:
                return informer
        raise NamespaceNotCachedError(self.name, namespace)

    def _informers_for(self, kind: ResourceKind) -> builtins.list[Informer]:
        """Return the informers for a kind, creating them if needed."""
        scopes: list[str | None] = (
            list(self.namespaces) if self.namespaces and kind.namespaced else [None]
        )
        options = self._by_kind.get(kind.model, ByKind())
        informers = []
        with self._lock:
            for scope in scopes:
                informer = self._informers.get((kind.model, scope))
                if informer is None:
                    informer = Informer(
                        kind,
                        self._api_client,
                        namespace=scope,
                        label_selector=options.label_selector,
                        transform=options.transform,
                        cache_name=self.name,
                        resync_period_seconds=self.resync_period_seconds,
                        watch_timeout_seconds=self.watch_timeout_seconds,
                    )
                    self._informers[(kind.model, scope)] = informer
                    if self._started and not self._stopped:
                        informer.start()
                informers.append(informer)
        return informers

    def _synced(self, informer: Informer) -> Informer:
        if informer.has_synced:
            return informer
        if not informer.wait_for_sync(self.sync_timeout_seconds):
            raise CacheNotSyncedError(self.name, informer.kind.kind)
        return informer
