"""List+watch backed, in-memory store for one kind in one scope.

An ``Informer`` lists a kind once (the initial sync), then follows a watch
stream to keep its store current. Every ``resync_period_seconds`` it relists,
so objects that stopped matching the label selector age out of the store.
Reads are served from the store under a lock and return deep copies.
"""

import copy
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from argocd_operator.constants import (
    DEFAULT_MAX_BACKOFF,
    DEFAULT_RESYNC_PERIOD,
    DEFAULT_WATCH_TIMEOUT,
)
from argocd_operator.kube.scheme import ResourceKind
from argocd_operator.kube.selectors import matches_label_selector, parse_label_selector
from argocd_operator.observability.metrics import metrics_collector

logger = logging.getLogger(__name__)

StoreKey = tuple[str | None, str]


def object_key(obj: Any) -> StoreKey | None:
    metadata = getattr(obj, "metadata", None)
    if metadata is None or not metadata.name:
        return None
    return (metadata.namespace, metadata.name)


class Informer:
    """Maintain an in-memory store of one kind via list and watch."""

    def __init__(
        self,
        kind: ResourceKind,
        api_client: client.ApiClient,
        namespace: str | None = None,
        label_selector: str | None = None,
        transform: Callable[[Any], Any] | None = None,
        cache_name: str = "cache",
        resync_period_seconds: float = DEFAULT_RESYNC_PERIOD,
        watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT,
        max_backoff_seconds: float = DEFAULT_MAX_BACKOFF,
    ):
        self.kind = kind
        self.namespace = namespace
        self.label_selector = label_selector or None
        self.transform = transform
        self.cache_name = cache_name
        self.resync_period_seconds = resync_period_seconds
        self.watch_timeout_seconds = watch_timeout_seconds
        self.max_backoff_seconds = max_backoff_seconds

        self._api = kind.api_class(api_client)
        self._store: dict[StoreKey, Any] = {}
        self._lock = threading.RLock()
        self._resource_version: str | None = None
        self._has_synced = False
        self._needs_relist = True
        self._last_relist = 0.0
        # Set once the first list completes, or when the informer stops first
        self._sync_done = threading.Event()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._watch: watch.Watch | None = None
        self.last_error: Exception | None = None

    @property
    def has_synced(self) -> bool:
        """Return True once an initial list has completed."""
        return self._has_synced

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def scope(self) -> str:
        return self.namespace or "<all namespaces>"

    def start(self) -> None:
        """Start the background list/watch thread if not already running."""
        if self._stop_event.is_set():
            raise RuntimeError(f"Informer for {self.kind.kind} was already stopped")
        if self._thread and self._thread.is_alive():
            return

        self._thread = threading.Thread(
            target=self._run,
            name=f"{self.cache_name}-informer-{self.kind.resource}-{self.scope}",
            daemon=True,
        )
        self._thread.start()
        logger.debug(
            f"Started {self.cache_name} informer for {self.kind.kind} in {self.scope}"
            + (f" with selector {self.label_selector}" if self.label_selector else "")
        )

    def stop(self, timeout: float | None = None) -> None:
        """
        Stop the background thread and release any sync waiters.

        Args:
            timeout: Seconds to wait for the thread to exit; None returns
                without waiting
        """
        self._stop_event.set()
        self._sync_done.set()
        # The watch thread clears self._watch when its stream ends
        active_watch = self._watch
        if active_watch is not None:
            active_watch.stop()
        if timeout is not None:
            self.join(timeout)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the background thread; True once it has exited."""
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def wait_for_sync(self, timeout: float | None = None) -> bool:
        """
        Block until the initial list completes.

        Args:
            timeout: Maximum seconds to wait, None to wait indefinitely

        Returns:
            True if synced, False on timeout or if stopped before syncing
        """
        self._sync_done.wait(timeout)
        return self._has_synced

    def get(self, namespace: str | None, name: str) -> Any | None:
        """Return a copy of the stored object, or None if absent."""
        ns = namespace if self.kind.namespaced else None
        with self._lock:
            obj = self._store.get((ns, name))
            return copy.deepcopy(obj) if obj is not None else None

    def list(
        self, namespace: str | None = None, label_selector: str | None = None
    ) -> list[Any]:
        """Return copies of stored objects, optionally filtered."""
        requirements = parse_label_selector(label_selector)
        with self._lock:
            items = [
                obj
                for (ns, _), obj in self._store.items()
                if (namespace is None or ns == namespace)
                and matches_label_selector(obj.metadata.labels, requirements)
            ]
            return copy.deepcopy(items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _list_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.kind.namespaced and self.namespace:
            kwargs["namespace"] = self.namespace
        if self.label_selector:
            kwargs["label_selector"] = self.label_selector
        return kwargs

    def _list_func(self) -> Callable[..., Any]:
        method = self.kind.method_name(
            "list", all_namespaces=self.kind.namespaced and not self.namespace
        )
        return getattr(self._api, method)

    def _run(self) -> None:
        backoff = 1.0
        while not self._stop_event.is_set():
            try:
                if self._relist_due():
                    self._full_resync()
                self._run_watch_loop()
                backoff = 1.0
            except ApiException as exc:
                if exc.status == 410:
                    # Resource version too old; force a fresh list on next loop
                    logger.debug(
                        f"Watch for {self.kind.kind} in {self.scope} expired, relisting"
                    )
                    self._resource_version = None
                    self._needs_relist = True
                    continue
                self._record_failure(exc, reason=str(exc.status))
                self._stop_event.wait(min(backoff, self.max_backoff_seconds))
                backoff = min(backoff * 2, self.max_backoff_seconds)
            except Exception as exc:
                self._record_failure(exc, reason=type(exc).__name__)
                self._stop_event.wait(min(backoff, self.max_backoff_seconds))
                backoff = min(backoff * 2, self.max_backoff_seconds)

        self._sync_done.set()
        logger.debug(f"{self.cache_name} informer for {self.kind.kind} stopped")

    def _record_failure(self, exc: Exception, reason: str) -> None:
        self.last_error = exc
        self._needs_relist = True
        logger.warning(
            f"{self.cache_name} informer error for {self.kind.kind} in {self.scope}: {exc}",
            extra={
                "cache_name": self.cache_name,
                "resource_kind": self.kind.kind,
                "namespace": self.namespace,
                "error_type": type(exc).__name__,
            },
        )
        metrics_collector.record_informer_error(self.cache_name, self.kind.kind, reason)

    def _relist_due(self) -> bool:
        if self._needs_relist or not self._has_synced:
            return True
        return time.monotonic() - self._last_relist >= self.resync_period_seconds

    def _full_resync(self) -> None:
        """Perform a full list and replace the store."""
        resp = self._list_func()(**self._list_kwargs())

        # Build the new store outside the lock to avoid blocking readers
        new_store: dict[StoreKey, Any] = {}
        for item in resp.items or []:
            key = object_key(item)
            if key is None:
                continue
            new_store[key] = self._apply_transform(item)

        with self._lock:
            self._store = new_store
            self._resource_version = (
                resp.metadata.resource_version if resp.metadata else None
            )
            self._needs_relist = False
            self._last_relist = time.monotonic()
            first_sync = not self._has_synced
            self._has_synced = True
        self._sync_done.set()
        self.last_error = None

        metrics_collector.update_informer_objects(
            self.cache_name, self.kind.kind, self.scope, len(new_store)
        )
        if first_sync:
            logger.info(
                f"{self.cache_name} cache synced {len(new_store)} {self.kind.kind} "
                f"object(s) in {self.scope}",
                extra={"cache_name": self.cache_name, "resource_kind": self.kind.kind},
            )

    def _run_watch_loop(self) -> None:
        """Stream watch events until the server times out or a relist is due."""
        remaining = self.resync_period_seconds - (time.monotonic() - self._last_relist)
        timeout = max(1, int(min(self.watch_timeout_seconds, remaining)))

        stream_watch = watch.Watch()
        self._watch = stream_watch
        try:
            for event in stream_watch.stream(
                self._list_func(),
                resource_version=self._resource_version,
                timeout_seconds=timeout,
                allow_watch_bookmarks=True,
                **self._list_kwargs(),
            ):
                if self._stop_event.is_set():
                    break
                self._handle_event(event)
        finally:
            stream_watch.stop()
            self._watch = None

    def _apply_transform(self, obj: Any) -> Any:
        return self.transform(obj) if self.transform else obj

    def _handle_event(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        if event_type == "ERROR":
            raw = event.get("raw_object") or {}
            raise ApiException(status=raw.get("code"), reason=raw.get("reason"))

        obj = event.get("object")
        if obj is None:
            return

        metadata = getattr(obj, "metadata", None)
        resource_version = metadata.resource_version if metadata else None

        if event_type == "BOOKMARK":
            if resource_version:
                self._resource_version = resource_version
            return

        key = object_key(obj)
        if key is None:
            return

        with self._lock:
            if event_type == "DELETED":
                self._store.pop(key, None)
            else:
                self._store[key] = self._apply_transform(obj)
            if resource_version:
                self._resource_version = resource_version
