"""
Cache lifecycle supervision.

``CacheRunnable`` adapts an ``InformerCache`` to the manager's runnable
protocol. Its ``start`` runs the cache in a child task, waits for the initial
sync, reports readiness, then parks until shutdown. A cache that never syncs
or fails to start aborts process startup.
"""

import asyncio
import logging

from argocd_operator.constants import DEFAULT_CACHE_SYNC_TIMEOUT
from argocd_operator.errors import CacheStartError, CacheSyncError
from argocd_operator.kube.cache import InformerCache

logger = logging.getLogger(__name__)


class CacheRunnable:
    """Runs one cache for the lifetime of the manager."""

    def __init__(
        self,
        cache: InformerCache,
        sync_timeout_seconds: float | None = DEFAULT_CACHE_SYNC_TIMEOUT,
    ):
        self.cache = cache
        self.name = f"{cache.name}-cache"
        self.sync_timeout_seconds = sync_timeout_seconds
        self._ready = asyncio.Event()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self) -> None:
        await self._ready.wait()

    async def start(self, stop: asyncio.Event) -> None:
        """
        Run the cache until ``stop`` is set.

        A shutdown that arrives before the initial sync returns quietly.

        Raises:
            CacheSyncError: If the initial sync did not complete; chained to
                the start failure when there was one
            CacheStartError: If the cache reported a start failure after
                syncing
        """
        # Capacity one: a cache run reports at most one failure
        start_errors: asyncio.Queue[Exception] = asyncio.Queue(maxsize=1)
        cache_task = asyncio.create_task(
            self._run_cache(stop, start_errors), name=f"{self.name}-run"
        )

        synced = await self.cache.wait_for_cache_sync(self.sync_timeout_seconds)
        if not synced:
            cause = self._pending_error(start_errors)
            if cause is None and stop.is_set():
                # Stopping releases the sync barrier unsynced
                await cache_task
                logger.info(
                    f"Shutdown requested before the {self.cache.name} cache synced",
                    extra={"cache_name": self.cache.name},
                )
                return
            await self._cancel(cache_task)
            logger.error(
                f"The {self.cache.name} cache did not sync",
                extra={"cache_name": self.cache.name},
            )
            raise CacheSyncError(self.cache.name) from cause

        error = self._pending_error(start_errors)
        if error is not None:
            await self._cancel(cache_task)
            raise CacheStartError(self.cache.name, error) from error

        self._ready.set()
        logger.info(
            f"The {self.cache.name} cache is synced",
            extra={"cache_name": self.cache.name},
        )

        await stop.wait()
        await cache_task
        late_error = self._pending_error(start_errors)
        if late_error is not None:
            logger.warning(
                f"The {self.cache.name} cache stopped with an error: {late_error}",
                extra={"cache_name": self.cache.name},
            )

    async def _run_cache(
        self, stop: asyncio.Event, errors: asyncio.Queue[Exception]
    ) -> None:
        try:
            await self.cache.run(stop)
        except Exception as e:
            logger.error(
                f"The {self.cache.name} cache failed: {e}",
                extra={"cache_name": self.cache.name, "error_type": type(e).__name__},
            )
            errors.put_nowait(e)

    @staticmethod
    def _pending_error(errors: asyncio.Queue[Exception]) -> Exception | None:
        try:
            return errors.get_nowait()
        except asyncio.QueueEmpty:
            return None

    @staticmethod
    async def _cancel(task: asyncio.Task) -> None:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
