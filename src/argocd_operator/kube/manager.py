"""
Process supervisor for long-running operator components.

A ``Manager`` owns a set of runnables. ``start()`` launches each one exactly
once as an asyncio task and returns when all of them report ready, or raises
the first failure. ``stop()`` broadcasts the shutdown signal exactly once;
``wait()`` joins the runnables afterwards.
"""

import asyncio
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Runnable(Protocol):
    """A component whose lifetime is owned by the manager."""

    name: str

    async def start(self, stop: asyncio.Event) -> None:
        """Run until ``stop`` is set. Raising aborts process startup."""
        ...

    async def wait_ready(self) -> None:
        """Return once the runnable is ready to serve."""
        ...


class Manager:
    """Starts, tracks and stops runnables on behalf of the process."""

    def __init__(self) -> None:
        self._runnables: list[Runnable] = []
        self._tasks: list[asyncio.Task] = []
        self._stop = asyncio.Event()
        self._started = False

    @property
    def runnables(self) -> list[Runnable]:
        return list(self._runnables)

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def add(self, runnable: Runnable) -> None:
        """
        Register a runnable.

        Raises:
            RuntimeError: If the manager has already started
        """
        if self._started:
            raise RuntimeError(f"Cannot add {runnable.name} after the manager started")
        self._runnables.append(runnable)

    async def start(self) -> None:
        """
        Start every runnable and wait until all are ready.

        Raises:
            RuntimeError: If called more than once
            Exception: The first runnable failure; other runnables are stopped
        """
        if self._started:
            raise RuntimeError("Manager can only be started once")
        self._started = True

        for runnable in self._runnables:
            logger.info(f"Starting runnable {runnable.name}")
            self._tasks.append(
                asyncio.create_task(runnable.start(self._stop), name=runnable.name)
            )

        ready = asyncio.ensure_future(
            asyncio.gather(*(r.wait_ready() for r in self._runnables))
        )
        pending = {ready, *self._tasks}
        try:
            while not ready.done():
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task is ready or task.cancelled():
                        continue
                    if task.exception() is not None:
                        raise task.exception()
                if not pending - {ready} and not ready.done():
                    raise RuntimeError("All runnables exited before becoming ready")
            ready.result()
        except BaseException:
            ready.cancel()
            self.stop()
            await self.wait()
            raise

        logger.info(f"All {len(self._runnables)} runnable(s) ready")

    def stop(self) -> None:
        """Broadcast the shutdown signal (idempotent)."""
        if not self._stop.is_set():
            logger.info("Stopping manager")
            self._stop.set()

    async def wait(self) -> None:
        """Wait for every runnable to return after ``stop``."""
        if not self._tasks:
            return
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for runnable, result in zip(self._runnables, results, strict=False):
            if isinstance(result, Exception):
                logger.error(f"Runnable {runnable.name} exited with error: {result}")
